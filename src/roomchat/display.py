""" The display sink interface used by :class:`roomchat.session.Session`.
    A display is only ever driven from the session loop, one call at a time.

    Lines are handed over as a list of (style, text) fragments; the styles
    used by the session are :data:`PEER`, :data:`SELF` and :data:`ERROR`.
"""

import abc
import sys


PEER = 'peer'
SELF = 'self'
ERROR = 'error'


class Display(abc.ABC):

    @abc.abstractmethod
    def append(self, fragments):
        """ Append one line, made of (style, text) *fragments*, to the
            message panel.
        """


    @abc.abstractmethod
    def peers(self, labels):
        """ Clear the peer panel and fill it with *labels*, one per line.
        """


    def flush(self):
        """ Redraw anything still pending.
        """

        pass


# end of class Display



class StreamDisplay(Display):
    """ Plain text display writing to a text *stream*, standard output by
        default. Styles are dropped; peer list changes are written as a single
        line whenever the list actually changes.
    """

    def __init__(self, stream=None):

        if stream is None:
            stream = sys.stdout

        self.stream = stream
        self.labels = None


    def append(self, fragments):
        line = ''.join(text for style,text in fragments)
        self.stream.write(line + '\n')


    def peers(self, labels):
        labels = list(labels)

        if labels == self.labels:
            return

        self.labels = labels
        self.stream.write('peers: ' + ' '.join(labels) + '\n')


    def flush(self):
        self.stream.flush()


# end of class StreamDisplay


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
