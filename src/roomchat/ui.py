""" Full-screen terminal chat window built on prompt_toolkit. The window is
    both the display for a :class:`roomchat.session.Session` and its input
    surface: each line entered is handed to :func:`Session.submit`.

    +-- Room: lobby ----------------------+-- Peers ----------+
    | <alice>: hi                         | 3f9a01bc          |
    | <bob>: hello                        | 77d0e2a4          |
    +-------------------------------------+-------------------+
    bob > _
"""

import logging
import threading

from prompt_toolkit.application import Application
from prompt_toolkit.data_structures import Point
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.layout.containers import HSplit, VSplit, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.layout import Layout
from prompt_toolkit.styles import Style
from prompt_toolkit.widgets import Frame, TextArea

from . import display

logger = logging.getLogger(__name__)


style = Style.from_dict({
    display.PEER: 'ansigreen',
    display.SELF: 'ansiyellow',
    display.ERROR: 'ansired',
})


class ChatUI(display.Display):
    """ The chat window for one room. At most *scrollback* lines are kept in
        the message panel. The *input* and *output* are handed to the
        prompt_toolkit application; the defaults use the terminal.
    """

    peer_width = 20

    def __init__(self, room_name, nickname, scrollback=1000, input=None, output=None):

        self.room_name = room_name
        self.nickname = nickname
        self.scrollback = scrollback
        self.session = None

        self._lines = list()
        self._labels = list()
        self._lock = threading.Lock()
        self._finished = threading.Event()

        messages = FormattedTextControl(
            self._message_text,
            get_cursor_position=self._message_cursor,
            focusable=False,
        )
        peers = FormattedTextControl(self._peer_text, focusable=False)

        self.input = TextArea(
            height=1,
            prompt=nickname + ' > ',
            multiline=False,
            wrap_lines=False,
            accept_handler=self._accept,
        )

        bindings = KeyBindings()

        @bindings.add('c-c')
        @bindings.add('c-q')
        def _(event):
            self._quit()

        root = HSplit([
            VSplit([
                Frame(Window(messages, wrap_lines=True), title='Room: ' + room_name),
                Frame(Window(peers), title='Peers', width=self.peer_width),
            ]),
            self.input,
        ])

        self.application = Application(
            layout=Layout(root, focused_element=self.input),
            key_bindings=bindings,
            style=style,
            full_screen=True,
            input=input,
            output=output,
        )


    # Display interface, invoked from the session loop thread.

    def append(self, fragments):
        with self._lock:
            self._lines.append(list(fragments))
            excess = len(self._lines) - self.scrollback
            if excess > 0:
                del self._lines[:excess]

        self.application.invalidate()


    def peers(self, labels):
        with self._lock:
            self._labels = list(labels)

        self.application.invalidate()


    def flush(self):
        self.application.invalidate()


    def error(self, message, exception):
        """ Error sink for the session: log the problem, and show it in the
            message panel.
        """

        logger.error('%s: %s', message, exception)
        self.append([(display.ERROR, '%s: %s' % (message, exception))])


    def run(self, session):
        """ Show the window and drive *session* until either the session
            ends or the window is closed.
        """

        self.session = session

        worker = threading.Thread(target=self._drive, name='session')
        worker.daemon = True
        worker.start()

        try:
            self.application.run(pre_run=self._pre_run)
        finally:
            session.stop()
            worker.join(2)


    def _drive(self):
        try:
            self.session.run()
        finally:
            self._finished.set()
            loop = self.application.loop
            if self.application.is_running and loop is not None:
                loop.call_soon_threadsafe(self._exit)


    def _pre_run(self):
        # The session may have ended before the application got going.
        if self._finished.is_set():
            self._exit()


    def _exit(self):
        future = self.application.future
        if self.application.is_running and future is not None and not future.done():
            self.application.exit()


    def _accept(self, buffer):
        line = buffer.text

        if self.session is not None:
            self.session.submit(line)

        # Returning False clears the input field.
        return False


    def _quit(self):
        if self.session is not None:
            self.session.stop()

        if self.session is None or self._finished.is_set():
            self._exit()


    def _message_text(self):
        fragments = list()

        with self._lock:
            for index,line in enumerate(self._lines):
                if index:
                    fragments.append(('', '\n'))
                for fragment_style,text in line:
                    if fragment_style:
                        fragment_style = 'class:' + fragment_style
                    fragments.append((fragment_style, text))

        return fragments


    def _message_cursor(self):
        # Keeping the cursor on the last line keeps the newest message in view.
        with self._lock:
            last = max(len(self._lines) - 1, 0)
        return Point(x=0, y=last)


    def _peer_text(self):
        with self._lock:
            return '\n'.join(self._labels)


# end of class ChatUI


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
