""" The session loop: the single consumer of a room's inbound messages and of
    the user's outbound lines, and the only caller of the display. Everything
    the loop reacts to is turned into an :class:`Event` at one select point,
    :func:`Session.select`, and handled one at a time by
    :func:`Session.dispatch`; there are no callbacks racing each other to
    update the display.

    Publishing happens synchronously on the loop thread. If the transport is
    slow to accept a message, rendering of newly arrived messages and peer
    list refreshes wait until the publish call returns. There is no timeout
    on publishing; it can only be interrupted by cancelling the room's
    context.
"""

import enum
import logging
import threading
import time

from . import channel
from . import display
from .context import Cancelled
from .envelope import EnvelopeError
from .transport import TransportError

logger = logging.getLogger(__name__)


class State(enum.Enum):
    RUNNING = 'running'
    TERMINATING = 'terminating'
    STOPPED = 'stopped'


class Kind(enum.Enum):
    OUTBOUND = 'outbound'
    INBOUND = 'inbound'
    REFRESH = 'refresh'
    CANCELLED = 'cancelled'
    STOPPED = 'stopped'
    END_OF_STREAM = 'end-of-stream'


terminal = frozenset((Kind.CANCELLED, Kind.STOPPED, Kind.END_OF_STREAM))


class Event:
    """ One thing for the session loop to do. The *value* depends on the
        *kind*: the line of text for :attr:`Kind.OUTBOUND`, the
        :class:`roomchat.envelope.ChatEnvelope` for :attr:`Kind.INBOUND`,
        and None for everything else.
    """

    __slots__ = ('kind', 'value')

    def __init__(self, kind, value=None):
        self.kind = kind
        self.value = value


    def __repr__(self):
        if self.value is None:
            return '<Event %s>' % (self.kind.value)
        return '<Event %s %r>' % (self.kind.value, self.value)


# end of class Event



def log_error(message, exception):
    """ Default error sink: report the problem via :mod:`logging`.
    """

    logger.error('%s: %s', message, exception)



class Session:
    """ Drive one joined :class:`roomchat.room.Room` until it ends. The
        *display* is a :class:`roomchat.display.Display`; *errors* is a
        callable accepting a message and an exception, invoked for failures
        that do not end the session (a failed publish, for example).

        The session moves from :attr:`State.RUNNING` to
        :attr:`State.TERMINATING` to :attr:`State.STOPPED`, and never back.
        Any one of three things ends it: the room's context being
        cancelled, :func:`stop` being called, or the room's message stream
        ending. Only the first of these is acted upon.

        :ivar requests: :class:`roomchat.channel.Queue` of lines waiting to
            be published, fed by :func:`submit`.
        :ivar reason: The :class:`Kind` that ended the session, once it has
            ended.
    """

    def __init__(self, room, display, settings=None, errors=None):

        if settings is None:
            settings = room.settings

        if errors is None:
            errors = log_error

        self.room = room
        self.display = display
        self.settings = settings
        self.errors = errors

        self.requests = channel.Queue(settings.input_capacity)
        self.state = State.RUNNING
        self.reason = None

        self._alarm = threading.Event()
        self._stop = threading.Event()
        self._state_lock = threading.Lock()
        self._started = False

        # The order of these sources only matters for the first pass; after
        # that the scan starts just after whichever source was last serviced.

        self._sources = (self._outbound, self._inbound, self._refresh)
        self._turn = 0
        self._next_tick = None


    def __repr__(self):
        return '<Session %s %s>' % (self.room.room_id, self.state.value)


    def submit(self, line):
        """ Hand a line typed by the user to the session. Empty lines are
            ignored, and the quit command stops the session without ever
            being published. Returns True if the line was queued for
            publication. This may block while the request queue is full.
        """

        if line == '':
            return False

        if line == self.settings.quit_command:
            self.stop()
            return False

        if self.state is not State.RUNNING:
            return False

        try:
            self.requests.put(line)
        except channel.Closed:
            return False

        return True


    def stop(self):
        """ Request that the session end. Safe to call from any thread, any
            number of times.
        """

        self._stop.set()
        self._alarm.set()


    def run(self):
        """ Run the session loop in the calling thread until the session
            ends. Returns the :class:`Kind` of the event that ended it.
        """

        with self._state_lock:
            if self._started:
                raise RuntimeError('a session can only be run once')
            self._started = True

        messages = self.room.messages
        context = self.room.context

        self.requests.watch(self._alarm)
        messages.watch(self._alarm)
        context.watch(self._alarm.set)

        self._next_tick = time.monotonic() + self.settings.refresh_interval

        try:
            while True:
                event = self.select()

                if event.kind in terminal:
                    self._terminate(event.kind)
                    break

                self.dispatch(event)
        finally:
            self.requests.unwatch(self._alarm)
            messages.unwatch(self._alarm)
            context.unwatch(self._alarm.set)

            # Reached only if dispatch() raised.
            if self.state is State.RUNNING:
                self._terminate(None)

        return self.reason


    def select(self):
        """ Block until something needs doing, and return it as an
            :class:`Event`. Shutdown triggers are checked first; after that
            the request queue, the message queue and the refresh timer are
            taken in rotation, so a busy source cannot starve the others.
        """

        count = len(self._sources)

        while True:
            self._alarm.clear()

            if self.room.context.cancelled:
                return Event(Kind.CANCELLED)

            if self._stop.is_set():
                return Event(Kind.STOPPED)

            for offset in range(count):
                index = (self._turn + offset) % count
                event = self._sources[index]()

                if event is not None:
                    self._turn = (index + 1) % count
                    return event

            delay = self._next_tick - time.monotonic()
            if delay > 0:
                self._alarm.wait(delay)


    def dispatch(self, event):

        kind = event.kind

        if kind is Kind.OUTBOUND:
            self._send(event.value)
        elif kind is Kind.INBOUND:
            self.display.append(self.format(event.value))
        elif kind is Kind.REFRESH:
            self._refresh_peers()
        else:
            raise ValueError('cannot dispatch event: ' + repr(event))


    def format(self, chat):
        """ Return the display fragments for an envelope received from
            another peer.
        """

        return _line(display.PEER, chat.sender_nick, chat.text)


    def _send(self, line):

        try:
            self.room.publish(line)
        except (TransportError, EnvelopeError, Cancelled) as e:
            self.errors('publish error', e)

        # The line is shown whether or not the publish succeeded.

        self.display.append(_line(display.SELF, self.room.nickname, line))


    def _refresh_peers(self):

        try:
            peers = self.room.list_peers()
        except TransportError as e:
            self.errors('peer refresh error', e)
            return

        length = self.settings.label_length
        labels = [str(peer)[-length:] for peer in peers]
        self.display.peers(labels)


    def _terminate(self, reason):

        with self._state_lock:
            if self.state is not State.RUNNING:
                return False
            self.state = State.TERMINATING
            self.reason = reason

        logger.debug("session in %s terminating: %s", self.room.room_id, reason)

        # No further lines are accepted; anything still queued is discarded.

        self.requests.close()
        discarded = 0
        while True:
            try:
                self.requests.get_nowait()
            except (channel.Empty, channel.Closed):
                break
            discarded += 1

        if discarded:
            logger.debug("discarded %d unsent lines", discarded)

        try:
            self.display.flush()
        finally:
            self.state = State.STOPPED

        return True


    # Event sources. Each returns an Event, or None if it has nothing ready.

    def _outbound(self):
        try:
            line = self.requests.get_nowait()
        except (channel.Empty, channel.Closed):
            return None

        return Event(Kind.OUTBOUND, line)


    def _inbound(self):
        try:
            chat = self.room.messages.get_nowait()
        except channel.Empty:
            return None
        except channel.Closed:
            return Event(Kind.END_OF_STREAM)

        return Event(Kind.INBOUND, chat)


    def _refresh(self):
        now = time.monotonic()

        if now < self._next_tick:
            return None

        # Keep a steady cadence relative to the previous tick; if the loop
        # fell more than a full period behind, skip ahead instead of firing
        # a burst of refreshes.

        interval = self.settings.refresh_interval
        self._next_tick += interval

        if self._next_tick <= now:
            self._next_tick = now + interval

        return Event(Kind.REFRESH)


# end of class Session



def _line(style, nick, text):
    return [(style, '<%s>:' % (nick)), ('', ' ' + text)]


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
