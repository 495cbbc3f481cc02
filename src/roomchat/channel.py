""" A bounded, closable FIFO queue connecting one producer thread to one
    consumer thread. Unlike :class:`queue.Queue` a :class:`Queue` can be
    closed: once closed no further items are accepted, and consumers drain
    whatever remains before they observe the end of the stream. Blocking
    calls can also be released early by cancelling a
    :class:`roomchat.context.Context`.
"""

import collections
import threading
import time

from .context import Cancelled


class Closed(Exception):
    """ Raised by :func:`Queue.put` once the queue is closed, and by
        :func:`Queue.get` once the queue is closed and empty.
    """

    pass



class Empty(Exception):
    """ Raised by :func:`Queue.get_nowait` when nothing is waiting.
    """

    pass



class Full(Exception):
    """ Raised by :func:`Queue.put` when a *timeout* expires before space
        becomes available.
    """

    pass



class Queue:
    """ A FIFO queue holding at most *capacity* items; a *capacity* of None
        means the queue is unbounded. :func:`put` blocks while the queue is
        full, :func:`get` blocks while it is empty.

        Any number of :class:`threading.Event` instances may be registered
        via :func:`watch`; they are set every time an item is added and when
        the queue is closed, which allows a single consumer to wait on
        several queues at once.
    """

    def __init__(self, capacity=None):

        if capacity is not None:
            capacity = int(capacity)
            if capacity < 1:
                raise ValueError('queue capacity must be at least 1')

        self.capacity = capacity
        self.items = collections.deque()

        self._closed = False
        self._condition = threading.Condition()
        self._watchers = list()


    def __len__(self):
        with self._condition:
            return len(self.items)


    @property
    def closed(self):
        return self._closed


    def close(self):
        """ Stop accepting new items. Items already queued remain available
            to :func:`get`. Returns True if this call closed the queue, False
            if it was already closed.
        """

        with self._condition:
            if self._closed:
                return False

            self._closed = True
            self._condition.notify_all()

        self._alert()
        return True


    def full(self):
        with self._condition:
            return self._full()


    def _full(self):
        if self.capacity is None:
            return False
        return len(self.items) >= self.capacity


    def get(self, context=None, timeout=None):
        """ Remove and return the oldest item, blocking until one is
            available. Raises :class:`Closed` if the queue is closed and
            drained, :class:`Empty` if *timeout* seconds pass first, and
            :class:`roomchat.context.Cancelled` if the *context* is
            cancelled while waiting.
        """

        with self._waiting(context):
            with self._condition:
                deadline = _deadline(timeout)

                while True:
                    if self.items:
                        item = self.items.popleft()
                        self._condition.notify_all()
                        return item

                    if self._closed:
                        raise Closed()

                    if context is not None and context.cancelled:
                        raise Cancelled()

                    remaining = _remaining(deadline)
                    if remaining is not None and remaining <= 0:
                        raise Empty()

                    self._condition.wait(remaining)


    def get_nowait(self):
        """ Remove and return the oldest item without blocking. Raises
            :class:`Empty` if nothing is queued, or :class:`Closed` if the
            queue is also closed.
        """

        with self._condition:
            if self.items:
                item = self.items.popleft()
                self._condition.notify_all()
                return item

            if self._closed:
                raise Closed()

            raise Empty()


    def put(self, item, context=None, timeout=None):
        """ Append *item*, blocking for as long as the queue is full. Items
            are never dropped: the only ways out of a full queue are a
            consumer making room, the queue being closed (:class:`Closed`),
            the *context* being cancelled (:class:`Cancelled`), or the
            optional *timeout* expiring (:class:`Full`).
        """

        with self._waiting(context):
            with self._condition:
                deadline = _deadline(timeout)

                while True:
                    if self._closed:
                        raise Closed()

                    if context is not None and context.cancelled:
                        raise Cancelled()

                    if self._full() == False:
                        break

                    remaining = _remaining(deadline)
                    if remaining is not None and remaining <= 0:
                        raise Full()

                    self._condition.wait(remaining)

                self.items.append(item)
                self._condition.notify_all()

        self._alert()


    def watch(self, event):
        """ Set the :class:`threading.Event` *event* whenever an item is
            added to this queue, or the queue is closed.
        """

        with self._condition:
            self._watchers.append(event)

            # Make sure the watcher does not miss anything that arrived
            # before it registered.

            if self.items or self._closed:
                event.set()


    def unwatch(self, event):
        with self._condition:
            try:
                self._watchers.remove(event)
            except ValueError:
                pass


    def _alert(self):
        with self._condition:
            watchers = tuple(self._watchers)

        for event in watchers:
            event.set()


    def _wake(self):
        with self._condition:
            self._condition.notify_all()


    def _waiting(self, context):
        return _Watching(context, self._wake)


# end of class Queue



class _Watching:
    """ Context manager that registers a wakeup callback with a
        :class:`roomchat.context.Context` for the duration of a blocking call.
    """

    def __init__(self, context, callback):
        self.context = context
        self.callback = callback


    def __enter__(self):
        if self.context is not None:
            self.context.watch(self.callback)
        return self


    def __exit__(self, *exc):
        if self.context is not None:
            self.context.unwatch(self.callback)
        return False


# end of class _Watching



def _deadline(timeout):
    if timeout is None:
        return None
    return time.monotonic() + timeout


def _remaining(deadline):
    if deadline is None:
        return None
    return deadline - time.monotonic()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
