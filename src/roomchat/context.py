""" Cancellation contexts. A :class:`Context` is handed to anything that might
    block for an unbounded amount of time; cancelling the context releases
    every such call with a :class:`Cancelled` exception. Contexts form a tree:
    cancelling a context also cancels every :func:`Context.child` derived
    from it, but never its parent.
"""

import threading


class Cancelled(Exception):
    """ Raised by a blocking call that was interrupted because its context
        was cancelled.
    """

    pass



class Context:
    """ A cancellation signal that can be observed by polling
        :attr:`cancelled`, by blocking in :func:`wait`, or by registering a
        callback with :func:`watch`.
    """

    def __init__(self, parent=None):

        self.parent = parent
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = list()

        if parent is not None:
            parent.watch(self.cancel)


    def __repr__(self):
        if self.cancelled:
            return '<Context cancelled>'
        else:
            return '<Context active>'


    @property
    def cancelled(self):
        return self._event.is_set()


    def cancel(self):
        """ Cancel this context and all of its children. Subsequent calls
            are no-ops. Returns True if this call performed the cancellation.
        """

        with self._lock:
            if self._event.is_set():
                return False

            self._event.set()
            callbacks = self._callbacks
            self._callbacks = list()

        for callback in callbacks:
            callback()

        if self.parent is not None:
            self.parent.unwatch(self.cancel)

        return True


    def check(self):
        """ Raise :class:`Cancelled` if this context has been cancelled.
        """

        if self._event.is_set():
            raise Cancelled()


    def child(self):
        """ Return a new :class:`Context` that will be cancelled along with
            this one, but can also be cancelled on its own.
        """

        return Context(self)


    def wait(self, timeout=None):
        """ Block until the context is cancelled, or until *timeout* seconds
            elapse. Returns True if the context is cancelled.
        """

        return self._event.wait(timeout)


    def watch(self, callback):
        """ Invoke *callback* with no arguments when this context is
            cancelled. If the context is already cancelled the callback is
            invoked immediately, in the calling thread.
        """

        with self._lock:
            if self._event.is_set() == False:
                self._callbacks.append(callback)
                return

        callback()


    def unwatch(self, callback):
        """ Remove a callback previously registered via :func:`watch`.
            Removing a callback that is not registered is a no-op.
        """

        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass


# end of class Context


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
