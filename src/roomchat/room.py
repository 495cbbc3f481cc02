""" A :class:`Room` turns a raw pub/sub subscription into a stream of
    :class:`roomchat.envelope.ChatEnvelope` instances: messages this peer
    published itself are discarded, payloads that do not decode are
    discarded, and everything else is appended to a bounded queue. When the
    queue is full the receive thread blocks; messages are never dropped to
    make room.
"""

import logging
import threading

from . import channel
from . import envelope
from .config import Settings
from .context import Cancelled
from .transport import TransportError

logger = logging.getLogger(__name__)


def join(context, pubsub, self_id, nickname, room_name, settings=None):
    """ Join the room *room_name* on the *pubsub* transport and start
        receiving. The *context* bounds the lifetime of the room: cancelling
        it stops the receive thread, and interrupts any publish in progress.

        Failure to join or subscribe raises the transport's exception; no
        partial state is left behind.
    """

    if settings is None:
        settings = Settings()

    room_id = settings.topic(room_name)

    topic = pubsub.join(room_id)

    try:
        subscription = topic.subscribe()
    except Exception:
        topic.close()
        raise

    room = Room(context, pubsub, topic, subscription, self_id, nickname, room_name, settings)
    room.start()

    logger.info("joined %s as %s (%s)", room_id, nickname, self_id)
    return room



class Room:
    """ One joined room. Instances are created by :func:`join`.

        :ivar messages: :class:`roomchat.channel.Queue` of envelopes received
            from other peers. It is closed, exactly once, when the
            subscription fails; consumers then drain it and observe
            :class:`roomchat.channel.Closed`.
        :ivar room_id: The topic name shared by every peer in this room.
    """

    def __init__(self, context, pubsub, topic, subscription, self_id, nickname, room_name, settings):

        self.pubsub = pubsub
        self.topic = topic
        self.subscription = subscription
        self.self_id = self_id
        self.nickname = nickname
        self.room_name = room_name
        self.room_id = topic.name
        self.settings = settings

        # The room gets its own child context, so that closing the room
        # does not cancel anything else sharing the caller's context.

        self.context = context.child()
        self.messages = channel.Queue(settings.queue_capacity)

        self.thread = threading.Thread(target=self.run, name='room-' + self.room_name)
        self.thread.daemon = True
        self._closed = False


    def __repr__(self):
        return '<Room %s as %s>' % (self.room_id, self.nickname)


    def start(self):
        self.thread.start()


    def close(self):
        """ Leave the room: stop the receive thread, cancel the subscription,
            and close the topic. Calling this method more than once is a
            no-op.
        """

        if self._closed:
            return

        self._closed = True
        self.context.cancel()
        self.subscription.cancel()
        self.topic.close()

        if self.thread.is_alive() and self.thread is not threading.current_thread():
            self.thread.join(1)

        logger.info("left %s", self.room_id)


    def list_peers(self):
        """ Return the transport's current view of the peers in this room.
            No caching, no ordering guarantee.
        """

        return self.pubsub.list_peers(self.room_id)


    def publish(self, text):
        """ Send *text* to the room. Encoding and transport errors are raised
            unchanged. This call may block until the transport accepts the
            message; there is no timeout, only cancellation of the room's
            context.
        """

        chat = envelope.ChatEnvelope(text, self.self_id, self.nickname)
        data = envelope.encode(chat)
        self.topic.publish(self.context, data)


    def run(self):
        """ Receive loop, run in a dedicated background thread. Returns when
            the subscription fails or the room is closed; either way the
            :attr:`messages` queue is closed on the way out.
        """

        try:
            self._receive()
        except (Cancelled, TransportError, channel.Closed) as e:
            logger.debug("receive loop for %s ended: %r", self.room_id, e)
        finally:
            self.messages.close()


    def _receive(self):

        while True:
            delivery = self.subscription.next(self.context)

            if delivery.origin == self.self_id:
                continue

            try:
                chat = envelope.decode(delivery.data)
            except envelope.EnvelopeError as e:
                # A malformed or foreign payload must never stall the room.
                logger.debug("dropped payload from %s: %s", delivery.origin, e)
                continue

            self.messages.put(chat, self.context)


# end of class Room


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
