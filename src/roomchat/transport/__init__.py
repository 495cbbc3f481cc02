"""Transport layer implementations.

``memory`` connects nodes living in the same process; ``zmq`` connects nodes
across the network with ZeroMQ PUB/SUB sockets.
"""

from .base import (
    Delivery,
    PubSub,
    Subscription,
    Topic,
    TransportClosed,
    TransportError,
    TransportPortError,
)
