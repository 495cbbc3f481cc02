"""Transport interface.

This is the (small) contract a publish/subscribe transport has to satisfy for
:mod:`roomchat.room` to run on top of it. It lives outside the
implementations so rooms and sessions can be tested against the in-memory
transport.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, NamedTuple


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportClosed(TransportError):
    """The subscription, topic or node has been shut down."""


class TransportPortError(TransportError):
    """No suitable port could be bound."""


class Delivery(NamedTuple):
    """One message received on a subscription."""

    data: bytes
    origin: str


class Subscription(ABC):
    """A stream of deliveries for a single topic."""

    @abstractmethod
    def next(self, context) -> Delivery:
        """Block until the next delivery arrives.

        Raises :class:`TransportClosed` once the subscription is cancelled or
        has failed; raises :class:`roomchat.context.Cancelled` if *context*
        is cancelled while waiting.
        """

    @abstractmethod
    def cancel(self) -> None:
        """Stop the subscription.

        Deliveries already received are still handed out by ``next``; after
        that it raises :class:`TransportClosed`.
        """


class Topic(ABC):
    """A joined topic."""

    name: str

    @abstractmethod
    def subscribe(self) -> Subscription:
        """Open a new subscription to this topic."""

    @abstractmethod
    def publish(self, context, data: bytes) -> None:
        """Send *data* to every subscriber of this topic."""

    def close(self) -> None:
        """Leave the topic."""


class PubSub(ABC):
    """A node participating in the publish/subscribe mesh."""

    peer_id: str

    @abstractmethod
    def join(self, name: str) -> Topic:
        """Join the topic *name*. Joining a topic twice is an error."""

    @abstractmethod
    def list_peers(self, name: str) -> List[str]:
        """Return the ids of the remote peers known to be in topic *name*."""
