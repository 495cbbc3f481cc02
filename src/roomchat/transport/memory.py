"""In-process publish/subscribe transport.

Every :class:`Node` attached to the same :class:`Network` sees the others
immediately; there are no sockets and no background threads. Useful for
tests and for running several chat sessions inside one interpreter.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Set

from ..channel import Closed, Queue
from .base import Delivery, PubSub, Subscription, Topic, TransportClosed, TransportError

logger = logging.getLogger(__name__)


class Network:
    """Shared medium connecting any number of :class:`Node` instances."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._nodes: Dict[str, "Node"] = {}
        self._subscriptions: Dict[str, Set["MemorySubscription"]] = {}

    def node(self, peer_id: str) -> "Node":
        with self._lock:
            if peer_id in self._nodes:
                raise TransportError(f"peer id already in use: {peer_id}")
            node = Node(self, peer_id)
            self._nodes[peer_id] = node
        return node

    def _detach(self, node: "Node") -> None:
        with self._lock:
            self._nodes.pop(node.peer_id, None)

    def _add(self, subscription: "MemorySubscription") -> None:
        with self._lock:
            self._subscriptions.setdefault(subscription.topic.name, set()).add(subscription)

    def _remove(self, subscription: "MemorySubscription") -> None:
        with self._lock:
            members = self._subscriptions.get(subscription.topic.name)
            if members is None:
                return
            members.discard(subscription)
            if not members:
                del self._subscriptions[subscription.topic.name]

    def _members(self, name: str) -> List["MemorySubscription"]:
        with self._lock:
            return list(self._subscriptions.get(name, ()))

    def deliver(self, name: str, data: bytes, origin: str) -> int:
        """Hand *data* to every subscription on topic *name*.

        Returns the number of subscriptions reached. Subscriptions belonging
        to *origin* itself are included, the same as a gossip mesh delivers
        a node's own messages locally.
        """

        reached = 0
        for subscription in self._members(name):
            if subscription._deliver(Delivery(data, origin)):
                reached += 1
        return reached


class Node(PubSub):
    """One participant of a :class:`Network`."""

    def __init__(self, network: Network, peer_id: str) -> None:
        self.network = network
        self.peer_id = peer_id
        self._topics: Dict[str, "MemoryTopic"] = {}
        self._lock = threading.Lock()
        self._closed = False

    def __repr__(self) -> str:
        return f"<memory.Node {self.peer_id}>"

    def join(self, name: str) -> "MemoryTopic":
        with self._lock:
            if self._closed:
                raise TransportClosed(f"node {self.peer_id} is closed")
            if name in self._topics:
                raise TransportError(f"topic already joined: {name}")
            topic = MemoryTopic(self, name)
            self._topics[name] = topic

        logger.debug("%s joined %s", self.peer_id, name)
        return topic

    def list_peers(self, name: str) -> List[str]:
        peers = set()
        for subscription in self.network._members(name):
            peer_id = subscription.topic.node.peer_id
            if peer_id != self.peer_id:
                peers.add(peer_id)
        return list(peers)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            topics = list(self._topics.values())

        for topic in topics:
            topic.close()

        self.network._detach(self)

    def _leave(self, topic: "MemoryTopic") -> None:
        with self._lock:
            if self._topics.get(topic.name) is topic:
                del self._topics[topic.name]


class MemoryTopic(Topic):

    def __init__(self, node: Node, name: str) -> None:
        self.node = node
        self.name = name
        self._subscriptions: Set["MemorySubscription"] = set()
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self) -> "MemorySubscription":
        with self._lock:
            if self._closed:
                raise TransportClosed(f"topic {self.name} is closed")
            subscription = MemorySubscription(self)
            self._subscriptions.add(subscription)

        self.node.network._add(subscription)
        return subscription

    def publish(self, context, data: bytes) -> None:
        if context is not None:
            context.check()
        if self._closed:
            raise TransportClosed(f"topic {self.name} is closed")
        self.node.network.deliver(self.name, bytes(data), self.node.peer_id)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscriptions = list(self._subscriptions)

        for subscription in subscriptions:
            subscription.cancel()

        self.node._leave(self)

    def _forget(self, subscription: "MemorySubscription") -> None:
        with self._lock:
            self._subscriptions.discard(subscription)


class MemorySubscription(Subscription):
    """Subscription backed by an unbounded mailbox."""

    def __init__(self, topic: MemoryTopic) -> None:
        self.topic = topic
        self.mailbox = Queue()

    def next(self, context) -> Delivery:
        try:
            return self.mailbox.get(context)
        except Closed:
            raise TransportClosed(f"subscription to {self.topic.name} is closed") from None

    def cancel(self) -> None:
        if self.mailbox.close():
            self.topic.node.network._remove(self)
            self.topic._forget(self)

    def _deliver(self, delivery: Delivery) -> bool:
        try:
            self.mailbox.put(delivery)
        except Closed:
            return False
        return True
