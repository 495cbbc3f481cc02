"""ZeroMQ publish/subscribe mesh node."""

from __future__ import annotations

import logging
import queue
import threading
import time
import uuid
from typing import Dict, Iterable, List, Optional, Set, Tuple

import zmq

from ... import json
from ...channel import Closed, Queue
from ..base import Delivery, PubSub, Subscription, Topic, TransportClosed, TransportError, TransportPortError
from .framing import HEARTBEAT_TOPIC, from_pub_frames, heartbeat_frames, parse_heartbeat, to_pub_frames, topic_prefix

logger = logging.getLogger(__name__)

minimum_port = 10139
maximum_port = 13679
zmq_context = zmq.Context.instance()


class Node(PubSub):
    """A peer in a ZeroMQ PUB/SUB mesh.

    The node binds one PUB socket and connects one SUB socket to the PUB
    socket of every peer handed to :meth:`connect`. Every *heartbeat* seconds
    the node announces the topics it has joined; peers heard from within the
    last *expiry* seconds are reported by :meth:`list_peers`.

    ZeroMQ sockets are not thread-safe, so all socket work happens on one
    background thread. Other threads queue commands and poke the thread
    through an inproc PAIR socket.
    """

    def __init__(
        self,
        peer_id: Optional[str] = None,
        port: Optional[int] = None,
        avoid: Iterable[int] = (),
        heartbeat: float = 1.0,
        expiry: float = 5.0,
    ) -> None:
        self.peer_id = peer_id if peer_id is not None else uuid.uuid4().hex
        self.heartbeat = float(heartbeat)
        self.expiry = float(expiry)

        self.pub = zmq_context.socket(zmq.PUB)
        self.pub.setsockopt(zmq.LINGER, 0)
        try:
            self.port = _bind(self.pub, port, set(avoid))
        except TransportPortError:
            self.pub.close()
            raise

        self.sub = zmq_context.socket(zmq.SUB)
        self.sub.setsockopt(zmq.LINGER, 0)
        self.sub.setsockopt(zmq.SUBSCRIBE, topic_prefix(HEARTBEAT_TOPIC))

        # Internal queue for thread-safe socket operations.
        self._commands: "queue.SimpleQueue[Tuple]" = queue.SimpleQueue()

        internal = f"inproc://roomchat.Node:signal:{id(self)}"
        self._sig_rx = zmq_context.socket(zmq.PAIR)
        self._sig_rx.bind(internal)
        self._sig_tx = zmq_context.socket(zmq.PAIR)
        self._sig_tx.connect(internal)
        self._sig_lock = threading.Lock()

        self._lock = threading.Lock()
        self._topics: Dict[str, "ZmqTopic"] = {}
        self._members: Dict[str, Tuple[frozenset, float]] = {}
        self._endpoints: Set[str] = set()

        self.shutdown = False
        self.thread = threading.Thread(target=self.run, name=f"zmq-node-{self.peer_id[-8:]}", daemon=True)
        self.thread.start()

        logger.info("node %s publishing on port %d", self.peer_id, self.port)

    def __repr__(self) -> str:
        return f"<zmq.Node {self.peer_id} port={self.port}>"

    # --- public interface, callable from any thread ---

    def connect(self, address: str, port: int) -> None:
        """Subscribe to the PUB socket of the peer at *address*:*port*."""

        endpoint = f"tcp://{address}:{int(port)}"
        with self._lock:
            if endpoint in self._endpoints:
                return
            self._endpoints.add(endpoint)

        self._command("connect", endpoint)

    def join(self, name: str) -> "ZmqTopic":
        if name == HEARTBEAT_TOPIC:
            raise TransportError(f"topic name is reserved: {name}")

        with self._lock:
            if self.shutdown:
                raise TransportClosed(f"node {self.peer_id} is closed")
            if name in self._topics:
                raise TransportError(f"topic already joined: {name}")
            topic = ZmqTopic(self, name)
            self._topics[name] = topic

        self._command("subscribe", name)
        logger.info("%s joined %s", self.peer_id, name)
        return topic

    def list_peers(self, name: str) -> List[str]:
        horizon = time.monotonic() - self.expiry
        with self._lock:
            return [
                peer_id
                for peer_id, (topics, seen) in self._members.items()
                if name in topics and seen >= horizon and peer_id != self.peer_id
            ]

    def close(self) -> None:
        with self._lock:
            if self.shutdown:
                return
            self.shutdown = True
            topics = list(self._topics.values())

        for topic in topics:
            topic._cancel_all()

        self._signal()
        self.thread.join(timeout=2)

    # --- commands handed to the socket thread ---

    def _command(self, *command) -> None:
        if self.shutdown:
            raise TransportClosed(f"node {self.peer_id} is closed")
        self._commands.put(command)
        self._signal()

    def _signal(self) -> None:
        with self._sig_lock:
            try:
                self._sig_tx.send(b"", flags=zmq.NOBLOCK)
            except zmq.ZMQError:
                # Either plenty of wakeups are already pending, or the
                # socket thread has exited and closed its sockets.
                pass

    def _leave(self, topic: "ZmqTopic") -> None:
        with self._lock:
            if self._topics.get(topic.name) is not topic:
                return
            del self._topics[topic.name]

        if not self.shutdown:
            self._command("unsubscribe", topic.name)
        logger.info("%s left %s", self.peer_id, topic.name)

    def _topic(self, name: str) -> Optional["ZmqTopic"]:
        with self._lock:
            return self._topics.get(name)

    # --- socket thread ---

    def run(self) -> None:
        poller = zmq.Poller()
        poller.register(self._sig_rx, zmq.POLLIN)
        poller.register(self.sub, zmq.POLLIN)

        next_beat = time.monotonic()

        try:
            while not self.shutdown:
                now = time.monotonic()
                if now >= next_beat:
                    next_beat = now + self.heartbeat
                    try:
                        self._beat()
                    except zmq.ZMQError:
                        logger.exception("node %s: heartbeat failed", self.peer_id)

                timeout = max(0.0, next_beat - time.monotonic())
                for active, _flag in poller.poll(int(timeout * 1000)):
                    try:
                        if active == self._sig_rx:
                            self._drain_commands()
                        elif active == self.sub:
                            self._sub_incoming(self.sub.recv_multipart(flags=zmq.NOBLOCK))
                    except zmq.Again:
                        continue
                    except Exception:
                        logger.exception("node %s: error in socket thread", self.peer_id)
        except Exception:
            logger.exception("node %s: socket thread failed", self.peer_id)
        finally:
            # However the thread ends, nothing will be delivered any more:
            # refuse new commands and end every subscription.
            with self._lock:
                self.shutdown = True
                topics = list(self._topics.values())

            for topic in topics:
                topic._cancel_all()

            for socket in (self.pub, self.sub, self._sig_rx):
                socket.close()
            with self._sig_lock:
                self._sig_tx.close()

    def _beat(self) -> None:
        with self._lock:
            joined = list(self._topics.keys())
        self.pub.send_multipart(heartbeat_frames(self.peer_id, joined))

    def _drain_commands(self) -> None:
        while True:
            try:
                self._sig_rx.recv(flags=zmq.NOBLOCK)
            except zmq.Again:
                break

        while True:
            try:
                command = self._commands.get(block=False)
            except queue.Empty:
                break

            name, *args = command
            if name == "publish":
                self._publish(*args)
            elif name == "connect":
                self.sub.connect(args[0])
                logger.info("%s connected to %s", self.peer_id, args[0])
            elif name == "subscribe":
                self.sub.setsockopt(zmq.SUBSCRIBE, topic_prefix(args[0]))
            elif name == "unsubscribe":
                self.sub.setsockopt(zmq.UNSUBSCRIBE, topic_prefix(args[0]))

    def _publish(self, name: str, data: bytes) -> None:
        self.pub.send_multipart(to_pub_frames(name, self.peer_id, data))

        # A node's own subscribers hear its publications, as in a gossip mesh.
        self._deliver(name, Delivery(data, self.peer_id))

    def _sub_incoming(self, parts) -> None:
        try:
            name, origin, data = from_pub_frames(parts)
        except (ValueError, UnicodeDecodeError) as exc:
            logger.debug("node %s dropped frames: %s", self.peer_id, exc)
            return

        if name == HEARTBEAT_TOPIC:
            self._heard(origin, data)
        else:
            self._deliver(name, Delivery(data, origin))

    def _heard(self, origin: str, data: bytes) -> None:
        try:
            topics = parse_heartbeat(data)
        except (ValueError, json.DecodeError) as exc:
            logger.debug("node %s dropped heartbeat from %s: %s", self.peer_id, origin, exc)
            return

        now = time.monotonic()
        horizon = now - self.expiry

        with self._lock:
            self._members[origin] = (frozenset(topics), now)

            for peer_id in [peer_id for peer_id, (joined, seen) in self._members.items() if seen < horizon]:
                del self._members[peer_id]

    def _deliver(self, name: str, delivery: Delivery) -> None:
        topic = self._topic(name)
        if topic is not None:
            topic._deliver(delivery)


class ZmqTopic(Topic):

    def __init__(self, node: Node, name: str) -> None:
        self.node = node
        self.name = name
        self._subscriptions: Set["ZmqSubscription"] = set()
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self) -> "ZmqSubscription":
        with self._lock:
            if self._closed:
                raise TransportClosed(f"topic {self.name} is closed")
            subscription = ZmqSubscription(self)
            self._subscriptions.add(subscription)
        return subscription

    def publish(self, context, data: bytes) -> None:
        if context is not None:
            context.check()
        if self._closed:
            raise TransportClosed(f"topic {self.name} is closed")
        self.node._command("publish", self.name, bytes(data))

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._cancel_all()
        self.node._leave(self)

    def _cancel_all(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.cancel()

    def _forget(self, subscription: "ZmqSubscription") -> None:
        with self._lock:
            self._subscriptions.discard(subscription)

    def _deliver(self, delivery: Delivery) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription._deliver(delivery)


class ZmqSubscription(Subscription):
    """Subscription backed by an unbounded mailbox filled by the socket thread."""

    def __init__(self, topic: ZmqTopic) -> None:
        self.topic = topic
        self.mailbox = Queue()

    def next(self, context) -> Delivery:
        try:
            return self.mailbox.get(context)
        except Closed:
            raise TransportClosed(f"subscription to {self.topic.name} is closed") from None

    def cancel(self) -> None:
        if self.mailbox.close():
            self.topic._forget(self)

    def _deliver(self, delivery: Delivery) -> None:
        try:
            self.mailbox.put(delivery)
        except Closed:
            pass


def _bind(socket, port: Optional[int], avoid: Set[int]) -> int:
    """Bind *socket* to *port*, or to the first free port in the default range."""

    if port is not None:
        port = int(port)
        try:
            socket.bind(f"tcp://*:{port}")
        except zmq.ZMQError as exc:
            raise TransportPortError(f"port already in use: {port}") from exc
        return port

    for trial in range(minimum_port, maximum_port + 1):
        if trial in avoid:
            continue
        try:
            socket.bind(f"tcp://*:{trial}")
        except zmq.ZMQError:
            # Assume this port is in use.
            continue
        return trial

    raise TransportPortError(f"no ports available in range {minimum_port}:{maximum_port}")
