"""ZMQ multipart framing for room traffic.

Publish (PUB/SUB)
    topic_with_trailing_dot, version, origin, data

The heartbeat announcing a node's membership travels the same way, on the
reserved topic :data:`HEARTBEAT_TOPIC`, with a JSON object as its data.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

from ... import json


# Version of the on-the-wire framing implemented here, a single byte.

VERSION = b"a"

HEARTBEAT_TOPIC = "_peers"


def topic_prefix(name: str) -> bytes:
    """Subscription prefix for topic *name*.

    The trailing dot keeps a subscription to ``chat-room:a`` from also
    matching ``chat-room:ab``.
    """

    return (name + ".").encode()


def to_pub_frames(name: str, origin: str, data: bytes) -> Tuple[bytes, ...]:
    """Encode one publication for a PUB socket."""

    return (topic_prefix(name), VERSION, origin.encode(), bytes(data))


def from_pub_frames(parts: Sequence[bytes]) -> Tuple[str, str, bytes]:
    """Decode PUB/SUB parts into ``(topic, origin, data)``.

    Raises ValueError for anything this version cannot interpret.
    """

    if len(parts) != 4:
        raise ValueError(f"invalid PUB message: {len(parts)} parts")

    topic, their_version, origin, data = parts
    if their_version != VERSION:
        raise ValueError(f"message is framing {their_version!r}, recipient expects {VERSION!r}")

    topic_s = topic.decode()
    if not topic_s.endswith("."):
        raise ValueError(f"invalid topic frame: {topic!r}")

    return topic_s[:-1], origin.decode(), data


def heartbeat_frames(origin: str, topics: Iterable[str]) -> Tuple[bytes, ...]:
    data = json.dumps({"id": origin, "topics": sorted(topics)})
    return to_pub_frames(HEARTBEAT_TOPIC, origin, data)


def parse_heartbeat(data: bytes) -> List[str]:
    """Return the topic names listed in a heartbeat payload."""

    beat = json.loads(data)
    topics = beat.get("topics") if isinstance(beat, dict) else None
    if not isinstance(topics, list) or not all(isinstance(t, str) for t in topics):
        raise ValueError("invalid heartbeat payload")
    return topics
