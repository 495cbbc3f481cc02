"""ZeroMQ publish/subscribe transport."""

from .node import Node, ZmqSubscription, ZmqTopic, maximum_port, minimum_port
