"""An in-memory MQTT broker and client for tests and local runs."""

from __future__ import annotations

import threading
from collections import defaultdict

from tinylog.mqttclient import Message, MessageHandler


class Broker:
    """Routes published messages synchronously to subscribed handlers."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.handlers: defaultdict[str, list[MessageHandler]] = defaultdict(list)


class MockMQTTClient:
    def __init__(self, broker: Broker, client_id: str) -> None:
        self.broker = broker
        self.id = client_id

    def subscribe(self, topic: str, qos: int, callback: MessageHandler) -> None:
        with self.broker.lock:
            self.broker.handlers[topic].append(callback)

    def subscribe_multiple(self, topics: dict[str, int], callback: MessageHandler) -> None:
        with self.broker.lock:
            for topic in topics:
                self.broker.handlers[topic].append(callback)

    def unsubscribe(self, *args: str) -> None:
        with self.broker.lock:
            for topic in args:
                self.broker.handlers.pop(topic, None)

    def publish(self, topic: str, qos: int, retained: bool, payload: bytes) -> None:
        if not isinstance(payload, (bytes, bytearray)):
            raise TypeError("payload must be bytes")
        with self.broker.lock:
            handlers = list(self.broker.handlers.get(topic, ()))
        message = Message(topic, bytes(payload))
        for handler in handlers:
            handler(self, message)

    def disconnect(self) -> None:
        with self.broker.lock:
            self.broker.handlers.clear()