"""MQTT client used as the transport of the RPC layer."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Protocol
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

DEFAULT_PORT = 1883
DEFAULT_TIMEOUT = 30.0
_KEEPALIVE = 60


class MQTTError(Exception):
    """An MQTT operation was refused by the client library or the broker."""


@dataclass
class MQTTConfig:
    broker: str
    client_id: str = ""
    username: str = ""
    password: str = ""
    timeout: float = DEFAULT_TIMEOUT


@dataclass(frozen=True)
class Message:
    """A message received on a topic."""

    topic: str
    payload: bytes


class PubSubClient(Protocol):
    def subscribe(self, topic: str, qos: int, callback: MessageHandler) -> None: ...

    def subscribe_multiple(self, topics: dict[str, int], callback: MessageHandler) -> None: ...

    def unsubscribe(self, *args: str) -> None: ...

    def publish(self, topic: str, qos: int, retained: bool, payload: bytes) -> None: ...

    def disconnect(self) -> None: ...


MessageHandler = Callable[[PubSubClient, Message], None]


def _parse_broker(broker: str) -> tuple[str, int]:
    target = broker if "://" in broker else f"tcp://{broker}"
    parts = urlsplit(target)
    if not parts.hostname:
        raise ValueError(f"invalid broker address: {broker!r}")
    return parts.hostname, parts.port or DEFAULT_PORT


def _check(rc: int, action: str) -> None:
    if rc != mqtt.MQTT_ERR_SUCCESS:
        raise MQTTError(f"{action} failed: {mqtt.error_string(rc)}")


class MQTTClient:
    """A connected client; operations raise MQTTError when refused."""

    def __init__(self, config: MQTTConfig) -> None:
        self.id = config.client_id
        self._timeout = config.timeout or DEFAULT_TIMEOUT
        host, port = _parse_broker(config.broker)
        if hasattr(mqtt, "CallbackAPIVersion"):
            self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=config.client_id)
        else:
            self._client = mqtt.Client(client_id=config.client_id)
        if config.username or config.password:
            self._client.username_pw_set(config.username or None, config.password or None)

        connected = threading.Event()
        outcome: dict[str, object] = {}

        def on_connect(client, userdata, flags, reason_code, properties=None):
            failed = getattr(reason_code, "is_failure", reason_code != 0)
            outcome["error"] = f"connection refused: {reason_code}" if failed else None
            connected.set()

        self._client.on_connect = on_connect
        print(f"Connecting to MQTT broker at {config.broker}")
        self._client.connect(host, port, _KEEPALIVE)
        self._client.loop_start()
        if not connected.wait(self._timeout):
            self._client.loop_stop()
            raise TimeoutError(f"timed out connecting to {config.broker}")
        if outcome.get("error"):
            self._client.loop_stop()
            raise MQTTError(str(outcome["error"]))

    def _wrap(self, callback: MessageHandler):
        def on_message(client, userdata, msg):
            callback(self, Message(msg.topic, bytes(msg.payload)))
        return on_message

    def subscribe(self, topic: str, qos: int, callback: MessageHandler) -> None:
        self._client.message_callback_add(topic, self._wrap(callback))
        rc, _ = self._client.subscribe(topic, qos)
        _check(rc, f"subscribe to {topic}")

    def subscribe_multiple(self, topics: dict[str, int], callback: MessageHandler) -> None:
        handler = self._wrap(callback)
        for topic in topics:
            self._client.message_callback_add(topic, handler)
        rc, _ = self._client.subscribe(list(topics.items()))
        _check(rc, "subscribe")

    def unsubscribe(self, *args: str) -> None:
        for topic in args:
            self._client.message_callback_remove(topic)
        rc, _ = self._client.unsubscribe(list(args))
        _check(rc, "unsubscribe")

    def publish(self, topic: str, qos: int, retained: bool, payload: bytes) -> None:
        info = self._client.publish(topic, payload, qos, retained)
        _check(info.rc, f"publish to {topic}")
        if qos > 0:
            info.wait_for_publish(self._timeout)

    def disconnect(self) -> None:
        self._client.disconnect()
        self._client.loop_stop()