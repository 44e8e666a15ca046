import pytest

from tinylog.broker import Broker, MockMQTTClient
from tinylog.mqttclient import Message


def _pair():
    broker = Broker()
    return MockMQTTClient(broker, "A"), MockMQTTClient(broker, "B")


def test_publish_reaches_subscriber():
    a, b = _pair()
    got = []
    b.subscribe("t", 0, lambda c, m: got.append((c.id, m)))
    a.publish("t", 0, False, b"data")
    assert got == [("A", Message("t", b"data"))]


def test_subscribe_multiple_and_unsubscribe():
    a, b = _pair()
    got = []
    b.subscribe_multiple({"x": 0, "y": 0}, lambda c, m: got.append(m.topic))
    a.publish("x", 0, False, b"")
    a.publish("y", 0, False, b"")
    b.unsubscribe("x")
    a.publish("x", 0, False, b"")
    assert got == ["x", "y"]


def test_disconnect_clears_all_handlers():
    a, b = _pair()
    got = []
    b.subscribe("t", 0, lambda c, m: got.append(m))
    a.disconnect()
    a.publish("t", 0, False, b"z")
    assert got == []


def test_non_bytes_payload_rejected():
    a, _ = _pair()
    with pytest.raises(TypeError):
        a.publish("t", 0, False, "text")