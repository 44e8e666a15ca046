from unittest.mock import MagicMock, patch

import pytest

from tinylog.mqttclient import Message, MQTTClient, MQTTConfig, MQTTError


def _fake(rc=0):
    inst = MagicMock()

    def connect(host, port, keepalive=60):
        inst.on_connect(inst, None, {}, rc)
        return 0

    inst.connect.side_effect = connect
    inst.subscribe.return_value = (0, 1)
    inst.unsubscribe.return_value = (0, 2)
    inst.publish.return_value.rc = 0
    return inst


def test_connect_uses_broker_host_and_port():
    inst = _fake()
    with patch("paho.mqtt.client.Client", return_value=inst):
        client = MQTTClient(MQTTConfig(broker="tcp://broker.example.com:1883", client_id="node-00"))
    host, port, _ = inst.connect.call_args.args
    assert (host, port) == ("broker.example.com", 1883)
    assert client.id == "node-00"


def test_refused_connection_raises():
    inst = _fake(rc=5)
    with patch("paho.mqtt.client.Client", return_value=inst):
        with pytest.raises(MQTTError):
            MQTTClient(MQTTConfig(broker="tcp://broker.example.com"))


def test_credentials_are_passed():
    inst = _fake()
    password = "password"
    with patch("paho.mqtt.client.Client", return_value=inst):
        client = MQTTClient(MQTTConfig(broker="broker.example.com", client_id="node-01",
                                       username="user", password=password))
    assert client.id == "node-01"
    assert inst.username_pw_set.call_args.args == ("user", "password")


def test_subscribe_delivers_wrapped_message():
    inst = _fake()
    with patch("paho.mqtt.client.Client", return_value=inst):
        client = MQTTClient(MQTTConfig(broker="broker.example.com"))
    got = []
    client.subscribe("rpc/x", 2, lambda c, m: got.append((c, m)))
    topic, handler = inst.message_callback_add.call_args.args
    assert topic == "rpc/x"
    raw = MagicMock(topic="rpc/x", payload=b"hi")
    handler(inst, None, raw)
    assert got == [(client, Message("rpc/x", b"hi"))]


def test_publish_failure_raises():
    inst = _fake()
    with patch("paho.mqtt.client.Client", return_value=inst):
        client = MQTTClient(MQTTConfig(broker="broker.example.com"))
    inst.publish.return_value.rc = 4
    with pytest.raises(MQTTError):
        client.publish("t", 0, False, b"x")


def test_invalid_broker_address():
    with pytest.raises(ValueError):
        MQTTClient(MQTTConfig(broker="tcp://"))