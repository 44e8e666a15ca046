"""Replicated commit log: Raft consensus over MQTT-carried JSON-RPC with an in-memory segmented log."""

__version__ = "0.1.0"