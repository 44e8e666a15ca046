"""Wiring of a Raft node to its log and to MQTT-based RPC."""

from __future__ import annotations

import queue
import time
from typing import Iterable

from tinylog.commitlog import Log
from tinylog.config import Config, SegmentConfig
from tinylog.filesys import new_file_system
from tinylog.messages import AppendEntriesRequest, RequestVoteRequest
from tinylog.mqttclient import MQTTClient, MQTTConfig
from tinylog.raft import APPEND_ENTRIES_METHOD, REQUEST_VOTE_METHOD, Raft
from tinylog.registry import register_proto_handler
from tinylog.rpc import RPCClient

LOG_DIR = "tmp"
LOG_MAX_BYTES = 1024
COMMIT_QUEUE_SIZE = 100


def setup_log(config: Config) -> Log:
    """Create a commit log on a fresh in-memory file system."""
    return Log(new_file_system(), LOG_DIR, config)


def setup_raft_node(rpc_client: RPCClient, node_id: str, peer_ids: Iterable[str], log: Log) -> Raft:
    """Create a Raft node, start the RPC client and register the Raft methods."""
    commits: queue.Queue = queue.Queue(maxsize=COMMIT_QUEUE_SIZE)
    node = Raft(node_id, log, list(peer_ids), rpc_client, commits)
    rpc_client.start()
    register_proto_handler(rpc_client, RequestVoteRequest, node.handle_request_vote_request, REQUEST_VOTE_METHOD)
    register_proto_handler(rpc_client, AppendEntriesRequest, node.handle_append_entries_request, APPEND_ENTRIES_METHOD)
    return node


def run(broker_addr: str, node_id: str, peer_ids: Iterable[str]) -> None:
    """Run one node against an MQTT broker until interrupted."""
    config = Config(SegmentConfig(max_store_bytes=LOG_MAX_BYTES, max_index_bytes=LOG_MAX_BYTES))
    log = setup_log(config)
    try:
        mqtt_client = MQTTClient(MQTTConfig(broker=broker_addr, client_id=node_id))
        rpc_client = RPCClient(mqtt_client, node_id)
        node = setup_raft_node(rpc_client, node_id, peer_ids, log)
        try:
            while True:
                time.sleep(3600)
        except KeyboardInterrupt:
            pass
        finally:
            node.stop()
            rpc_client.disconnect()
    finally:
        log.close()