"""Command that starts one node of the cluster."""

from __future__ import annotations

import argparse
import os

from tinylog.app import run
from tinylog.mqttclient import MQTTError

DEFAULT_BROKER_IP = "tcp://mosquitto"
DEFAULT_NODE_NUM = 3
DEFAULT_NODE_INDEX = 0
BROKER_PORT = 1883


def node_ids(node_num: int, node_index: int) -> tuple[str, list[str]]:
    """Return this node's id and the ids of its peers."""
    if not 0 <= node_index < node_num:
        raise ValueError(f"node index must be in range [0, {node_num}), got {node_index}")
    ids = [f"node-{i:02d}" for i in range(node_num)]
    return ids[node_index], ids[:node_index] + ids[node_index + 1:]


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        print(f'env: parse error on field "{name}": invalid integer {value!r}')
        return default


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="tinylog", description="Run one Raft node over MQTT.")
    parser.add_argument("--broker-ip", default=os.environ.get("BROKER_IP", DEFAULT_BROKER_IP))
    parser.add_argument("--node-num", type=int, default=_env_int("NODE_NUM", DEFAULT_NODE_NUM))
    parser.add_argument("--node-index", type=int, default=_env_int("NODE_INDEX", DEFAULT_NODE_INDEX))
    args = parser.parse_args(argv)

    try:
        node_id, peer_ids = node_ids(args.node_num, args.node_index)
    except ValueError as exc:
        print(exc)
        return 1

    try:
        run(f"{args.broker_ip}:{BROKER_PORT}", node_id, peer_ids)
    except (OSError, ValueError, MQTTError) as exc:
        print(f"Error running node: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())