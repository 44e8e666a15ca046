"""A cluster of Raft nodes on an in-process transport, for exercising the protocol."""

from __future__ import annotations

import queue
import threading
import time
from typing import Any, Callable

from tinylog.commitlog import Log
from tinylog.config import Config, SegmentConfig
from tinylog.fakerpc import FakeRPCClient, FakeRPCTransporter
from tinylog.filesys import new_file_system
from tinylog.messages import CommitEntry
from tinylog.raft import Raft

LOG_MAX_BYTES = 1024
LEADER_TIMEOUT = 10.0
POLL_INTERVAL = 0.1

_STOP = object()


def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float,
    interval: float,
    message: str = "condition not met",
) -> None:
    """Poll condition until it holds; raise TimeoutError once timeout has passed."""
    deadline = time.monotonic() + timeout
    while True:
        if condition():
            return
        if time.monotonic() > deadline:
            raise TimeoutError(f"timeout: {message}")
        time.sleep(interval)


def _leader_of_highest_term(infos: list[dict[str, Any]]) -> tuple[str, int]:
    term, leader = 0, ""
    for info in infos:
        if info["current_term"] > term:
            term = info["current_term"]
            leader = info["leader_id"]
    return leader, term


class Harness:
    """n Raft nodes, each with its own in-memory log, collecting their commits."""

    def __init__(self, n: int) -> None:
        self.n = n
        self.node_ids = [f"node-{i:02d}" for i in range(n)]
        self.transporter = FakeRPCTransporter()
        self.nodes: list[Raft] = []
        self.rpc_clients: list[FakeRPCClient] = []
        self.connected: list[bool] = []
        self.commit_queues: list[queue.Queue] = []
        self.commits: list[list[CommitEntry]] = [[] for _ in range(n)]
        self._lock = threading.Lock()
        self._shut_down = False

        config = Config(SegmentConfig(max_store_bytes=LOG_MAX_BYTES, max_index_bytes=LOG_MAX_BYTES))
        for node_id in self.node_ids:
            log = Log(new_file_system(), "tmp", config)
            client = FakeRPCClient(node_id, self.transporter)
            peers = [peer for peer in self.node_ids if peer != node_id]
            commits: queue.Queue = queue.Queue()
            node = Raft(node_id, log, peers, client, commits)
            self.transporter.register_node(node)
            self.nodes.append(node)
            self.rpc_clients.append(client)
            self.connected.append(True)
            self.commit_queues.append(commits)

        for i in range(n):
            threading.Thread(target=self._collect_commits, args=(i,), daemon=True).start()

    def __enter__(self) -> Harness:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    def _position(self, node_id: str) -> int:
        try:
            return self.node_ids.index(node_id)
        except ValueError:
            raise KeyError(f"node with ID {node_id} not found") from None

    def _collect_commits(self, i: int) -> None:
        while True:
            entry = self.commit_queues[i].get()
            if entry is _STOP:
                return
            with self._lock:
                self.commits[i].append(entry)

    def shutdown(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        for i in range(self.n):
            self.rpc_clients[i].disconnect()
            self.nodes[i].stop()
            self.connected[i] = False
            self.commit_queues[i].put(_STOP)

    def get_all_node_infos(self) -> list[dict[str, Any]]:
        return [node.get_node_info() for node in self.nodes]

    def _has_single_leader(self) -> bool:
        infos = self.get_all_node_infos()
        if not infos:
            return False
        leader, term = _leader_of_highest_term(infos)
        if term == 0 or not leader:
            return False
        leaders = 0
        for info in infos:
            if info["current_term"] != term:
                continue
            if info["leader_id"] != leader:
                return False
            if info["state"] == "Leader":
                leaders += 1
                if info["id"] != leader:
                    return False
        return leaders == 1

    def check_single_leader(self) -> tuple[str, int]:
        """Wait until the nodes agree on one leader; return its id and term."""
        wait_for_condition(self._has_single_leader, LEADER_TIMEOUT, POLL_INTERVAL, "invalid node status")
        return _leader_of_highest_term(self.get_all_node_infos())

    def check_no_leader(self) -> None:
        for info in self.get_all_node_infos():
            if info["state"] == "Leader":
                raise AssertionError(f"node {info['id']} is unexpectedly the leader")

    def stop_node(self, node_id: str) -> None:
        i = self._position(node_id)
        self.nodes[i].stop()
        self.connected[i] = False

    def resume_node(self, node_id: str) -> None:
        i = self._position(node_id)
        self.nodes[i].resume()
        self.connected[i] = True

    def disconnect_node(self, node_id: str) -> None:
        i = self._position(node_id)
        self.rpc_clients[i].disconnect()
        self.connected[i] = False

    def reconnect_node(self, node_id: str) -> None:
        i = self._position(node_id)
        self.rpc_clients[i].reconnect()
        self.connected[i] = True

    def submit_command(self, node_id: str, command: str) -> bool:
        return self.nodes[self._position(node_id)].submit(command)

    def check_committed(self, cmd: str) -> tuple[int, int]:
        """Check connected nodes committed the same commands up to cmd.

        Return how many connected nodes committed cmd and its index.
        """
        with self._lock:
            connected = [i for i in range(self.n) if self.connected[i]]
            lengths = {len(self.commits[i]) for i in connected}
            if len(lengths) > 1:
                raise AssertionError(f"connected nodes committed different numbers of entries: {lengths}")
            commits_len = lengths.pop() if lengths else 0
            for c in range(commits_len):
                commands = {self.commits[i][c].command for i in connected}
                if len(commands) > 1:
                    raise AssertionError(f"nodes disagree on command at position {c}: {commands}")
                if commands.pop() != cmd:
                    continue
                indexes = {self.commits[i][c].index for i in connected}
                if len(indexes) > 1:
                    raise AssertionError(f"nodes disagree on index of {cmd}: {indexes}")
                return len(connected), indexes.pop()
        raise AssertionError(f"cmd={cmd} not found in commits")

    def check_committed_n(self, cmd: str, n: int) -> None:
        """Check cmd was committed by exactly n connected nodes."""
        nc, _ = self.check_committed(cmd)
        if nc != n:
            raise AssertionError(f"check_committed_n got nc={nc}, want {n}")