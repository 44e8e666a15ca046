"""An in-process RPC transport that calls Raft nodes directly."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from tinylog.messages import AppendEntriesRequest, RequestVoteRequest
from tinylog.raft import APPEND_ENTRIES_METHOD, REQUEST_VOTE_METHOD, RPC_TIMEOUT

_DONE = object()

_DISPATCH: dict[str, tuple[type, Callable[[Any, Any], Any]]] = {
    REQUEST_VOTE_METHOD: (
        RequestVoteRequest,
        lambda node, request: node.handle_request_vote_request(request),
    ),
    APPEND_ENTRIES_METHOD: (
        AppendEntriesRequest,
        lambda node, request: node.handle_append_entries_request(request),
    ),
}


def _dispatch(node: Any, method: str, params: bytes) -> bytes:
    """Run method on node and return the JSON reply, or b"" when it gave none."""
    try:
        request_type, handle = _DISPATCH[method]
    except KeyError:
        raise ValueError(f"unknown method: {method}") from None
    try:
        request = request_type.from_json(params)
    except ValueError:
        request = request_type()
    try:
        reply = handle(node, request)
    except Exception:
        return b""
    return reply.to_json()


@dataclass(frozen=True)
class FakeRPCResponse:
    raw: bytes | None
    error: Exception | None = None


class FakeRPCTransporter:
    """Routes calls between registered nodes; nodes can be cut off and restored."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._nodes: dict[str, Any] = {}
        self._disconnected: dict[str, bool] = {}

    def register_node(self, node: Any) -> None:
        with self._lock:
            self._nodes[node.id] = node
            self._disconnected[node.id] = False

    def disconnect_node(self, node_id: str) -> None:
        with self._lock:
            if node_id in self._disconnected:
                self._disconnected[node_id] = True

    def reconnect_node(self, node_id: str) -> None:
        with self._lock:
            if node_id in self._disconnected:
                self._disconnected[node_id] = False

    def _is_disconnected(self, node_id: str) -> bool:
        return self._disconnected.get(node_id, True)

    def broadcast(self, sender: str, method: str, params: bytes) -> Iterator[FakeRPCResponse]:
        """Send to every other connected node; iterate over the replies."""
        with self._lock:
            if self._is_disconnected(sender):
                raise ConnectionError(f"node {sender} is disconnected")
            targets = [
                node for node_id, node in self._nodes.items()
                if node_id != sender and not self._is_disconnected(node_id)
            ]

        replies: queue.Queue = queue.Queue()

        def worker(node: Any) -> None:
            try:
                raw = _dispatch(node, method, params)
                if raw:
                    replies.put(FakeRPCResponse(raw))
            except ValueError:
                pass
            finally:
                replies.put(_DONE)

        for node in targets:
            threading.Thread(target=worker, args=(node,), daemon=True).start()

        def collect() -> Iterator[FakeRPCResponse]:
            remaining = len(targets)
            while remaining:
                item = replies.get()
                if item is _DONE:
                    remaining -= 1
                else:
                    yield item

        return collect()

    def call(self, sender: str, target_id: str, method: str, params: bytes) -> bytes:
        """Call method on one node and return its JSON reply (b"" if it gave none)."""
        with self._lock:
            if self._is_disconnected(sender):
                raise ConnectionError(f"node {sender} is disconnected")
            if self._is_disconnected(target_id):
                raise ConnectionError(f"target node {target_id} is disconnected")
            node = self._nodes[target_id]
        return _dispatch(node, method, params)


class FakeRPCClient:
    """The RPC client of one node on a FakeRPCTransporter."""

    def __init__(self, node_id: str, transporter: FakeRPCTransporter) -> None:
        self.id = node_id
        self.transporter = transporter

    def call_rpc(self, target_id: str, method: str, params: bytes, timeout: float = RPC_TIMEOUT) -> bytes:
        return self.transporter.call(self.id, target_id, method, params)

    def broadcast_rpc(self, method: str, params: bytes, timeout: float = RPC_TIMEOUT) -> Iterator[FakeRPCResponse]:
        return self.transporter.broadcast(self.id, method, params)

    def disconnect(self) -> None:
        self.transporter.disconnect_node(self.id)

    def reconnect(self) -> None:
        self.transporter.reconnect_node(self.id)