"""JSON-RPC over MQTT publish/subscribe."""

from __future__ import annotations

import json
import queue
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterator

from tinylog.mqttclient import Message, PubSubClient
from tinylog.registry import Handler, Registry

QOS = 2
BROADCAST_TOPIC = "rpc/broadcast"
_QUEUE_SIZE = 10


class RPCError(Exception):
    """A remote call failed or returned an error response."""


def _compact(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode()


@dataclass
class Request:
    request_id: str
    sender_id: str
    method: str
    params: bytes | None = None

    def to_json(self) -> bytes:
        obj: dict[str, Any] = {"requestId": self.request_id, "sender_id": self.sender_id, "method": self.method}
        if self.params is not None:
            obj["params"] = json.loads(self.params)
        return _compact(obj)

    @classmethod
    def from_json(cls, data: bytes) -> Request:
        obj = json.loads(data)
        if not isinstance(obj, dict):
            raise ValueError("request must be a JSON object")
        params = obj.get("params")
        return cls(
            request_id=str(obj.get("requestId", "")),
            sender_id=str(obj.get("sender_id", "")),
            method=str(obj.get("method", "")),
            params=None if params is None else _compact(params),
        )


@dataclass
class ResponseError:
    code: int = 0
    message: str = ""


@dataclass
class Response:
    request_id: str
    result: bytes | None = None
    error: ResponseError = field(default_factory=ResponseError)

    def to_json(self) -> bytes:
        obj: dict[str, Any] = {"requestId": self.request_id}
        if self.result is not None:
            obj["result"] = json.loads(self.result)
        obj["error"] = {"code": self.error.code, "message": self.error.message}
        return _compact(obj)

    @classmethod
    def from_json(cls, data: bytes) -> Response:
        obj = json.loads(data)
        if not isinstance(obj, dict):
            raise ValueError("response must be a JSON object")
        result = obj.get("result")
        err = obj.get("error") or {}
        return cls(
            request_id=str(obj.get("requestId", "")),
            result=None if result is None else _compact(result),
            error=ResponseError(int(err.get("code", 0)), str(err.get("message", ""))),
        )


@dataclass(frozen=True)
class RPCResponse:
    raw: bytes | None
    error: Exception | None = None


_CLOSED = object()


class RPCClient:
    """Sends requests to peers and serves registered methods."""

    def __init__(self, mqtt: PubSubClient, client_id: str) -> None:
        self.id = client_id
        self.mqtt = mqtt
        self.registry = Registry()
        self._pending: dict[str, queue.Queue] = {}
        self._lock = threading.Lock()

    def register_method(self, name: str, handler: Handler) -> None:
        self.registry.register(name, handler)

    def start(self) -> None:
        """Drop pending requests and subscribe to incoming requests."""
        with self._lock:
            for q in self._pending.values():
                q.put(_CLOSED)
            self._pending.clear()
        try:
            self.mqtt.subscribe_multiple(
                {BROADCAST_TOPIC: QOS, f"rpc/{self.id}": QOS},
                lambda _client, msg: self._handle_request(msg.payload),
            )
        except Exception as exc:
            raise RPCError(f"failed to subscribe to requests: {exc}") from exc

    def disconnect(self) -> None:
        self.mqtt.disconnect()

    def _handle_request(self, payload: bytes) -> None:
        try:
            req = Request.from_json(payload)
        except ValueError:
            return
        if req.sender_id == self.id:
            return
        handler = self.registry.get(req.method)
        res = Response(request_id=req.request_id)
        if handler is None:
            res.error = ResponseError(404, f"method {req.method} not found")
        elif req.params is None:
            res.error = ResponseError(400, "params cannot be empty")
        else:
            try:
                result = handler(req.params)
            except Exception:
                return
            if result is None:
                return
            if isinstance(result, str):
                result = result.encode()
            try:
                json.loads(result)
                res.result = bytes(result)
            except ValueError as exc:
                res.error = ResponseError(500, f"error marshalling result: {exc}")
        try:
            self.mqtt.publish(f"rpc/response/{req.request_id}", QOS, False, res.to_json())
        except Exception as exc:
            print(f"Failed to publish response: {exc}")

    def _open(self, method: str, params: bytes | None) -> tuple[Request, queue.Queue, str]:
        req = Request(str(uuid.uuid4()), self.id, method, params)
        payload = req.to_json()
        q: queue.Queue = queue.Queue(maxsize=_QUEUE_SIZE)
        with self._lock:
            self._pending[req.request_id] = q
        topic = f"rpc/response/{req.request_id}"
        try:
            self.mqtt.subscribe(topic, QOS, lambda _c, msg: self._handle_response(msg, req.request_id))
        except Exception as exc:
            self._close(req.request_id, topic)
            raise RPCError(f"failed to subscribe to responses: {exc}") from exc
        req_payload = payload
        return req, q, topic if req_payload else topic

    def _close(self, request_id: str, topic: str) -> None:
        with self._lock:
            q = self._pending.pop(request_id, None)
        if q is not None:
            try:
                q.put_nowait(_CLOSED)
            except queue.Full:
                pass
        try:
            self.mqtt.unsubscribe(topic)
        except Exception:
            pass

    def call_rpc(self, target_id: str, method: str, params: bytes | None, timeout: float = 1.0) -> bytes:
        """Call method on one peer and return the raw JSON result."""
        req, q, topic = self._open(method, params)
        try:
            try:
                self.mqtt.publish(f"rpc/{target_id}", QOS, False, req.to_json())
            except Exception as exc:
                raise RPCError(f"failed to publish request: {exc}") from exc
            try:
                res = q.get(timeout=timeout)
            except queue.Empty:
                raise TimeoutError(f"no response to request {req.request_id}") from None
            if res is _CLOSED:
                raise RPCError(f"request {req.request_id} was cancelled")
            if res.error is not None:
                raise RPCError(f"error in response: {res.error}")
            if res.raw is None:
                raise RPCError(f"no result in response for request id {req.request_id}")
            return res.raw
        finally:
            self._close(req.request_id, topic)

    def broadcast_rpc(self, method: str, params: bytes | None, timeout: float = 1.0) -> Iterator[RPCResponse]:
        """Send method to every peer; iterate over replies until timeout."""
        req, q, topic = self._open(method, params)
        try:
            self.mqtt.publish(BROADCAST_TOPIC, QOS, False, req.to_json())
        except Exception as exc:
            self._close(req.request_id, topic)
            raise RPCError(f"failed to publish broadcast request: {exc}") from exc
        timer = threading.Timer(timeout, self._close, args=(req.request_id, topic))
        timer.daemon = True
        timer.start()
        deadline = time.monotonic() + timeout

        def replies() -> Iterator[RPCResponse]:
            while True:
                try:
                    item = q.get(timeout=max(deadline - time.monotonic(), 0) + 0.5)
                except queue.Empty:
                    return
                if item is _CLOSED:
                    return
                yield item

        return replies()

    def _handle_response(self, msg: Message, request_id: str) -> None:
        try:
            res = Response.from_json(msg.payload)
        except (ValueError, TypeError):
            return
        if res.request_id != request_id:
            return
        with self._lock:
            q = self._pending.get(res.request_id)
        if q is None:
            print(f"No pending request for response id {res.request_id}")
            return
        if res.error.code != 0:
            print(f"Error in response {res.request_id}: {res.error.message}")
            reply = RPCResponse(None, RPCError(f"error in response: {res.error.message}"))
        elif res.result is None:
            print(f"No result in response for request id {res.request_id}")
            return
        else:
            reply = RPCResponse(res.result)
        try:
            q.put_nowait(reply)
        except queue.Full:
            print(f"[WARN] reply queue full: dropping reply for {request_id}")