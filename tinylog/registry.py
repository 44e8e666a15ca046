"""Method registry for JSON-RPC handlers."""

from __future__ import annotations

from typing import Any, Callable, Optional

Handler = Callable[[bytes], Optional[bytes]]


class Registry:
    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def register(self, name: str, handler: Handler) -> None:
        self._handlers[name] = handler

    def get(self, name: str) -> Handler | None:
        """Return the handler for name, or None when none is registered."""
        return self._handlers.get(name)


def register_proto_handler(client: Any, request_type: Any, handler: Callable[[Any], Any], method_name: str) -> None:
    """Register a handler taking and returning JSON-serialisable message objects."""

    def rpc_handler(params: bytes) -> bytes:
        try:
            request = request_type.from_json(params)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"failed to unmarshal {method_name}: {exc}") from exc
        try:
            reply = handler(request)
        except Exception as exc:
            raise RuntimeError(f"failed to handle {method_name}: {exc}") from exc
        return reply.to_json()

    client.register_method(method_name, rpc_handler)