"""Wire messages exchanged by log segments, Raft nodes and the RPC layer.

Log records and Raft log entries use a compact protobuf-compatible binary
encoding; RPC requests and replies travel as JSON objects.
"""

from __future__ import annotations

import json
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_BYTES = 2
_WIRE_FIXED32 = 5


def _encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        bits = value & 0x7F
        value >>= 7
        if value:
            out.append(bits | 0x80)
        else:
            out.append(bits)
            return bytes(out)


def _decode_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        if shift >= 64:
            raise ValueError("varint overflow")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7


def _varint_field(number: int, value: int) -> bytes:
    if not value:
        return b""
    return _encode_varint(number << 3 | _WIRE_VARINT) + _encode_varint(value)


def _bytes_field(number: int, value: bytes) -> bytes:
    if not value:
        return b""
    return _encode_varint(number << 3 | _WIRE_BYTES) + _encode_varint(len(value)) + value


def _iter_fields(data: bytes) -> Iterator[tuple[int, int, Any]]:
    pos = 0
    while pos < len(data):
        key, pos = _decode_varint(data, pos)
        number, wire = key >> 3, key & 0x7
        if number == 0:
            raise ValueError("invalid field number 0")
        if wire == _WIRE_VARINT:
            value, pos = _decode_varint(data, pos)
        elif wire == _WIRE_BYTES:
            length, pos = _decode_varint(data, pos)
            end = pos + length
            if end > len(data):
                raise ValueError("truncated length-delimited field")
            value = bytes(data[pos:end])
            pos = end
        elif wire in (_WIRE_FIXED64, _WIRE_FIXED32):
            width = 8 if wire == _WIRE_FIXED64 else 4
            if pos + width > len(data):
                raise ValueError("truncated fixed-width field")
            value = bytes(data[pos:pos + width])
            pos += width
        else:
            raise ValueError(f"unsupported wire type {wire}")
        yield number, wire, value


def _expect_wire(number: int, wire: int, expected: int) -> None:
    if wire != expected:
        raise ValueError(f"wrong wire type {wire} for field {number}")


def _dump(obj: dict[str, Any]) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode()


def _load(data: bytes | bytearray | str) -> dict[str, Any]:
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode()
    obj = json.loads(data)
    if not isinstance(obj, dict):
        raise ValueError("expected a JSON object")
    return obj


def _uint(obj: dict[str, Any], key: str) -> int:
    value = obj.get(key)
    if value is None:
        return 0
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"field {key!r} must be an unsigned integer")
    return value


def _float(obj: dict[str, Any], key: str) -> float:
    value = obj.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be a number")
    return float(value)


def _bool(obj: dict[str, Any], key: str) -> bool:
    value = obj.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r} must be a boolean")
    return value


def _str(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


@dataclass
class Record:
    """A value stored in the commit log together with its offset."""

    value: bytes = b""
    offset: int = 0

    def marshal(self) -> bytes:
        return _bytes_field(1, bytes(self.value)) + _varint_field(2, self.offset)

    @classmethod
    def unmarshal(cls, data: bytes) -> Record:
        record = cls()
        for number, wire, value in _iter_fields(data):
            if number == 1:
                _expect_wire(number, wire, _WIRE_BYTES)
                record.value = value
            elif number == 2:
                _expect_wire(number, wire, _WIRE_VARINT)
                record.offset = value
        return record


@dataclass
class LogEntry:
    """A Raft log entry: a command and the term it was received in."""

    command: str = ""
    term: int = 0

    def marshal(self) -> bytes:
        return _bytes_field(1, self.command.encode()) + _varint_field(2, self.term)

    @classmethod
    def unmarshal(cls, data: bytes) -> LogEntry:
        entry = cls()
        for number, wire, value in _iter_fields(data):
            if number == 1:
                _expect_wire(number, wire, _WIRE_BYTES)
                try:
                    entry.command = value.decode()
                except UnicodeDecodeError as exc:
                    raise ValueError("command is not valid UTF-8") from exc
            elif number == 2:
                _expect_wire(number, wire, _WIRE_VARINT)
                entry.term = value
        return entry

    def _to_dict(self) -> dict[str, Any]:
        return {"command": self.command, "term": self.term}

    @classmethod
    def _from_dict(cls, obj: Any) -> LogEntry:
        if not isinstance(obj, dict):
            raise ValueError("log entry must be a JSON object")
        return cls(command=_str(obj, "command"), term=_uint(obj, "term"))


@dataclass(frozen=True)
class CommitEntry:
    """A command that the cluster has committed, as delivered to the application."""

    command: str
    index: int
    term: int


@dataclass
class RequestVoteRequest:
    term: int = 0
    candidate_id: str = ""
    is_log_stored: bool = False
    last_log_index: int = 0
    last_log_term: int = 0

    def to_json(self) -> bytes:
        return _dump({
            "term": self.term,
            "candidateId": self.candidate_id,
            "isLogStored": self.is_log_stored,
            "lastLogIndex": self.last_log_index,
            "lastLogTerm": self.last_log_term,
        })

    @classmethod
    def from_json(cls, data: bytes | str) -> RequestVoteRequest:
        obj = _load(data)
        return cls(
            term=_uint(obj, "term"),
            candidate_id=_str(obj, "candidateId"),
            is_log_stored=_bool(obj, "isLogStored"),
            last_log_index=_uint(obj, "lastLogIndex"),
            last_log_term=_uint(obj, "lastLogTerm"),
        )


@dataclass
class RequestVoteReply:
    term: int = 0
    vote_granted: bool = False

    def to_json(self) -> bytes:
        return _dump({"term": self.term, "voteGranted": self.vote_granted})

    @classmethod
    def from_json(cls, data: bytes | str) -> RequestVoteReply:
        obj = _load(data)
        return cls(term=_uint(obj, "term"), vote_granted=_bool(obj, "voteGranted"))


@dataclass
class AppendEntriesRequest:
    term: int = 0
    leader_id: str = ""
    prev_log_index: int = 0
    prev_log_term: int = 0
    entries: list[LogEntry] = field(default_factory=list)
    leader_commit: int = 0
    follower_has_entries: bool = False
    leader_has_comitted: bool = False

    def to_json(self) -> bytes:
        return _dump({
            "term": self.term,
            "leaderId": self.leader_id,
            "prevLogIndex": self.prev_log_index,
            "prevLogTerm": self.prev_log_term,
            "entries": [entry._to_dict() for entry in self.entries],
            "leaderCommit": self.leader_commit,
            "followerHasEntries": self.follower_has_entries,
            "leaderHasComitted": self.leader_has_comitted,
        })

    @classmethod
    def from_json(cls, data: bytes | str) -> AppendEntriesRequest:
        obj = _load(data)
        raw_entries = obj.get("entries") or []
        if not isinstance(raw_entries, list):
            raise ValueError("field 'entries' must be a list")
        return cls(
            term=_uint(obj, "term"),
            leader_id=_str(obj, "leaderId"),
            prev_log_index=_uint(obj, "prevLogIndex"),
            prev_log_term=_uint(obj, "prevLogTerm"),
            entries=[LogEntry._from_dict(item) for item in raw_entries],
            leader_commit=_uint(obj, "leaderCommit"),
            follower_has_entries=_bool(obj, "followerHasEntries"),
            leader_has_comitted=_bool(obj, "leaderHasComitted"),
        )


@dataclass
class AppendEntriesReply:
    term: int = 0
    success: bool = False

    def to_json(self) -> bytes:
        return _dump({"term": self.term, "success": self.success})

    @classmethod
    def from_json(cls, data: bytes | str) -> AppendEntriesReply:
        obj = _load(data)
        return cls(term=_uint(obj, "term"), success=_bool(obj, "success"))


@dataclass
class Metrics:
    """A sensor reading."""

    timestamp: str = ""
    sensor_id: str = ""
    temperature: float = 0.0
    illuminance: float = 0.0
    status: str = ""

    def to_json(self) -> bytes:
        return _dump({
            "timestamp": self.timestamp,
            "sensorId": self.sensor_id,
            "temperature": self.temperature,
            "illuminance": self.illuminance,
            "status": self.status,
        })

    @classmethod
    def from_json(cls, data: bytes | str) -> Metrics:
        obj = _load(data)
        return cls(
            timestamp=_str(obj, "timestamp"),
            sensor_id=_str(obj, "sensorId"),
            temperature=_float(obj, "temperature"),
            illuminance=_float(obj, "illuminance"),
            status=_str(obj, "status"),
        )


def random_metrics_json(client_id: str) -> str:
    """Return a JSON-encoded random sensor reading for the given sensor."""
    metrics = Metrics(
        timestamp=datetime.now().astimezone().isoformat(timespec="seconds"),
        sensor_id=client_id,
        temperature=random.random() * 30,
        illuminance=random.random() * 100,
        status="OK",
    )
    return metrics.to_json().decode()