"""Length-prefixed record storage backed by a file."""

from __future__ import annotations

import threading

from tinylog.config import Config
from tinylog.filesys import File

LEN_WIDTH = 8
_BYTE_ORDER = "big"


class Store:
    """Buffers appended records in memory and flushes them to its file on sync."""

    def __init__(self, file: File, config: Config) -> None:
        self._file = file
        self._lock = threading.Lock()
        self._data = bytearray(config.segment.max_store_bytes)
        existing = file.read()[:len(self._data)]
        self._data[:len(existing)] = existing
        self._initial_size = file.size()
        self.size = self._initial_size

    @property
    def name(self) -> str:
        return self._file.name

    def append(self, data: bytes) -> tuple[int, int]:
        """Append a record; return the bytes written and the record's position."""
        with self._lock:
            pos = self.size
            head = pos + LEN_WIDTH
            tail = head + len(data)
            if tail > len(self._data):
                raise EOFError("store capacity exceeded")
            self._data[pos:head] = len(data).to_bytes(LEN_WIDTH, _BYTE_ORDER)
            self._data[head:tail] = data
            written = LEN_WIDTH + len(data)
            self.size += written
            return written, pos

    def read(self, pos: int) -> bytes:
        """Return the record stored at the given position."""
        with self._lock:
            head = pos + LEN_WIDTH
            if pos < 0 or head > self.size:
                raise EOFError(f"unexpected end of store at position {pos}")
            length = int.from_bytes(self._data[pos:head], _BYTE_ORDER)
            return bytes(self._data[head:head + length])

    def read_at(self, off: int, size: int) -> bytes:
        """Return up to size raw bytes from off; fewer at the end of the store."""
        if off < 0 or size < 0:
            raise ValueError("offset and size must be non-negative")
        with self._lock:
            if off >= self.size:
                return b""
            return bytes(self._data[off:min(off + size, self.size)])

    def _sync(self) -> None:
        if self.size > self._initial_size:
            self._file.write(bytes(self._data[self._initial_size:self.size]))
        self._initial_size = self.size
        self._file.sync()

    def sync(self) -> None:
        with self._lock:
            self._sync()

    def close(self) -> None:
        with self._lock:
            self._sync()
            self._file.close()