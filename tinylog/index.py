"""Fixed-width index mapping relative record offsets to store positions."""

from __future__ import annotations

import threading

from tinylog.config import Config
from tinylog.filesys import File

OFF_WIDTH = 4
POS_WIDTH = 8
ENT_WIDTH = OFF_WIDTH + POS_WIDTH
_BYTE_ORDER = "big"


class Index:
    """Buffers index entries in memory and flushes them to its file on sync."""

    def __init__(self, file: File, config: Config) -> None:
        self._file = file
        self._lock = threading.Lock()
        self._data = bytearray(config.segment.max_index_bytes)
        existing = file.read()[:len(self._data)]
        self._data[:len(existing)] = existing
        self._initial_size = file.size()
        self.size = self._initial_size

    @property
    def name(self) -> str:
        return self._file.name

    def read(self, entry: int) -> tuple[int, int]:
        """Return (relative offset, position) of an entry; -1 reads the last one."""
        with self._lock:
            if self.size == 0:
                raise EOFError("index is empty")
            if entry == -1:
                entry = self.size // ENT_WIDTH - 1
            if entry < 0:
                raise EOFError(f"no index entry {entry}")
            start = entry * ENT_WIDTH
            if self.size < start + ENT_WIDTH:
                raise EOFError(f"no index entry {entry}")
            off = int.from_bytes(self._data[start:start + OFF_WIDTH], _BYTE_ORDER)
            pos = int.from_bytes(self._data[start + OFF_WIDTH:start + ENT_WIDTH], _BYTE_ORDER)
            return off, pos

    def write(self, off: int, pos: int) -> None:
        with self._lock:
            if self._is_maxed():
                raise EOFError("index is full")
            start = self.size
            self._data[start:start + OFF_WIDTH] = off.to_bytes(OFF_WIDTH, _BYTE_ORDER)
            self._data[start + OFF_WIDTH:start + ENT_WIDTH] = pos.to_bytes(POS_WIDTH, _BYTE_ORDER)
            self.size += ENT_WIDTH

    def _is_maxed(self) -> bool:
        return len(self._data) < self.size + ENT_WIDTH

    def is_maxed(self) -> bool:
        """True when no further entry fits."""
        return self._is_maxed()

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