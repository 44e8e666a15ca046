"""A log segment: one store file and one index file sharing a base offset."""

from __future__ import annotations

import posixpath

from tinylog.config import Config
from tinylog.filesys import FileSystem
from tinylog.index import Index
from tinylog.messages import Record
from tinylog.store import LEN_WIDTH, Store

STORE_SUFFIX = ".store"
INDEX_SUFFIX = ".index"


class Segment:
    """Records with absolute offsets from base_offset up to next_offset."""

    def __init__(self, fs: FileSystem, dirname: str, base_offset: int, config: Config) -> None:
        self.fs = fs
        self.dirname = dirname
        self.base_offset = base_offset
        self.config = config
        self.closed = False
        self.store = Store(fs.open_file(self._path(STORE_SUFFIX)), config)
        self.index = Index(fs.open_file(self._path(INDEX_SUFFIX)), config)
        try:
            last, _ = self.index.read(-1)
        except EOFError:
            self.next_offset = base_offset
        else:
            self.next_offset = base_offset + last + 1

    def _path(self, suffix: str) -> str:
        return posixpath.join(self.dirname, f"{self.base_offset}{suffix}")

    def append(self, value: bytes) -> int:
        """Store a value and return the absolute offset it was given."""
        current = self.next_offset
        payload = Record(value=bytes(value), offset=current).marshal()
        _, pos = self.store.append(payload)
        self.index.write(current - self.base_offset, pos)
        self.next_offset += 1
        return current

    def read(self, off: int) -> Record:
        """Return the record stored at an absolute offset."""
        _, pos = self.index.read(off - self.base_offset)
        return Record.unmarshal(self.store.read(pos))

    def is_maxed(self) -> bool:
        limits = self.config.segment
        return (
            self.store.size >= limits.max_store_bytes
            or self.index.size >= limits.max_index_bytes
            or self.index.is_maxed()
        )

    def to_be_maxed(self, value: bytes) -> bool:
        """True when appending value would fill the store or the index."""
        payload = Record(value=bytes(value), offset=self.next_offset).marshal()
        return (
            self.store.size + LEN_WIDTH + len(payload) >= self.config.segment.max_store_bytes
            or self.index.is_maxed()
        )

    def remove(self) -> None:
        """Close the segment and delete its files."""
        self.close()
        self.fs.remove(self._path(INDEX_SUFFIX))
        self.fs.remove(self._path(STORE_SUFFIX))

    def sync(self) -> None:
        self.store.sync()
        self.index.sync()

    def close(self) -> None:
        if self.closed:
            raise ValueError(f"segment {self.base_offset} already closed")
        self.index.close()
        self.store.close()
        self.closed = True