"""A commit log made of consecutive segments in one directory."""

from __future__ import annotations

import posixpath
import threading
from dataclasses import replace

from tinylog.config import Config
from tinylog.filesys import FileSystem
from tinylog.messages import Record
from tinylog.segment import Segment

DEFAULT_MAX_BYTES = 1024


class Log:
    """Appends values to the active segment and reads them back by index.

    Indexes count from the lowest stored offset, so index 0 is always the
    oldest record in the log.
    """

    def __init__(self, fs: FileSystem, dirname: str, config: Config | None = None) -> None:
        config = config or Config()
        seg = config.segment
        self.config = Config(segment=replace(
            seg,
            max_store_bytes=seg.max_store_bytes or DEFAULT_MAX_BYTES,
            max_index_bytes=seg.max_index_bytes or DEFAULT_MAX_BYTES,
        ))
        self.fs = fs
        self.dir = dirname
        self._lock = threading.RLock()
        self._segments: list[Segment] = []
        self._active: Segment | None = None
        fs.mkdir(dirname)
        self._dir_open = True
        self._setup()

    @property
    def segments(self) -> tuple[Segment, ...]:
        return tuple(self._segments)

    def _setup(self) -> None:
        base_offsets = set()
        for name in self.fs.listdir(self.dir):
            stem, _ = posixpath.splitext(name)
            if stem.isdigit():
                base_offsets.add(int(stem))
        for base in sorted(base_offsets):
            self._new_segment(base)
        if not self._segments:
            self._new_segment(self.config.segment.initial_offset)

    def _new_segment(self, base_offset: int) -> None:
        segment = Segment(self.fs, self.dir, base_offset, self.config)
        self._segments.append(segment)
        self._active = segment

    def append(self, value: bytes) -> int:
        """Append a value and return its index."""
        with self._lock:
            next_offset = self.next_offset()
            if self._active.to_be_maxed(value):
                self._new_segment(next_offset)
            off = self._active.append(value)
            return self._offset_to_index(off)

    def read(self, index: int) -> Record:
        with self._lock:
            return self._read_at_offset(self._index_to_offset(index))

    def read_from(self, index: int) -> list[Record]:
        """Return every record from index to the end of the log."""
        with self._lock:
            start = self._index_to_offset(index)
            return [self._read_at_offset(off) for off in range(start, self.next_offset())]

    def next_index(self) -> int:
        """Index the next appended value will get."""
        with self._lock:
            return self._offset_to_index(self.next_offset())

    def lowest_offset(self) -> int:
        return self._segments[0].base_offset

    def next_offset(self) -> int:
        return self._segments[-1].next_offset

    def close(self) -> None:
        with self._lock:
            for segment in self._segments:
                segment.close()
            self._close_dir()

    def remove(self) -> None:
        """Close the log and delete every segment's files."""
        with self._lock:
            self._active.sync()
            for segment in self._segments:
                segment.remove()
            self._close_dir()

    def reset(self) -> None:
        """Remove all records and start again with an empty log."""
        with self._lock:
            self.remove()
            self._segments = []
            self._active = None
            self._dir_open = True
            self._setup()

    def _close_dir(self) -> None:
        if not self._dir_open:
            raise ValueError(f"directory {self.dir!r} already closed")
        self._dir_open = False

    def _offset_to_index(self, off: int) -> int:
        lowest = self.lowest_offset()
        if off < lowest:
            raise ValueError(f"offset out of range: {off} < base({lowest})")
        return off - lowest

    def _index_to_offset(self, index: int) -> int:
        lowest = self.lowest_offset()
        if index < 0 or index >= self.next_offset() - lowest:
            raise IndexError(f"index out of range: {index}")
        return lowest + index

    def _read_at_offset(self, off: int) -> Record:
        for segment in self._segments:
            if segment.base_offset <= off < segment.next_offset:
                return segment.read(off)
        raise IndexError(f"offset out of range: {off}")

    def __enter__(self) -> Log:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()