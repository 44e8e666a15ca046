"""A small in-memory file system used as the commit log's storage device."""

from __future__ import annotations

import posixpath


def _normalize(path: str) -> str:
    return posixpath.normpath(path.strip("/"))


def _parent(path: str) -> str:
    return posixpath.dirname(path) or "."


class File:
    """An open file; writes always append to the end."""

    def __init__(self, name: str, buffer: bytearray) -> None:
        self.name = name
        self._buffer = buffer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ValueError(f"I/O operation on closed file {self.name!r}")

    def read(self) -> bytes:
        """Return the whole content of the file."""
        self._check_open()
        return bytes(self._buffer)

    def write(self, data: bytes) -> int:
        """Append data to the file and return the number of bytes written."""
        self._check_open()
        self._buffer.extend(data)
        return len(data)

    def size(self) -> int:
        self._check_open()
        return len(self._buffer)

    def sync(self) -> None:
        self._check_open()

    def close(self) -> None:
        self._check_open()
        self._closed = True

    def __enter__(self) -> File:
        return self

    def __exit__(self, *exc: object) -> None:
        if not self._closed:
            self.close()


class FileSystem:
    """A tree of directories and files kept in memory."""

    def __init__(self) -> None:
        self._dirs: set[str] = {"."}
        self._files: dict[str, bytearray] = {}

    def exists(self, path: str) -> bool:
        path = _normalize(path)
        return path in self._dirs or path in self._files

    def _require_parent(self, path: str) -> None:
        parent = _parent(path)
        if parent not in self._dirs:
            raise FileNotFoundError(f"no such directory: {parent!r}")

    def mkdir(self, path: str) -> None:
        """Create a directory; an existing directory is left as it is."""
        path = _normalize(path)
        if path in self._dirs:
            return
        if path in self._files:
            raise FileExistsError(f"file exists: {path!r}")
        self._require_parent(path)
        self._dirs.add(path)

    def open_file(self, path: str) -> File:
        """Open a file for reading and appending, creating it if missing."""
        path = _normalize(path)
        if path in self._dirs:
            raise IsADirectoryError(f"is a directory: {path!r}")
        if path not in self._files:
            self._require_parent(path)
            self._files[path] = bytearray()
        return File(path, self._files[path])

    def listdir(self, path: str) -> list[str]:
        """Return the sorted names of the entries directly inside a directory."""
        path = _normalize(path)
        if path in self._files:
            raise NotADirectoryError(f"not a directory: {path!r}")
        if path not in self._dirs:
            raise FileNotFoundError(f"no such directory: {path!r}")
        children = (p for p in (*self._dirs, *self._files) if p != "." and _parent(p) == path)
        return sorted(posixpath.basename(p) for p in children)

    def remove(self, path: str) -> None:
        """Remove a file or an empty directory."""
        path = _normalize(path)
        if path in self._files:
            del self._files[path]
        elif path in self._dirs:
            if path == ".":
                raise PermissionError("cannot remove the root directory")
            if self.listdir(path):
                raise OSError(f"directory not empty: {path!r}")
            self._dirs.remove(path)
        else:
            raise FileNotFoundError(f"no such file or directory: {path!r}")


def new_file_system() -> FileSystem:
    """Create a fresh, empty file system."""
    return FileSystem()