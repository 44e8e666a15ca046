import pytest

from tinylog.config import Config, SegmentConfig
from tinylog.filesys import new_file_system
from tinylog.store import LEN_WIDTH, Store

WRITE = b"hello world!"
WIDTH = len(WRITE) + LEN_WIDTH


def _config(max_store=1024):
    return Config(segment=SegmentConfig(max_store_bytes=max_store))


def _append(store):
    for i in range(1, 4):
        n, pos = store.append(WRITE)
        assert pos + n == WIDTH * i


def _read(store):
    pos = 0
    for _ in range(3):
        assert store.read(pos) == WRITE
        pos += WIDTH


def _read_at(store):
    off = 0
    for _ in range(3):
        b = store.read_at(off, LEN_WIDTH)
        assert len(b) == LEN_WIDTH
        off += len(b)
        size = int.from_bytes(b, "big")
        b = store.read_at(off, size)
        assert b == WRITE
        assert len(b) == size
        off += len(b)


def test_store_append_read():
    fs = new_file_system()
    f = fs.open_file("file1.store")
    s = Store(f, _config())
    assert s.name == f.name
    _append(s)
    _read(s)
    _read_at(s)
    s.sync()

    s2 = Store(fs.open_file("file1.store"), _config())
    _read(s2)
    assert s2.size == WIDTH * 3


def test_store_close():
    fs = new_file_system()
    f = fs.open_file("file1.txt")
    s = Store(f, _config())
    s.append(WRITE)
    before = fs.open_file("file1.txt").size()
    s.close()
    after = fs.open_file("file1.txt").size()
    assert after > before
    assert f.closed


def test_read_past_end_raises():
    s = Store(new_file_system().open_file("x"), _config())
    with pytest.raises(EOFError):
        s.read(0)


def test_append_beyond_capacity_raises():
    s = Store(new_file_system().open_file("x"), _config(max_store=WIDTH))
    s.append(WRITE)
    with pytest.raises(EOFError):
        s.append(WRITE)
    assert s.size == WIDTH


def test_read_at_end_is_short():
    s = Store(new_file_system().open_file("x"), _config())
    s.append(WRITE)
    assert s.read_at(LEN_WIDTH, 100) == WRITE
    assert s.read_at(WIDTH, 4) == b""


def test_sync_only_appends_new_data():
    fs = new_file_system()
    s = Store(fs.open_file("x"), _config())
    s.append(WRITE)
    s.sync()
    s.sync()
    assert fs.open_file("x").size() == WIDTH