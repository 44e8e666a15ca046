import pytest

from tinylog.config import Config, SegmentConfig
from tinylog.filesys import new_file_system
from tinylog.index import ENT_WIDTH
from tinylog.segment import Segment

VALUE = b"hello world"


@pytest.fixture
def fs():
    filesystem = new_file_system()
    filesystem.mkdir("tmp")
    return filesystem


def test_segment_lifecycle(fs):
    config = Config(SegmentConfig(max_store_bytes=1024, max_index_bytes=ENT_WIDTH * 3))
    seg = Segment(fs, "tmp", 16, config)
    assert seg.next_offset == 16
    assert not seg.is_maxed()

    for i in range(3):
        off = seg.append(VALUE)
        assert off == 16 + i
        got = seg.read(off)
        assert got.value == VALUE
        assert got.offset == off

    with pytest.raises(EOFError):
        seg.append(VALUE)
    assert seg.is_maxed()

    seg.sync()
    maxed_store = Config(SegmentConfig(max_store_bytes=len(VALUE) * 3, max_index_bytes=1024))
    reopened = Segment(fs, "tmp", 16, maxed_store)
    assert reopened.next_offset == 19
    assert reopened.is_maxed()

    reopened.remove()
    assert not fs.exists("tmp/16.store")
    assert not fs.exists("tmp/16.index")

    fresh = Segment(fs, "tmp", 16, maxed_store)
    assert not fresh.is_maxed()
    assert fresh.next_offset == 16


def test_files_are_named_after_base_offset(fs):
    Segment(fs, "tmp", 7, Config(SegmentConfig(1024, 1024)))
    assert fs.listdir("tmp") == ["7.index", "7.store"]


def test_to_be_maxed_by_store_size(fs):
    seg = Segment(fs, "tmp", 0, Config(SegmentConfig(max_store_bytes=32, max_index_bytes=1024)))
    assert not seg.to_be_maxed(VALUE)
    seg.append(VALUE)
    assert seg.to_be_maxed(VALUE)


def test_to_be_maxed_by_index(fs):
    seg = Segment(fs, "tmp", 0, Config(SegmentConfig(max_store_bytes=1024, max_index_bytes=ENT_WIDTH)))
    assert not seg.to_be_maxed(b"x")
    seg.append(b"x")
    assert seg.to_be_maxed(b"x")


def test_reopen_after_sync_reads_records(fs):
    config = Config(SegmentConfig(1024, 1024))
    seg = Segment(fs, "tmp", 3, config)
    seg.append(b"a")
    seg.append(b"bb")
    seg.close()
    again = Segment(fs, "tmp", 3, config)
    assert again.next_offset == 5
    assert again.read(4).value == b"bb"


def test_read_missing_offset_raises(fs):
    seg = Segment(fs, "tmp", 0, Config(SegmentConfig(1024, 1024)))
    seg.append(VALUE)
    with pytest.raises(EOFError):
        seg.read(1)


def test_close_twice_raises(fs):
    seg = Segment(fs, "tmp", 0, Config(SegmentConfig(1024, 1024)))
    seg.close()
    with pytest.raises(ValueError):
        seg.close()


def test_remove_twice_raises(fs):
    seg = Segment(fs, "tmp", 0, Config(SegmentConfig(1024, 1024)))
    seg.remove()
    with pytest.raises(ValueError):
        seg.remove()