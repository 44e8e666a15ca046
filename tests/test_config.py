from tinylog.config import Config, SegmentConfig


def test_defaults_are_independent():
    a = Config()
    b = Config()
    a.segment.max_store_bytes = 32
    assert b.segment.max_store_bytes == 0
    assert a.segment is not b.segment


def test_values_kept():
    c = Config(segment=SegmentConfig(max_store_bytes=1024, max_index_bytes=36, initial_offset=16))
    assert c.segment.max_store_bytes == 1024
    assert c.segment.max_index_bytes == 36
    assert c.segment.initial_offset == 16


def test_equality():
    assert Config(SegmentConfig(1, 2, 3)) == Config(SegmentConfig(1, 2, 3))
    assert Config(SegmentConfig(1, 2, 3)) != Config(SegmentConfig(1, 2, 4))