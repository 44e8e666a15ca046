"""Configuration of the segmented commit log."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SegmentConfig:
    """Size limits and starting offset of log segments; zero means default."""

    max_store_bytes: int = 0
    max_index_bytes: int = 0
    initial_offset: int = 0


@dataclass
class Config:
    segment: SegmentConfig = field(default_factory=SegmentConfig)