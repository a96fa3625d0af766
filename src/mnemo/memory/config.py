"""Tuning knobs for the memory pipeline."""

from dataclasses import dataclass
from datetime import time


@dataclass
class MemoryConfig:
    """Configuration for immediate storage, context assembly and consolidation."""

    context_window: int = 10
    dedup_threshold: float = 0.15
    search_limit: int = 3
    recent_event_days: int = 7
    min_chunk_length: int = 20
    consolidation_time: time = time(23, 0)

    def __post_init__(self) -> None:
        if self.context_window < 0:
            raise ValueError("context_window must be >= 0")
        if not 0.0 < self.dedup_threshold <= 2.0:
            raise ValueError("dedup_threshold must be in (0, 2]")
        if self.search_limit < 1:
            raise ValueError("search_limit must be at least 1")
        if self.recent_event_days < 0:
            raise ValueError("recent_event_days must be >= 0")
