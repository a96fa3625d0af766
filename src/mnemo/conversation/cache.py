"""Bounded in-memory buffer of recent conversation turns."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from ..memory.models import CacheEntry, Turn, utcnow


@dataclass
class CacheConfig:
    """Configuration for the conversation cache."""

    max_size: int = 50
    retain: int = 40

    def __post_init__(self) -> None:
        if self.max_size < 1:
            raise ValueError("max_size must be at least 1")
        if not 0 < self.retain <= self.max_size:
            raise ValueError("retain must be between 1 and max_size")


class ConversationCache:
    """Ordered working set of recent turns.

    Shared between the per-turn handler and the consolidation job. Every
    operation runs under a single lock. Once the cache grows past
    ``max_size`` it is cut back to the most recent ``retain`` entries,
    whether or not the dropped turns were ever consolidated.
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        self.config = config or CacheConfig()
        self._entries: list[CacheEntry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def append(self, turn: Turn) -> CacheEntry:
        """Add a turn at the end of the cache.

        Args:
            turn: The turn to remember.

        Returns:
            The cache entry wrapping the turn.
        """
        entry = CacheEntry(turn=turn, message_id=turn.id, timestamp=utcnow())
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self.config.max_size:
                del self._entries[: len(self._entries) - self.config.retain]
        return entry

    def snapshot(self) -> list[CacheEntry]:
        """Return a copy of the cached entries in conversation order."""
        with self._lock:
            return list(self._entries)

    def recent(self, limit: int, before: str | None = None) -> list[CacheEntry]:
        """Return up to ``limit`` of the most recent entries.

        Args:
            limit: Maximum number of entries.
            before: If given, only entries preceding the entry with this
                message id are considered.

        Returns:
            Entries in conversation order.
        """
        if limit <= 0:
            return []

        with self._lock:
            entries = self._entries
            if before is not None:
                for idx in range(len(entries) - 1, -1, -1):
                    if entries[idx].message_id == before:
                        entries = entries[:idx]
                        break
            return list(entries[-limit:])

    def clear(self) -> int:
        """Empty the cache. Returns how many entries were dropped."""
        with self._lock:
            count = len(self._entries)
            self._entries = []
            return count
