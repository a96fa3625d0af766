"""Tests for ConversationCache."""

import threading

import pytest

from mnemo.conversation import CacheConfig, ConversationCache
from mnemo.memory import Role, Turn


def make_turn(turn_id: str, content: str = "", role: Role = Role.USER) -> Turn:
    return Turn(id=turn_id, author="lucas", content=content or f"message {turn_id}", role=role)


class TestCacheConfig:
    def test_defaults(self):
        config = CacheConfig()
        assert config.max_size == 50
        assert config.retain == 40

    def test_retain_larger_than_max_rejected(self):
        with pytest.raises(ValueError, match="retain"):
            CacheConfig(max_size=3, retain=4)

    def test_zero_max_size_rejected(self):
        with pytest.raises(ValueError, match="max_size"):
            CacheConfig(max_size=0, retain=0)


class TestAppend:
    def test_append_wraps_turn(self):
        cache = ConversationCache()
        entry = cache.append(make_turn("1", "hola"))

        assert entry.message_id == "1"
        assert entry.content == "hola"
        assert entry.role == Role.USER
        assert len(cache) == 1

    def test_truncates_to_retain_when_bound_exceeded(self):
        """Bound 3, retain 2: appending A..D leaves [C, D]."""
        cache = ConversationCache(CacheConfig(max_size=3, retain=2))
        for turn_id in ["A", "B", "C"]:
            cache.append(make_turn(turn_id))
        assert [e.message_id for e in cache.snapshot()] == ["A", "B", "C"]

        cache.append(make_turn("D"))

        assert [e.message_id for e in cache.snapshot()] == ["C", "D"]

    def test_default_bound(self):
        cache = ConversationCache()
        for i in range(51):
            cache.append(make_turn(str(i)))

        ids = [e.message_id for e in cache.snapshot()]
        assert len(ids) == 40
        assert ids[0] == "11"
        assert ids[-1] == "50"

    def test_concurrent_appends_are_not_lost(self):
        cache = ConversationCache(CacheConfig(max_size=1000, retain=1000))

        def worker(prefix: str) -> None:
            for i in range(100):
                cache.append(make_turn(f"{prefix}-{i}"))

        threads = [threading.Thread(target=worker, args=(str(n),)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 400


class TestSnapshot:
    def test_snapshot_is_a_copy(self):
        cache = ConversationCache()
        cache.append(make_turn("1"))

        snapshot = cache.snapshot()
        cache.append(make_turn("2"))

        assert len(snapshot) == 1
        assert len(cache) == 2


class TestRecent:
    @pytest.fixture
    def cache(self) -> ConversationCache:
        cache = ConversationCache()
        for turn_id in ["1", "2", "3", "4", "5"]:
            cache.append(make_turn(turn_id))
        return cache

    def test_last_entries(self, cache: ConversationCache):
        assert [e.message_id for e in cache.recent(2)] == ["4", "5"]

    def test_before_excludes_current_turn(self, cache: ConversationCache):
        assert [e.message_id for e in cache.recent(3, before="5")] == ["2", "3", "4"]

    def test_before_first_is_empty(self, cache: ConversationCache):
        assert cache.recent(3, before="1") == []

    def test_limit_zero(self, cache: ConversationCache):
        assert cache.recent(0) == []

    def test_limit_larger_than_cache(self, cache: ConversationCache):
        assert len(cache.recent(100)) == 5


class TestClear:
    def test_clear_returns_count(self):
        cache = ConversationCache()
        cache.append(make_turn("1"))
        cache.append(make_turn("2"))

        assert cache.clear() == 2
        assert len(cache) == 0
        assert cache.snapshot() == []
