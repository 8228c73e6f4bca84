# tests/test_cache.py
"""
Tests for ResourceCache.

Covers:
- Hit/miss accounting and TTL expiry
- LRU eviction (recency protects entries)
- Predicate invalidation and clear
- Background sweep lifecycle
- Read-through loading with de-duplication
- Snapshot/restore with corrupt entries
"""

import asyncio

import pytest

from persona_context_engine.cache import CacheKey, ResourceCache
from persona_context_engine.config import EngineConfig

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _key(name: str, kind: str = "persona", operation: str = "read") -> CacheKey:
    return CacheKey(operation=operation, resource_kind=kind, name=name)


def _cache(clock, max_size: int = 3, ttl: float = 300.0) -> ResourceCache:
    return ResourceCache(max_size=max_size, ttl_seconds=ttl, clock=clock)


# ===========================================================================
# Basics
# ===========================================================================


class TestGetSet:
    def test_miss_then_hit(self, clock):
        cache = _cache(clock)
        assert cache.get(_key("a")) is None
        cache.set(_key("a"), "value")
        assert cache.get(_key("a")) == "value"

        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5

    def test_entry_invariant(self, clock):
        cache = _cache(clock, ttl=60)
        cache.set(_key("a"), "value")
        entry = cache.entry(_key("a"))
        assert entry.expires_at - entry.created_at == cache.ttl

    def test_hit_updates_last_accessed(self, clock):
        cache = _cache(clock)
        cache.set(_key("a"), "value")
        clock.advance(10)
        cache.get(_key("a"))
        assert cache.entry(_key("a")).last_accessed_at == clock.now

    def test_set_replaces_with_fresh_entry(self, clock):
        cache = _cache(clock)
        cache.set(_key("a"), "old")
        clock.advance(100)
        cache.set(_key("a"), "new")
        entry = cache.entry(_key("a"))
        assert entry.value == "new"
        assert entry.created_at == clock.now
        assert len(cache) == 1
        assert cache.stats().evictions == 0

    def test_keys_are_value_objects(self):
        assert _key("a") == _key("a")
        assert hash(_key("a")) == hash(_key("a"))
        assert _key("a") != _key("a", kind="state")
        assert str(_key("a")) == "read:persona:a"

    def test_create_from_config(self, clock):
        cache = ResourceCache.create(EngineConfig(max_cache_size=7, cache_ttl_seconds=30), clock=clock)
        assert cache.max_size == 7
        assert cache.ttl.total_seconds() == 30

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            ResourceCache(max_size=0)

    def test_memory_footprint(self, clock):
        cache = _cache(clock)
        cache.set(_key("a"), "value")
        cache.set(_key("b"), b"12")
        assert cache.stats().memory_bytes == 7


class TestExpiry:
    def test_expired_entry_is_a_miss(self, clock):
        cache = _cache(clock, ttl=300)
        cache.set(_key("a"), "value")
        clock.advance(301)
        assert cache.get(_key("a")) is None
        assert len(cache) == 0
        stats = cache.stats()
        assert stats.expirations == 1
        assert stats.misses == 1

    def test_entry_valid_at_exact_expiry(self, clock):
        cache = _cache(clock, ttl=300)
        cache.set(_key("a"), "value")
        clock.advance(300)
        assert cache.get(_key("a")) == "value"

    def test_hit_does_not_extend_ttl(self, clock):
        cache = _cache(clock, ttl=300)
        cache.set(_key("a"), "value")
        clock.advance(200)
        assert cache.get(_key("a")) == "value"
        clock.advance(200)
        assert cache.get(_key("a")) is None

    def test_sweep_removes_expired_only(self, clock):
        cache = _cache(clock, ttl=300)
        cache.set(_key("old"), 1)
        clock.advance(200)
        cache.set(_key("new"), 2)
        clock.advance(150)
        assert cache.sweep() == 1
        assert _key("old") not in cache
        assert _key("new") in cache


class TestLRU:
    def test_evicts_least_recently_accessed(self, clock):
        cache = _cache(clock, max_size=3)
        for name in ("a", "b", "c"):
            cache.set(_key(name), name)
            clock.advance(1)

        cache.set(_key("d"), "d")

        assert _key("a") not in cache
        assert all(_key(n) in cache for n in ("b", "c", "d"))
        assert cache.stats().evictions == 1

    def test_get_protects_from_eviction(self, clock):
        cache = _cache(clock, max_size=3)
        for name in ("a", "b", "c"):
            cache.set(_key(name), name)
            clock.advance(1)

        cache.get(_key("a"))
        cache.set(_key("d"), "d")

        assert _key("a") in cache
        assert _key("b") not in cache
        assert cache.stats().evictions == 1

    def test_size_never_exceeds_capacity(self, clock):
        cache = _cache(clock, max_size=5)
        for i in range(50):
            cache.set(_key(str(i)), i)
            assert len(cache) <= 5
        assert cache.stats().evictions == 45


class TestInvalidation:
    def test_invalidate_by_predicate(self, clock):
        cache = _cache(clock, max_size=10)
        cache.set(_key("a"), 1)
        cache.set(_key("b"), 2)
        cache.set(_key("s", kind="state"), 3)

        removed = cache.invalidate(lambda key: key.resource_kind == "persona")

        assert removed == 2
        assert len(cache) == 1
        assert cache.stats().invalidations == 2

    def test_invalidate_kind(self, clock):
        cache = _cache(clock, max_size=10)
        cache.set(_key("a"), 1)
        cache.set(_key("s", kind="state"), 3)
        assert cache.invalidate_kind("state") == 1
        assert _key("a") in cache

    def test_clear(self, clock):
        cache = _cache(clock)
        cache.set(_key("a"), 1)
        cache.set(_key("b"), 2)
        cache.clear()
        assert len(cache) == 0


class TestCorruption:
    def test_ttl_violation_treated_as_miss(self, clock):
        cache = _cache(clock, ttl=300)
        cache.set(_key("a"), "value")
        entry = cache.entry(_key("a"))
        entry.expires_at = entry.created_at  # break the invariant

        assert cache.get(_key("a")) is None
        assert _key("a") not in cache


# ===========================================================================
# Lifecycle
# ===========================================================================


class TestSweeper:
    @pytest.mark.asyncio
    async def test_start_and_dispose(self, clock):
        cache = ResourceCache(sweep_interval_seconds=0.01, clock=clock)
        cache.start()
        assert cache.running
        await cache.dispose()
        assert not cache.running

    @pytest.mark.asyncio
    async def test_background_sweep_runs(self, clock):
        cache = ResourceCache(ttl_seconds=1, sweep_interval_seconds=0.01, clock=clock)
        cache.set(_key("a"), 1)
        clock.advance(5)
        cache.start()
        for _ in range(50):
            await asyncio.sleep(0.01)
            if len(cache) == 0:
                break
        await cache.dispose()
        assert cache.stats().expirations == 1

    @pytest.mark.asyncio
    async def test_dispose_without_start(self, clock):
        cache = _cache(clock)
        cache.set(_key("a"), 1)
        await cache.dispose()
        assert len(cache) == 0


# ===========================================================================
# Read-through
# ===========================================================================


class TestGetOrLoad:
    @pytest.mark.asyncio
    async def test_loads_once_then_hits(self, clock):
        cache = _cache(clock)
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            return "loaded"

        assert await cache.get_or_load(_key("a"), loader) == "loaded"
        assert await cache.get_or_load(_key("a"), loader) == "loaded"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_loads_are_deduplicated(self, clock):
        cache = _cache(clock)
        calls = 0

        async def loader():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "loaded"

        results = await asyncio.gather(*(cache.get_or_load(_key("a"), loader) for _ in range(5)))

        assert results == ["loaded"] * 5
        assert calls == 1

    @pytest.mark.asyncio
    async def test_failures_propagate_and_are_not_cached(self, clock):
        cache = _cache(clock)
        calls = 0

        async def failing():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            raise RuntimeError("storage down")

        results = await asyncio.gather(
            cache.get_or_load(_key("a"), failing),
            cache.get_or_load(_key("a"), failing),
            return_exceptions=True,
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert calls == 1
        assert _key("a") not in cache

        async def working():
            return "ok"

        assert await cache.get_or_load(_key("a"), working) == "ok"

    @pytest.mark.asyncio
    async def test_independent_keys_load_separately(self, clock):
        cache = _cache(clock)
        seen = []

        async def loader_for(name):
            async def load():
                seen.append(name)
                await asyncio.sleep(0)
                return name

            return load

        await asyncio.gather(
            cache.get_or_load(_key("a"), await loader_for("a")),
            cache.get_or_load(_key("b"), await loader_for("b")),
        )
        assert sorted(seen) == ["a", "b"]


# ===========================================================================
# Persistence
# ===========================================================================


class TestSnapshot:
    def test_round_trip(self, clock):
        cache = _cache(clock)
        cache.set(_key("a"), "overlay text")
        data = cache.snapshot()

        restored = _cache(clock)
        assert restored.restore(data) == 1
        assert restored.get(_key("a")) == "overlay text"

    def test_restore_skips_expired(self, clock):
        cache = _cache(clock, ttl=300)
        cache.set(_key("a"), "value")
        data = cache.snapshot()
        clock.advance(400)

        restored = _cache(clock, ttl=300)
        assert restored.restore(data) == 0

    def test_restore_skips_corrupt_entries(self, clock):
        cache = _cache(clock)
        cache.set(_key("a"), "value")
        good = cache.snapshot()

        payload = good.decode("utf-8").rstrip("]") + ', {"key": "bogus"}]'
        restored = _cache(clock)
        assert restored.restore(payload.encode("utf-8")) == 1

    def test_restore_rejects_ttl_mismatch(self, clock):
        cache = _cache(clock, ttl=300)
        cache.set(_key("a"), "value")
        data = cache.snapshot()

        restored = _cache(clock, ttl=60)
        assert restored.restore(data) == 0

    def test_restore_unreadable_data(self, clock):
        cache = _cache(clock)
        assert cache.restore(b"not json") == 0
        assert cache.restore(b'{"not": "a list"}') == 0
