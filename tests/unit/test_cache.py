"""
Unit Tests - Cache Manager
"""
import pytest

from retail_analytics.cache import CacheManager


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestCacheManager:
    """Tests for CacheManager"""

    def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        cache = CacheManager("test", default_ttl=10, clock=clock)
        cache.set("a", 1)

        clock.now = 9.9
        assert cache.get("a") == 1

        clock.now = 10
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_no_ttl_never_expires(self):
        clock = FakeClock()
        cache = CacheManager("test", clock=clock)
        cache.set("a", {"x": 1})

        clock.now = 1e9
        assert "a" in cache

    def test_per_entry_ttl_overrides_default(self):
        clock = FakeClock()
        cache = CacheManager("test", default_ttl=100, clock=clock)
        cache.set("short", 1, ttl=1)

        clock.now = 2
        assert cache.get("short") is None

    def test_invalidate_all(self):
        cache = CacheManager("test")
        cache.set("a", 1)
        cache.set("b", 2)

        assert "a" in cache
        assert cache.invalidate_all() == 2
        assert len(cache) == 0
        assert "a" not in cache

    @pytest.mark.asyncio
    async def test_get_or_set_skips_none(self):
        cache = CacheManager("test")
        results = [None, "loaded"]

        async def factory():
            return results.pop(0)

        assert await cache.get_or_set("k", factory) is None
        assert "k" not in cache
        assert await cache.get_or_set("k", factory) == "loaded"
        assert cache.get("k") == "loaded"

    @pytest.mark.asyncio
    async def test_get_or_set_calls_factory_once(self):
        cache = CacheManager("test")
        calls = []

        async def factory():
            calls.append(1)
            return "value"

        assert await cache.get_or_set("k", factory) == "value"
        assert await cache.get_or_set("k", factory) == "value"
        assert len(calls) == 1
