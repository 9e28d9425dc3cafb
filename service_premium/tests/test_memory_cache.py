"""
Unit tests for the in-process cache.
"""

import pytest

from service_premium.app.cache import MISSING, CacheCategory, MemoryCache
from service_premium.app.cache.memory_cache import PRUNE_EVERY_WRITES


@pytest.fixture
def cache(clock):
    """Fixture for a cache without a global TTL."""
    return MemoryCache(0, clock=clock.monotonic)


class TestMemoryCache:
    """Test cases for MemoryCache."""

    def test_miss_then_hit(self, cache):
        key = MemoryCache.key(CacheCategory.IS_PREMIUM, "guild-1")
        assert cache.get(key) is MISSING

        cache.set(key, True)

        assert cache.get(key) is True
        assert cache.stats()["hits"] == 1
        assert cache.stats()["misses"] == 1

    def test_none_is_a_cached_value(self, cache):
        key = MemoryCache.key(CacheCategory.PREMIUM_STATUS, "guild-1")
        cache.set(key, None)

        assert cache.get(key) is None

    def test_categories_do_not_collide(self, cache):
        cache.set(MemoryCache.key(CacheCategory.IS_PREMIUM, "x"), True)

        assert cache.get(MemoryCache.key(CacheCategory.PREMIUM_STATUS, "x")) is MISSING
        assert cache.get(MemoryCache.key(CacheCategory.CODE_INFO, "x")) is MISSING

    def test_key_accepts_category_value(self):
        assert MemoryCache.key("isPremium", "x") == (CacheCategory.IS_PREMIUM, "x")

    def test_unbounded_entries_never_expire(self, cache, clock):
        key = MemoryCache.key(CacheCategory.IS_PREMIUM, "guild-1")
        cache.set(key, False)
        clock.advance(days=365)

        assert cache.get(key) is False

    def test_global_ttl(self, clock):
        cache = MemoryCache(60, clock=clock.monotonic)
        key = MemoryCache.key(CacheCategory.IS_PREMIUM, "guild-1")
        cache.set(key, True)

        clock.advance(seconds=59)
        assert cache.get(key) is True

        clock.advance(seconds=1)
        assert cache.get(key) is MISSING
        assert len(cache) == 0

    def test_entry_ttl_only_shortens(self, clock):
        cache = MemoryCache(60, clock=clock.monotonic)
        short = MemoryCache.key(CacheCategory.IS_PREMIUM, "short")
        long = MemoryCache.key(CacheCategory.IS_PREMIUM, "long")
        cache.set(short, True, ttl=10)
        cache.set(long, True, ttl=3600)

        clock.advance(seconds=30)
        assert cache.get(short) is MISSING
        assert cache.get(long) is True

        clock.advance(seconds=30)
        assert cache.get(long) is MISSING

    def test_stale_ttl_drops_existing_entry(self, cache):
        key = MemoryCache.key(CacheCategory.IS_PREMIUM, "guild-1")
        cache.set(key, True)

        cache.set(key, True, ttl=-5)

        assert cache.get(key) is MISSING

    def test_delete_and_clear(self, cache):
        key = MemoryCache.key(CacheCategory.CODE_INFO, "abc")
        cache.set(key, None)
        cache.set(MemoryCache.key(CacheCategory.CODE_INFO, "def"), None)

        assert cache.delete(key) is True
        assert cache.delete(key) is False
        assert cache.clear() == 1
        assert len(cache) == 0

    def test_stats(self, cache):
        key = MemoryCache.key(CacheCategory.IS_PREMIUM, "guild-1")
        cache.get(key)
        cache.set(key, True)
        cache.get(key)
        cache.get(key)

        stats = cache.stats()

        assert stats["entries"] == 1
        assert stats["hit_rate"] == pytest.approx(2 / 3)
        assert stats["ttl_seconds"] == 0

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            MemoryCache(-1)

    def test_prune_drops_only_expired_entries(self, clock):
        cache = MemoryCache(60, clock=clock.monotonic)
        cache.set(MemoryCache.key(CacheCategory.IS_PREMIUM, "old"), True)
        clock.advance(seconds=30)
        cache.set(MemoryCache.key(CacheCategory.IS_PREMIUM, "new"), True)
        clock.advance(seconds=30)

        assert cache.prune() == 1
        assert len(cache) == 1
        assert cache.get(MemoryCache.key(CacheCategory.IS_PREMIUM, "new")) is True

    def test_unread_expired_entries_are_swept_by_writes(self, clock):
        cache = MemoryCache(10, clock=clock.monotonic)
        for i in range(PRUNE_EVERY_WRITES - 1):
            cache.set(MemoryCache.key(CacheCategory.PREMIUM_STATUS, f"guild-{i}"), None)
        clock.advance(seconds=11)

        cache.set(MemoryCache.key(CacheCategory.PREMIUM_STATUS, "fresh"), None)

        assert len(cache) == 1

    def test_stats_ignore_expired_entries(self, clock):
        cache = MemoryCache(10, clock=clock.monotonic)
        cache.set(MemoryCache.key(CacheCategory.CODE_INFO, "abc"), None)
        clock.advance(seconds=10)

        assert cache.stats()["entries"] == 0
