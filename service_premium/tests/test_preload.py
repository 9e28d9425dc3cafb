"""
Unit tests for cache preloading.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from service_premium.app.cache import MISSING, CacheCategory, MemoryCache
from service_premium.app.models import Entitlement, RedemptionCode
from service_premium.app.preload import CachePreloader


@pytest.fixture
def cache(clock):
    """Fixture for an unbounded cache on the test clock."""
    return MemoryCache(0, clock=clock.monotonic)


@pytest.fixture
def preloader(storage, cache, clock, metrics):
    """Fixture for a preloader over the in-memory storage."""
    return CachePreloader(storage, cache, clock=clock.now, metrics=metrics)


def _key(category, item_id):
    return MemoryCache.key(category, item_id)


class TestCachePreloader:
    """Test cases for CachePreloader."""

    @pytest.mark.asyncio
    async def test_warm_populates_every_category(self, preloader, storage, cache, clock):
        now = clock.now()
        active = Entitlement(entity_id="active", is_premium=True, expires_at=now + timedelta(days=3))
        revoked = Entitlement(entity_id="revoked", is_premium=False)
        storage.entitlements = {e.entity_id: e.to_document() for e in (active, revoked)}
        storage.codes["abc"] = RedemptionCode(code="abc", duration=7, max_activations=1, created_by="admin").to_document()

        summary = await preloader.warm()

        assert summary["entitlements"] == 2
        assert summary["codes"] == 1
        assert summary["skipped_expired"] == 0
        assert summary["errors"] == []
        assert cache.get(_key(CacheCategory.IS_PREMIUM, "active")) is True
        assert cache.get(_key(CacheCategory.IS_PREMIUM, "revoked")) is False
        assert cache.get(_key(CacheCategory.PREMIUM_STATUS, "active")) == active
        assert cache.get(_key(CacheCategory.CODE_INFO, "abc")).duration == 7

    @pytest.mark.asyncio
    async def test_cached_flag_lapses_at_expiry(self, preloader, storage, cache, clock):
        storage.entitlements["active"] = Entitlement(
            entity_id="active", is_premium=True, expires_at=clock.now() + timedelta(hours=1)
        ).to_document()

        await preloader.warm()
        clock.advance(hours=1)

        assert cache.get(_key(CacheCategory.IS_PREMIUM, "active")) is MISSING

    @pytest.mark.asyncio
    async def test_lazily_expired_flag_is_not_cached(self, preloader, storage, cache, clock):
        storage.entitlements["stale"] = Entitlement(
            entity_id="stale", is_premium=True, expires_at=clock.now() - timedelta(days=1)
        ).to_document()

        summary = await preloader.warm()

        assert summary["skipped_expired"] == 1
        assert cache.get(_key(CacheCategory.IS_PREMIUM, "stale")) is MISSING
        assert cache.get(_key(CacheCategory.PREMIUM_STATUS, "stale")).entity_id == "stale"

    @pytest.mark.asyncio
    async def test_storage_failure_leaves_cache_untouched(self, preloader, storage, cache):
        storage.entitlements["active"] = Entitlement(entity_id="active", is_premium=True).to_document()
        storage.fail_operations.add("list_all_codes")

        summary = await preloader.warm()

        assert len(summary["errors"]) == 1
        assert "list_all_codes" in summary["errors"][0]
        assert summary["entitlements"] == 0
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_records_metrics(self, preloader, storage, metrics):
        storage.entitlements["active"] = Entitlement(entity_id="active", is_premium=True).to_document()

        await preloader.warm()

        assert metrics.sample("premium_cache_entries") == 2
        assert metrics.sample("premium_preload_duration_seconds_count") == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported_not_raised(self, preloader, storage, cache):
        storage.list_all_entitlements = AsyncMock(side_effect=RuntimeError("decoder bug"))

        summary = await preloader.warm()

        assert summary["errors"] == ["decoder bug"]
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_both_fetch_failures_are_reported(self, preloader, storage, cache):
        storage.fail_operations.update({"list_all_entitlements", "list_all_codes"})

        summary = await preloader.warm()

        assert len(summary["errors"]) == 2
        assert "list_all_entitlements" in summary["errors"][0]
        assert "list_all_codes" in summary["errors"][1]
        assert len(cache) == 0
