"""
Bulk cache warming from storage.
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from shared.errors import StorageUnavailableError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .cache import CacheCategory, MemoryCache
from .models import seconds_until, utcnow
from .persistence import StorageBackend


class CachePreloader:
    """Populates the cache with every entitlement and code in storage."""

    def __init__(
        self,
        storage: StorageBackend,
        cache: MemoryCache,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.storage = storage
        self.cache = cache
        self.clock = clock or utcnow
        self.metrics = metrics
        self.logger = get_logger("premium.preload")

    async def warm(self) -> Dict[str, Any]:
        """
        Warm the cache.

        Both collections are fetched before anything is written, so a
        storage failure leaves the cache untouched. Failures are reported in
        the summary rather than raised.

        Returns:
            Summary with loaded counts, skipped entries and errors
        """
        summary: Dict[str, Any] = {
            "entitlements": 0,
            "codes": 0,
            "skipped_expired": 0,
            "errors": [],
            "duration_seconds": 0.0,
        }
        start = time.perf_counter()
        self.logger.info("Preloading tables")

        entitlements, codes = await asyncio.gather(
            self.storage.list_all_entitlements(),
            self.storage.list_all_codes(),
            return_exceptions=True,
        )
        failures = [result for result in (entitlements, codes) if isinstance(result, BaseException)]
        if failures:
            for failure in failures:
                if not isinstance(failure, Exception):
                    raise failure
                if isinstance(failure, StorageUnavailableError):
                    self.logger.error("Preload aborted", error=str(failure))
                else:
                    self.logger.error("Preload aborted by unexpected error", error=str(failure), exc_info=failure)
                summary["errors"].append(str(failure))
            summary["duration_seconds"] = time.perf_counter() - start
            return summary

        now = self.clock()
        for entitlement in entitlements:
            self.cache.set(
                MemoryCache.key(CacheCategory.PREMIUM_STATUS, entitlement.entity_id),
                entitlement,
            )
            if entitlement.is_lazily_expired(now):
                # Leave the flag uncached so the next lookup runs lazy expiry
                summary["skipped_expired"] += 1
            else:
                self.cache.set(
                    MemoryCache.key(CacheCategory.IS_PREMIUM, entitlement.entity_id),
                    entitlement.is_premium,
                    ttl=seconds_until(entitlement.expires_at, now) if entitlement.is_premium else None,
                )
            summary["entitlements"] += 1

        for code in codes:
            self.cache.set(MemoryCache.key(CacheCategory.CODE_INFO, code.code), code)
            summary["codes"] += 1

        summary["duration_seconds"] = time.perf_counter() - start
        if self.metrics:
            self.metrics.observe_histogram("premium_preload_duration_seconds", summary["duration_seconds"])
            self.metrics.set_gauge("premium_cache_entries", len(self.cache))

        self.logger.info(
            "Preload completed",
            entitlements=summary["entitlements"],
            codes=summary["codes"],
            skipped_expired=summary["skipped_expired"],
        )
        return summary

