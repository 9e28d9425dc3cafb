"""
Premium entitlement engine.

``PremiumManager`` owns every premium state transition: granting, revoking,
extending and lazily expiring entitlements, and creating and redeeming
codes. Reads go through the cache first; every local write invalidates the
affected cache entries before the operation returns so callers never read
their own writes stale.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shared.config import PremiumConfig
from shared.errors import (
    CodeGenerationError, EntityNotPremiumError, StorageUnavailableError, ValidationError
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .cache import MISSING, CacheCategory, MemoryCache
from .codes import generate_code
from .events import (
    EventNotifier, Listener, PremiumAdded, PremiumCodeCreated, PremiumCodeRedeemed,
    PremiumExtended, PremiumRemoved
)
from .models import CodeActivation, Entitlement, PremiumModel, RedemptionCode, seconds_until, utcnow
from .persistence import StorageBackend, create_storage
from .preload import CachePreloader


SECONDS_PER_DAY = 86400
MAX_CODE_GENERATION_ATTEMPTS = 5


class PremiumManager:
    """Grants, revokes and queries premium entitlements."""

    def __init__(
        self,
        config: PremiumConfig,
        *,
        storage: Optional[StorageBackend] = None,
        cache: Optional[MemoryCache] = None,
        notifier: Optional[EventNotifier] = None,
        metrics: Optional[MetricsCollector] = None,
        code_generator: Optional[Callable[[int], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.logger = get_logger("premium.engine")
        self.metrics = metrics
        self.storage = storage if storage is not None else create_storage(config)
        self.cache = cache if cache is not None else MemoryCache(config.cache_ttl)
        self.notifier = notifier if notifier is not None else EventNotifier(metrics)
        self.code_generator = code_generator or generate_code
        self.clock = clock or utcnow
        self.preloader = CachePreloader(self.storage, self.cache, clock=self.clock, metrics=metrics)

    async def start(self) -> Optional[Dict[str, Any]]:
        """Start storage and warm the cache when ``preload_tables`` is set."""
        await self.storage.start()
        self.logger.info("Premium engine started", storage=self.config.storage)
        if self.config.preload_tables:
            return await self.preloader.warm()
        return None

    async def stop(self) -> None:
        await self.storage.stop()
        self.logger.info("Premium engine stopped")

    async def __aenter__(self) -> "PremiumManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def health_check(self) -> bool:
        return await self.storage.health_check()

    # Entitlements

    async def is_premium(self, entity_id: str) -> bool:
        """
        Check whether an entity is currently premium.

        A stored entitlement that is flagged premium but already past its
        expiry is revoked on the spot.
        """
        cached = self._cache_get(CacheCategory.IS_PREMIUM, entity_id)
        if cached is not MISSING:
            return cached

        entitlement = await self._storage_call("find_entitlement", self.storage.find_entitlement, entity_id)
        now = self.clock()
        active = entitlement is not None and entitlement.is_active(now)

        if entitlement is not None and entitlement.is_lazily_expired(now):
            self.logger.info("Premium expired on read", entity_id=entity_id, expires_at=str(entitlement.expires_at))
            await self.remove_premium(entity_id)
            self._count("premium_expired_total")

        self._cache_set(
            CacheCategory.IS_PREMIUM,
            entity_id,
            active,
            # A cached True must not outlive the entitlement
            ttl=seconds_until(entitlement.expires_at, now) if active else None,
        )
        return active

    async def add_premium(self, entity_id: str, duration_days: int, activated_by: str) -> Entitlement:
        """Grant premium for ``duration_days`` from now, replacing any previous grant."""
        if duration_days <= 0:
            raise ValidationError("Premium duration must be positive", {"duration_days": duration_days})

        now = self.clock()
        entitlement = Entitlement(
            entity_id=entity_id,
            is_premium=True,
            expires_at=now + timedelta(days=duration_days),
            activated_by=activated_by,
            activated_at=now,
        )
        await self._storage_call("save_entitlement", self.storage.save_entitlement, entitlement)
        self._invalidate_entity(entity_id)

        self.logger.info(
            "Premium added",
            entity_id=entity_id,
            expires_at=entitlement.expires_at.isoformat(),
            activated_by=activated_by,
        )
        await self.notifier.publish(PremiumAdded(
            entity_id=entity_id,
            expires_at=entitlement.expires_at,
            activated_by=activated_by,
        ))
        return entitlement

    async def remove_premium(self, entity_id: str) -> None:
        """Revoke premium. Unknown entities are ignored."""
        entitlement = await self._storage_call("find_entitlement", self.storage.find_entitlement, entity_id)
        if entitlement is None:
            return

        entitlement.is_premium = False
        entitlement.expires_at = None
        await self._storage_call("save_entitlement", self.storage.save_entitlement, entitlement)
        self._invalidate_entity(entity_id)

        self.logger.info("Premium removed", entity_id=entity_id)
        await self.notifier.publish(PremiumRemoved(entity_id=entity_id))

    async def get_premium_status(self, entity_id: str) -> Optional[Entitlement]:
        """Stored entitlement for an entity, or None. Absence is cached too."""
        cached = self._cache_get(CacheCategory.PREMIUM_STATUS, entity_id)
        if cached is not MISSING:
            return cached

        entitlement = await self._storage_call("find_entitlement", self.storage.find_entitlement, entity_id)
        self._cache_set(CacheCategory.PREMIUM_STATUS, entity_id, entitlement)
        self.logger.debug("Premium status loaded from storage", entity_id=entity_id, found=entitlement is not None)
        return entitlement

    async def get_premium_time_remaining(self, entity_id: str) -> Optional[int]:
        """Whole days of premium left, rounded up; None when not premium or open-ended."""
        status = await self.get_premium_status(entity_id)
        now = self.clock()
        if status is None or not status.is_active(now) or status.expires_at is None:
            return None

        remaining = (status.expires_at - now).total_seconds()
        return max(0, math.ceil(remaining / SECONDS_PER_DAY))

    async def extend_premium(self, entity_id: str, days: int) -> datetime:
        """
        Push an active entitlement's expiry ``days`` further out.

        Raises:
            EntityNotPremiumError: unknown entity, not premium, or already expired
        """
        if days <= 0:
            raise ValidationError("Extension must be a positive number of days", {"days": days})

        entitlement = await self._storage_call("find_entitlement", self.storage.find_entitlement, entity_id)
        if entitlement is None or not entitlement.is_premium:
            raise EntityNotPremiumError(entity_id)

        now = self.clock()
        if entitlement.is_lazily_expired(now):
            await self.remove_premium(entity_id)
            self._count("premium_expired_total")
            raise EntityNotPremiumError(entity_id, "Entity premium has expired")

        base = entitlement.expires_at or now
        entitlement.expires_at = base + timedelta(days=days)
        await self._storage_call("save_entitlement", self.storage.save_entitlement, entitlement)
        self._invalidate_entity(entity_id)

        self.logger.info("Premium extended", entity_id=entity_id, days=days, expires_at=entitlement.expires_at.isoformat())
        await self.notifier.publish(PremiumExtended(entity_id=entity_id, new_expires_at=entitlement.expires_at))
        return entitlement.expires_at

    async def check_expired_premiums(self) -> List[str]:
        """
        Revoke every stored entitlement whose expiry has passed.

        Entities are processed one at a time; a storage failure stops the
        sweep and leaves the remaining entities for the next run.

        Returns:
            IDs of the entities that were revoked
        """
        now = self.clock()
        expired = await self._storage_call(
            "find_expired_entitlements", self.storage.find_expired_entitlements, now
        )

        removed = []
        for entitlement in expired:
            await self.remove_premium(entitlement.entity_id)
            self._count("premium_expired_total")
            removed.append(entitlement.entity_id)

        self.logger.info("Expired premium sweep completed", removed=len(removed))
        return removed

    # Codes

    async def create_premium_code(
        self,
        created_by: str,
        duration: Optional[int] = None,
        max_activations: Optional[int] = None,
    ) -> str:
        """Create and persist a new redemption code; returns the code string."""
        duration = self.config.default_premium_duration if duration is None else duration
        max_activations = self.config.max_activations_per_code if max_activations is None else max_activations
        if duration <= 0:
            raise ValidationError("Code duration must be positive", {"duration": duration})
        if max_activations < 1:
            raise ValidationError("Code needs at least one activation", {"max_activations": max_activations})

        code = await self._unused_code()
        await self._storage_call("save_code", self.storage.save_code, RedemptionCode(
            code=code,
            duration=duration,
            max_activations=max_activations,
            activations=[],
            created_by=created_by,
            created_at=self.clock(),
        ))
        # Drop a cached "unknown code" answer for this string
        self._cache_delete(CacheCategory.CODE_INFO, code)

        self.logger.info("Premium code created", code=code, duration=duration, max_activations=max_activations, created_by=created_by)
        await self.notifier.publish(PremiumCodeCreated(code=code, duration=duration, created_by=created_by))
        return code

    async def redeem_premium_code(self, entity_id: str, code: str, redeemed_by: str) -> bool:
        """
        Redeem ``code`` for ``entity_id``.

        Returns:
            True when premium was granted; False for an unknown or exhausted code
        """
        premium_code = await self._storage_call("find_code", self.storage.find_code, code)
        if premium_code is None:
            self.logger.info("Redemption rejected: unknown code", entity_id=entity_id, code=code)
            self._count("premium_redemptions_total", outcome="unknown")
            return False
        if premium_code.is_exhausted:
            self.logger.info("Redemption rejected: code exhausted", entity_id=entity_id, code=code)
            self._count("premium_redemptions_total", outcome="exhausted")
            return False

        premium_code.activations.append(CodeActivation(entity_id=entity_id, activated_at=self.clock()))
        await self._storage_call("save_code", self.storage.save_code, premium_code)
        self._cache_delete(CacheCategory.CODE_INFO, code)

        await self.add_premium(entity_id, premium_code.duration, redeemed_by)

        self.logger.info(
            "Premium code redeemed",
            entity_id=entity_id,
            code=code,
            redeemed_by=redeemed_by,
            remaining=premium_code.remaining_activations,
        )
        self._count("premium_redemptions_total", outcome="redeemed")
        await self.notifier.publish(PremiumCodeRedeemed(entity_id=entity_id, code=code, redeemed_by=redeemed_by))
        return True

    async def get_premium_code_info(self, code: str) -> Optional[RedemptionCode]:
        """Stored code record, or None. Absence is cached too."""
        cached = self._cache_get(CacheCategory.CODE_INFO, code)
        if cached is not MISSING:
            return cached

        premium_code = await self._storage_call("find_code", self.storage.find_code, code)
        self._cache_set(CacheCategory.CODE_INFO, code, premium_code)
        return premium_code

    # Cache

    async def clear_cache(self) -> Optional[Dict[str, Any]]:
        """Flush the cache and re-warm it when ``preload_tables`` is set."""
        self.cache.clear()
        self._update_cache_gauge()
        if self.config.preload_tables:
            return await self.preloader.warm()
        return None

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    # Subscriptions

    def on_premium_added(self, listener: Listener) -> Listener:
        return self.notifier.subscribe(PremiumAdded, listener)

    def on_premium_removed(self, listener: Listener) -> Listener:
        return self.notifier.subscribe(PremiumRemoved, listener)

    def on_premium_code_created(self, listener: Listener) -> Listener:
        return self.notifier.subscribe(PremiumCodeCreated, listener)

    def on_premium_code_redeemed(self, listener: Listener) -> Listener:
        return self.notifier.subscribe(PremiumCodeRedeemed, listener)

    def on_premium_extended(self, listener: Listener) -> Listener:
        return self.notifier.subscribe(PremiumExtended, listener)

    # Internals

    async def _unused_code(self) -> str:
        for _ in range(MAX_CODE_GENERATION_ATTEMPTS):
            code = self.code_generator(self.config.code_length)
            existing = await self._storage_call("find_code", self.storage.find_code, code)
            if existing is None:
                return code
            self.logger.warning("Generated code already exists, drawing another", code=code)
        raise CodeGenerationError(MAX_CODE_GENERATION_ATTEMPTS)

    def _invalidate_entity(self, entity_id: str) -> None:
        self.cache.delete(MemoryCache.key(CacheCategory.IS_PREMIUM, entity_id))
        self.cache.delete(MemoryCache.key(CacheCategory.PREMIUM_STATUS, entity_id))
        self._update_cache_gauge()

    def _cache_get(self, category: CacheCategory, item_id: str) -> Any:
        value = self.cache.get(MemoryCache.key(category, item_id))
        if value is MISSING:
            self._count("premium_cache_misses_total", category=category.value)
            # A miss may have evicted an expired entry
            self._update_cache_gauge()
            return MISSING

        self._count("premium_cache_hits_total", category=category.value)
        self.logger.debug("Cache hit", category=category.value, id=item_id)
        return _detached(value)

    def _cache_set(self, category: CacheCategory, item_id: str, value: Any, ttl: Optional[float] = None) -> None:
        self.cache.set(MemoryCache.key(category, item_id), _detached(value), ttl=ttl)
        self._update_cache_gauge()

    def _cache_delete(self, category: CacheCategory, item_id: str) -> None:
        self.cache.delete(MemoryCache.key(category, item_id))
        self._update_cache_gauge()

    def _update_cache_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("premium_cache_entries", len(self.cache))

    async def _storage_call(self, operation: str, call: Callable[..., Awaitable[Any]], *args) -> Any:
        try:
            return await call(*args)
        except StorageUnavailableError:
            self._count("premium_storage_errors_total", operation=operation)
            raise

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)


def _detached(value: Any) -> Any:
    # Callers get their own copy of cached records
    if isinstance(value, PremiumModel):
        return value.model_copy(deep=True)
    return value
