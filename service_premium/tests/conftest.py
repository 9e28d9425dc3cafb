"""
Pytest configuration and shared fixtures for the Premium service.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from shared.config import PremiumConfig
from shared.errors import StorageUnavailableError
from shared.metrics import MetricsCollector
from service_premium.app.cache import MemoryCache
from service_premium.app.engine import PremiumManager
from service_premium.app.models import Entitlement, RedemptionCode
from service_premium.app.persistence import StorageBackend


class FakeClock:
    """Controllable wall and monotonic clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self._monotonic = 1000.0

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, **kwargs) -> None:
        delta = timedelta(**kwargs)
        self.current += delta
        self._monotonic += delta.total_seconds()


class InMemoryStorage(StorageBackend):
    """Dict-backed storage that records calls and can be made to fail."""

    def __init__(self):
        self.entitlements: Dict[str, dict] = {}
        self.codes: Dict[str, dict] = {}
        self.calls: Counter = Counter()
        self.fail_operations: set = set()
        self.started = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    def _record(self, operation: str):
        self.calls[operation] += 1
        if operation in self.fail_operations:
            raise StorageUnavailableError(operation, "simulated outage")

    async def find_entitlement(self, entity_id: str) -> Optional[Entitlement]:
        self._record("find_entitlement")
        document = self.entitlements.get(entity_id)
        return Entitlement.from_document(document) if document else None

    async def save_entitlement(self, entitlement: Entitlement) -> None:
        self._record("save_entitlement")
        self.entitlements[entitlement.entity_id] = entitlement.to_document()

    async def find_code(self, code: str) -> Optional[RedemptionCode]:
        self._record("find_code")
        document = self.codes.get(code)
        return RedemptionCode.from_document(document) if document else None

    async def save_code(self, code: RedemptionCode) -> None:
        self._record("save_code")
        self.codes[code.code] = {**self.codes.get(code.code, {}), **code.to_document()}

    async def find_expired_entitlements(self, now: datetime) -> List[Entitlement]:
        self._record("find_expired_entitlements")
        return [
            e for e in (Entitlement.from_document(d) for d in self.entitlements.values())
            if e.is_premium and e.expires_at is not None and e.expires_at < now
        ]

    async def list_all_entitlements(self) -> List[Entitlement]:
        self._record("list_all_entitlements")
        return [Entitlement.from_document(d) for d in self.entitlements.values()]

    async def list_all_codes(self) -> List[RedemptionCode]:
        self._record("list_all_codes")
        return [RedemptionCode.from_document(d) for d in self.codes.values()]


@pytest.fixture
def clock():
    """Fixture for a controllable clock."""
    return FakeClock()


@pytest.fixture
def storage():
    """Fixture for in-memory storage."""
    return InMemoryStorage()


@pytest.fixture
def metrics():
    """Fixture for a metrics collector with a private registry."""
    return MetricsCollector("premium")


def make_config(**overrides) -> PremiumConfig:
    values = {"storage": "document-db", "preload_tables": False, "cache_ttl": 0}
    values.update(overrides)
    return PremiumConfig(**values)


@pytest.fixture
def make_manager(storage, clock, metrics):
    """Factory fixture building a PremiumManager over the in-memory storage."""

    def _make(**overrides) -> PremiumManager:
        config = make_config(**overrides)
        return PremiumManager(
            config,
            storage=storage,
            cache=MemoryCache(config.cache_ttl, clock=clock.monotonic),
            metrics=metrics,
            clock=clock.now,
        )

    return _make


@pytest.fixture
def manager(make_manager):
    """Fixture for a PremiumManager without preloading and with an unbounded cache."""
    return make_manager()
