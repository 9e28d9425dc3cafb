"""
In-process caching layer for the Premium service.
"""

import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from shared.logging import get_logger


class CacheCategory(str, Enum):
    """Cache key categories."""
    IS_PREMIUM = "isPremium"
    PREMIUM_STATUS = "premiumStatus"
    CODE_INFO = "premiumCodeInfo"


CacheKey = Tuple[CacheCategory, str]

# Expired entries are swept after this many writes
PRUNE_EVERY_WRITES = 256


class _Missing:
    """Sentinel type for a cache miss."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "MISSING"


MISSING = _Missing()


class MemoryCache:
    """
    Key-scoped memoization of storage reads.

    Every entry shares the global ``ttl_seconds`` (0 disables expiry). A
    per-entry ``ttl`` passed to :meth:`set` can only shorten that lifetime.
    ``None`` is a legitimate cached value; absence is reported as ``MISSING``.
    """

    def __init__(self, ttl_seconds: int = 0, clock: Optional[Callable[[], float]] = None):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self.ttl_seconds = ttl_seconds
        self.clock = clock or time.monotonic
        self.logger = get_logger("premium.cache.memory")
        self._entries: Dict[CacheKey, Tuple[Any, Optional[float]]] = {}
        self._hits = 0
        self._misses = 0
        self._writes = 0

    @staticmethod
    def key(category: CacheCategory, item_id: str) -> CacheKey:
        """Build a composite cache key."""
        return (CacheCategory(category), item_id)

    def get(self, key: CacheKey) -> Any:
        """Return the cached value or ``MISSING``."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return MISSING

        value, deadline = entry
        if deadline is not None and self.clock() >= deadline:
            del self._entries[key]
            self._misses += 1
            return MISSING

        self._hits += 1
        return value

    def set(self, key: CacheKey, value: Any, ttl: Optional[float] = None) -> None:
        """Cache ``value`` under ``key``."""
        lifetime = self._effective_ttl(ttl)
        if lifetime is not None and lifetime <= 0:
            # Already stale
            self._entries.pop(key, None)
            return
        deadline = self.clock() + lifetime if lifetime is not None else None
        self._entries[key] = (value, deadline)

        self._writes += 1
        if self._writes % PRUNE_EVERY_WRITES == 0:
            self.prune()

    def delete(self, key: CacheKey) -> bool:
        """Drop a single entry."""
        return self._entries.pop(key, None) is not None

    def prune(self) -> int:
        """Drop every expired entry; returns how many were dropped."""
        now = self.clock()
        expired = [
            key for key, (_, deadline) in self._entries.items()
            if deadline is not None and now >= deadline
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            self.logger.debug("Expired cache entries pruned", entries=len(expired))
        return len(expired)

    def clear(self) -> int:
        """Drop every entry."""
        count = len(self._entries)
        self._entries.clear()
        self.logger.info("Cache cleared", entries=count)
        return count

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        self.prune()
        total = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
            "ttl_seconds": self.ttl_seconds,
        }

    def _effective_ttl(self, ttl: Optional[float]) -> Optional[float]:
        if ttl is None:
            return self.ttl_seconds or None
        if self.ttl_seconds:
            return min(ttl, self.ttl_seconds)
        return ttl
