"""
Cache package for the Premium service.

Provides a process-local cache that memoizes premium flags, entitlement
records and code lookups. The cache is owned by a single engine instance
and is never shared across processes.
"""

from .memory_cache import MISSING, CacheCategory, CacheKey, MemoryCache

__all__ = ["MISSING", "CacheCategory", "CacheKey", "MemoryCache"]
