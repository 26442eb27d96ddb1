"""
POS Core Caching: Public API
==============================
Coalescing TTL cache and canonical cache keys for catalog reads.
Cache state is owned by an explicit object; there is no module-level
cache.
"""

from core.caching.errors import CacheError, CacheFetchError
from core.caching.keys import canonicalize, stable_cache_key
from core.caching.ttl_cache import CacheEntry, CacheStats, TTLCache

__all__ = [
    "CacheEntry",
    "CacheError",
    "CacheFetchError",
    "CacheStats",
    "TTLCache",
    "canonicalize",
    "stable_cache_key",
]
