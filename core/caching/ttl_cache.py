"""
POS Core Caching: Coalescing TTL Cache
========================================
Async key to value cache in front of a slow catalog backend.

- Fresh entries (now < expires_at) are served without a fetch.
- Concurrent reads of one key share a single in-flight fetch.
- A failed fetch removes the key; the next read starts over.
- Size bound is enforced oldest-insertion-first (FIFO, not LRU).
  Refreshing a key keeps its original position. A key whose fetch
  is still running is never evicted.
- Waiters may be cancelled; the fetch itself never is, and its
  result is still cached for the next reader.

Time is injected: the cache never reads the system clock itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from core.caching.errors import CacheFetchError
from core.time.clock import Clock, SystemClock

logger = logging.getLogger("pos.cache")

V = TypeVar("V")

_EXPIRED = datetime.min.replace(tzinfo=timezone.utc)


# ══════════════════════════════════════════════════════════════
# CACHE ENTRY
# ══════════════════════════════════════════════════════════════

@dataclass
class CacheEntry(Generic[V]):
    """
    One cached key.

    `data` is only trusted while now < expires_at. `in_flight` is the
    single fetch task currently populating this key, if any.
    """

    key: str
    expires_at: datetime
    data: Optional[V] = None
    has_data: bool = False
    in_flight: Optional["asyncio.Task[V]"] = None

    def is_fresh(self, now: datetime) -> bool:
        return self.has_data and now < self.expires_at


# ══════════════════════════════════════════════════════════════
# CACHE STATISTICS
# ══════════════════════════════════════════════════════════════

@dataclass
class CacheStats:
    """Cache performance statistics."""

    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    failures: int = 0
    evictions: int = 0
    total_entries: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses + self.coalesced
        if total == 0:
            return 0.0
        return (self.hits + self.coalesced) / total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
            "failures": self.failures,
            "evictions": self.evictions,
            "total_entries": self.total_entries,
            "hit_rate": round(self.hit_rate, 4),
        }


def _consume_exception(task: "asyncio.Task[Any]") -> None:
    # Failures are delivered to waiters; a fetch nobody awaits any more
    # must not log "exception was never retrieved".
    if not task.cancelled():
        task.exception()


# ══════════════════════════════════════════════════════════════
# TTL CACHE
# ══════════════════════════════════════════════════════════════

class TTLCache(Generic[V]):
    """
    In-memory TTL cache with request coalescing and FIFO eviction.

    Usage:
        cache = TTLCache(ttl_ms=3000, max_entries=200, clock=clock)
        products = await cache.get(key, lambda: gateway.find_products(q))
    """

    def __init__(
        self,
        *,
        ttl_ms: int = 3000,
        max_entries: int = 200,
        clock: Optional[Clock] = None,
        name: str = "cache",
    ) -> None:
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive.")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive.")
        self._ttl = timedelta(milliseconds=ttl_ms)
        self._max_entries = max_entries
        self._clock = clock or SystemClock()
        self._name = name
        self._entries: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._stats = CacheStats()

    async def get(self, key: str, fetcher: Callable[[], Awaitable[V]]) -> V:
        """
        Return the value for `key`, fetching it at most once at a time.

        Raises CacheFetchError if the fetch behind this read failed.
        """
        now = self._clock.now_utc()
        entry = self._entries.get(key)

        if entry is not None and entry.is_fresh(now):
            self._stats.hits += 1
            return entry.data  # type: ignore[return-value]

        if entry is not None and entry.in_flight is not None:
            self._stats.coalesced += 1
            logger.debug(f"{self._name}: joining in-flight fetch for {key}")
            return await asyncio.shield(entry.in_flight)

        self._stats.misses += 1
        if entry is None:
            entry = CacheEntry(key=key, expires_at=_EXPIRED)
            self._entries[key] = entry
            self._stats.total_entries = len(self._entries)

        task = asyncio.ensure_future(self._fetch(key, fetcher))
        task.add_done_callback(_consume_exception)
        entry.in_flight = task
        return await asyncio.shield(task)

    def peek(self, key: str) -> Optional[V]:
        """Fresh value for `key` without fetching, or None."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock.now_utc()):
            return None
        return entry.data

    def invalidate(self, key: str) -> bool:
        """Drop a single key. In-flight waiters still get their result."""
        if key in self._entries:
            del self._entries[key]
            self._stats.total_entries = len(self._entries)
            return True
        return False

    def clear(self) -> None:
        """Drop every entry (e.g. when the operator changes)."""
        self._entries.clear()
        self._stats.total_entries = 0

    def keys(self) -> List[str]:
        """Keys in eviction order, oldest first."""
        return list(self._entries.keys())

    @property
    def stats(self) -> CacheStats:
        return self._stats

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    # ── internals ─────────────────────────────────────────────

    async def _fetch(self, key: str, fetcher: Callable[[], Awaitable[V]]) -> V:
        try:
            data = await fetcher()
        except asyncio.CancelledError:
            self._discard(key)
            raise
        except Exception as exc:
            self._discard(key)
            self._stats.failures += 1
            logger.warning(f"{self._name}: fetch failed for {key}: {exc!r}")
            raise CacheFetchError(key, exc) from exc

        self._store(key, data)
        return data

    def _is_own_fetch(self, entry: CacheEntry[V]) -> bool:
        return entry.in_flight is None or entry.in_flight is asyncio.current_task()

    def _store(self, key: str, data: V) -> None:
        now = self._clock.now_utc()
        entry = self._entries.get(key)
        if entry is None:
            # Evicted while the fetch was running: re-insert at the end.
            entry = CacheEntry(key=key, expires_at=now)
            self._entries[key] = entry

        entry.data = data
        entry.has_data = True
        entry.expires_at = now + self._ttl
        if self._is_own_fetch(entry):
            entry.in_flight = None

        self._evict_overflow()
        self._stats.total_entries = len(self._entries)

    def _discard(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is not None and self._is_own_fetch(entry):
            del self._entries[key]
            self._stats.total_entries = len(self._entries)

    def _evict_overflow(self) -> None:
        # Pending keys are skipped; the bound may be exceeded until they settle.
        overflow = len(self._entries) - self._max_entries
        if overflow <= 0:
            return
        settled = [
            key for key, entry in self._entries.items()
            if entry.in_flight is None or entry.in_flight.done()
        ]
        for evicted_key in settled[:overflow]:
            del self._entries[evicted_key]
            self._stats.evictions += 1
            logger.debug(f"{self._name}: evicted {evicted_key}")
