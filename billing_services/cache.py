"""
Process-local cache for financial health snapshots.

A thin, lock-guarded wrapper over ``cachetools.TTLCache``.  Entries expire
a fixed number of seconds after they were written (reads do not extend
their life); when the cache is full the least recently used entry is
evicted.  The timer is ``Clock.monotonic`` so tests can step past the TTL
with a DeterministicClock.

Writes to invoices or projects do NOT invalidate entries; callers that need
fresh numbers call ``invalidate(key)`` or ``clear()``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

import cachetools

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.logging_config import get_logger

logger = get_logger("services.cache")

_MISSING = object()


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class _EvictionCountingTTLCache(cachetools.TTLCache):
    """TTLCache that reports capacity evictions (popitem) to a callback."""

    def __init__(self, maxsize: int, ttl: float, timer: Callable[[], float],
                 on_evict: Callable[[Hashable], None]):
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)
        self._on_evict = on_evict

    def popitem(self) -> tuple[Hashable, Any]:
        key, value = super().popitem()
        self._on_evict(key)
        return key, value


class ExpiringCache:
    """Thread-safe bounded cache with expire-after-write semantics."""

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 1000,
        clock: Clock | None = None,
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._stats = CacheStats()
        self._data = self._new_store()

    def _new_store(self) -> _EvictionCountingTTLCache:
        return _EvictionCountingTTLCache(
            maxsize=self.max_entries,
            ttl=self.ttl_seconds,
            timer=self._clock.monotonic,
            on_evict=self._record_eviction,
        )

    def _record_eviction(self, key: Hashable) -> None:
        self._stats.evictions += 1
        logger.debug("cache_entry_evicted", extra={"key": str(key)})

    def _purge_expired(self) -> None:
        # lock held by caller
        self._stats.expirations += len(self._data.expire())

    def get(self, key: Hashable) -> Any | None:
        with self._lock:
            self._purge_expired()
            value = self._data.get(key, _MISSING)
            if value is _MISSING:
                self._stats.misses += 1
                return None
            self._stats.hits += 1
            return value

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._purge_expired()
            self._data[key] = value

    def invalidate(self, key: Hashable) -> bool:
        """Drop one entry.  Returns True if it was present and still live."""
        with self._lock:
            return self._data.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        # a fresh store; MutableMapping.clear would report each entry as evicted
        with self._lock:
            self._data = self._new_store()

    def stats(self) -> CacheStats:
        """A snapshot copy of the counters."""
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                expirations=self._stats.expirations,
            )

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data
