"""
In-memory TTL cache for read-through memoization.

Used to shield external lookups (geocoding) that are slow, quota-limited,
and return the same answer for the same key for a long time:
- Sub-millisecond reads for repeated keys
- Lazy expiration on read
- Thread-safe operations for concurrent requests
- Bounded size with oldest-first eviction

The cache is never a source of truth. Clearing it, or bypassing it
entirely, only costs extra upstream calls.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Tuple

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    cached_at: float


class TTLCache:
    """
    Thread-safe in-memory cache with per-entry time-to-live.

    The clock is injectable so tests can move time forward without
    sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock

        self._cache: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.RLock()

        # Statistics
        self._hits = 0
        self._misses = 0

    def lookup(self, key: Hashable) -> Tuple[bool, Any]:
        """
        Look up a key.

        Returns (found, value). A cached None is a valid hit, which lets
        callers memoize negative results.
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                age = self._clock() - entry.cached_at
                if age < self.ttl_seconds:
                    self._hits += 1
                    return True, entry.value
                # Expired
                del self._cache[key]
            self._misses += 1
        return False, None

    def get(self, key: Hashable, default: Any = None) -> Any:
        found, value = self.lookup(key)
        return value if found else default

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._cache[key] = CacheEntry(value=value, cached_at=self._clock())

            # Evict if over capacity
            if len(self._cache) > self.max_entries:
                self._evict_oldest()

    def _evict_oldest(self) -> None:
        """Remove oldest entries when over capacity."""
        entries = sorted(
            self._cache.items(),
            key=lambda x: x[1].cached_at
        )
        # Remove oldest 10%
        to_remove = max(1, len(entries) // 10)
        for key, _ in entries[:to_remove]:
            del self._cache[key]
        logger.debug(f'Evicted {to_remove} cache entries')

    def invalidate(self, key: Hashable) -> None:
        """Remove specific entry from cache."""
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                'entries': len(self._cache),
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / total if total > 0 else 0,
            }
