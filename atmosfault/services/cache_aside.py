"""
Cache-aside fetcher for the tracking provider.

The provider is rate-limited and slow, so every lookup goes through a
persisted, time-boxed cache:

1. Read the cached row for the tracking number
2. If it was refreshed less than TTL ago, return it (no provider call)
3. Otherwise call the provider, upsert the row, return the fresh payload
4. If the live call fails, return None

An expired row is never served, even when the live call fails.

Concurrent misses for the same tracking number inside one process share a
single live call through a per-key lock; the second caller re-reads the
cache once the first has written it.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from atmosfault.config import config
from atmosfault.exceptions import StorageError, UpstreamUnavailable
from atmosfault.models import utcnow
from atmosfault.services.provider import ProviderResponse, TrackingProviderClient
from atmosfault.store import TrackingCacheStore

logger = logging.getLogger(__name__)


class CacheAsideFetcher:
    """
    Serves provider responses from the tracking cache when fresh enough,
    falling back to a live fetch-then-store.
    """

    def __init__(
        self,
        client: Optional[TrackingProviderClient] = None,
        store: Optional[TrackingCacheStore] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client or TrackingProviderClient.from_config()
        self.store = store or TrackingCacheStore()
        self.ttl = timedelta(
            seconds=ttl_seconds if ttl_seconds is not None else config.provider.cache_ttl_seconds
        )
        self._clock = clock

        # Single-flight guard: one lock per tracking number being fetched
        self._inflight: Dict[str, threading.Lock] = {}
        self._inflight_guard = threading.Lock()

        # Statistics
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._live_fetches = 0
        self._failures = 0

    def _read_fresh(self, external_id: str) -> Optional[ProviderResponse]:
        """Return the cached response if present, valid and within TTL."""
        try:
            record = self.store.get(external_id)
        except StorageError as e:
            logger.error(f'Error reading tracking cache for {external_id}: {e}')
            return None

        if record is None:
            return None

        age = self._clock() - record.refreshed_at
        if age >= self.ttl:
            logger.info(f'Cache expired for {external_id}')
            return None

        try:
            response = ProviderResponse.from_dict(record.payload)
        except UpstreamUnavailable as e:
            logger.warning(f'Discarding unreadable cached payload for {external_id}: {e}')
            return None

        logger.info(f'Cache hit for {external_id} (age: {int(age.total_seconds())}s)')
        return response

    def _fetch_live(self, external_id: str) -> Optional[ProviderResponse]:
        logger.info(f'Fetching {external_id} from tracking provider')
        with self._stats_lock:
            self._live_fetches += 1

        try:
            raw = self.client.fetch(external_id)
            response = ProviderResponse.from_dict(raw)
        except UpstreamUnavailable as e:
            with self._stats_lock:
                self._failures += 1
            logger.warning(f'Live tracking lookup failed for {external_id}: {e}')
            return None

        try:
            self.store.upsert(external_id, response.raw, refreshed_at=self._clock())
            logger.debug(f'Cached shipment {external_id}')
        except StorageError as e:
            # The fresh answer is still good; only the next request pays for this
            logger.error(f'Error saving {external_id} to tracking cache: {e}')

        return response

    def _lock_for(self, external_id: str) -> threading.Lock:
        with self._inflight_guard:
            lock = self._inflight.get(external_id)
            if lock is None:
                lock = threading.Lock()
                self._inflight[external_id] = lock
            return lock

    def _release(self, external_id: str, lock: threading.Lock) -> None:
        with self._inflight_guard:
            if self._inflight.get(external_id) is lock:
                del self._inflight[external_id]

    def get_tracking(self, external_id: str) -> Optional[ProviderResponse]:
        """
        Get the provider response for a tracking number.

        Returns:
            A validated ProviderResponse, from cache if refreshed within TTL,
            otherwise from a live call. None if the live call fails.
        """
        cached = self._read_fresh(external_id)
        if cached is not None:
            with self._stats_lock:
                self._hits += 1
            return cached

        with self._stats_lock:
            self._misses += 1

        lock = self._lock_for(external_id)
        with lock:
            try:
                # Another caller may have refreshed the row while we waited
                cached = self._read_fresh(external_id)
                if cached is not None:
                    return cached
                return self._fetch_live(external_id)
            finally:
                self._release(external_id, lock)

    def purge_older_than(self, days: int) -> int:
        """Retention sweep for rows not refreshed in the last N days."""
        cutoff = self._clock() - timedelta(days=days)
        return self.store.purge_older_than(cutoff)

    @property
    def stats(self) -> dict:
        with self._stats_lock:
            return {
                'hits': self._hits,
                'misses': self._misses,
                'live_fetches': self._live_fetches,
                'failures': self._failures,
                'ttl_seconds': self.ttl.total_seconds(),
            }
