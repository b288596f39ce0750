"""
Ingestion pipeline - orchestrates data flow from the telemetry feed to the store.

Sync is a low-frequency maintenance job, not a hot path:
- Pull one hourly shard at a time
- Transform rows into keyed samples
- Upsert in fixed-size chunks, one transaction per chunk
- Isolate failures per shard so one bad hour never aborts a full sync

Pipeline stages:
1. Fetch: GET the shard from the feed
2. Transform: row i of shard h becomes sample (h, i)
3. Upsert: chunked INSERT ... ON CONFLICT on (batch_index, ordinal)
4. Cleanup: retention sweep by age (on demand)

Idempotence comes from the store key, so re-running a sync, or running two
at once, converges on the same rows.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from atmosfault.config import config
from atmosfault.exceptions import AtmosFaultError
from atmosfault.ingestion.feed_client import (
    BATCH_COUNT, RawSample, TelemetryFeedClient, validate_batch_index,
)
from atmosfault.models import utcnow
from atmosfault.store import TelemetryStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of a full sync across every shard."""
    total: int = 0
    per_batch: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def failed_batches(self) -> List[int]:
        return [batch for batch, count in self.per_batch if count == 0]

    def to_dict(self) -> dict:
        return {
            'total_records': self.total,
            'hour_results': [
                {'hour': batch, 'count': count} for batch, count in self.per_batch
            ],
        }


def chunked(rows: List[dict], size: int) -> Iterable[List[dict]]:
    """Split rows into consecutive lists of at most size items."""
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class IngestionPipeline:
    """
    Manages the telemetry ingestion lifecycle.

    Coordinates fetching from the feed and chunked writes to the store.
    Can run as a background thread for periodic re-sync.
    """

    def __init__(
        self,
        client: Optional[TelemetryFeedClient] = None,
        store: Optional[TelemetryStore] = None,
        chunk_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the ingestion pipeline.

        Args:
            client: Feed client (created from config if None)
            store: Telemetry store (default session factory if None)
            chunk_size: Rows per upsert transaction
            max_workers: Shards fetched concurrently by ingest_all (1 = sequential)
            clock: Source of observed_at timestamps
            cancel_event: When set, work stops at the next chunk boundary
        """
        self.client = client or TelemetryFeedClient.from_config()
        self.store = store or TelemetryStore()
        self.chunk_size = chunk_size or config.feed.chunk_size
        self.max_workers = max(1, max_workers or config.feed.max_workers)
        self._clock = clock
        self.cancel_event = cancel_event or threading.Event()

        # State tracking
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._last_sync_time: float = 0
        self._sync_count: int = 0
        self._error_count: int = 0
        self._stats_lock = threading.Lock()

    def _transform(self, batch_index: int, samples: List[RawSample]) -> List[dict]:
        """Turn parsed feed rows into store rows for one shard."""
        observed_at = self._clock()
        return [
            {
                'batch_index': batch_index,
                'ordinal': s.ordinal,
                'latitude': s.latitude,
                'longitude': s.longitude,
                'altitude': s.altitude,
                'observed_at': observed_at,
            }
            for s in samples
        ]

    def ingest_batch(self, batch_index: int) -> int:
        """
        Fetch one shard and upsert it.

        Returns count of rows written.

        Raises:
            ValidationError for an hour outside 0..23
            UpstreamUnavailable if the feed fetch fails
            StorageError if a chunk write fails; earlier chunks stay committed
        """
        validate_batch_index(batch_index)
        logger.info(f'Fetching data for hour {batch_index}...')

        samples = self.client.fetch_batch(batch_index)
        rows = self._transform(batch_index, samples)

        written = 0
        for number, chunk in enumerate(chunked(rows, self.chunk_size), start=1):
            if self.cancel_event.is_set():
                logger.warning(f'Hour {batch_index} cancelled after {written} records')
                break
            written += self.store.upsert_chunk(chunk)
            logger.debug(f'Hour {batch_index}: upserted chunk {number} ({len(chunk)} records)')

        logger.info(f'Completed hour {batch_index}: {written} records processed')
        return written

    def _ingest_isolated(self, batch_index: int) -> int:
        """ingest_batch, with any failure logged and counted as zero."""
        if self.cancel_event.is_set():
            return 0
        try:
            return self.ingest_batch(batch_index)
        except AtmosFaultError as e:
            with self._stats_lock:
                self._error_count += 1
            logger.error(f'Failed to process hour {batch_index}, continuing: {e}')
            return 0

    def ingest_all(self) -> SyncResult:
        """
        Sync every shard 0..23.

        A failing shard is recorded with a zero count and the run carries on.
        With max_workers > 1 shards are fetched concurrently; results are
        still reported in shard order.
        """
        logger.info('Starting full telemetry sync for all 24 hours...')
        batches = range(BATCH_COUNT)

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                counts = list(pool.map(self._ingest_isolated, batches))
        else:
            counts = [self._ingest_isolated(b) for b in batches]

        result = SyncResult(
            total=sum(counts),
            per_batch=list(zip(batches, counts)),
        )

        with self._stats_lock:
            self._sync_count += 1
            self._last_sync_time = time.time()

        logger.info(f'Completed! Total records processed: {result.total}')
        if result.failed_batches:
            logger.warning(f'Hours with no records: {result.failed_batches}')
        return result

    def purge_older_than(self, days: int) -> int:
        """Retention sweep: delete samples not re-observed in the last N days."""
        cutoff = self._clock() - timedelta(days=days)
        return self.store.purge_older_than(cutoff)

    def run_continuous(self, interval: float) -> None:
        """
        Re-sync every interval seconds until stop() is called.

        This method blocks - use start_background() for non-blocking.
        """
        self._running = True
        logger.info(f'Starting periodic telemetry sync (interval={interval}s)')

        while self._running and not self.cancel_event.is_set():
            self.ingest_all()
            # wait() doubles as an interruptible sleep
            if self.cancel_event.wait(interval):
                break

        self._running = False
        logger.info('Periodic sync stopped')

    def start_background(self, interval: float) -> None:
        """Start periodic sync in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning('Periodic sync already running')
            return

        self.cancel_event.clear()
        self._thread = threading.Thread(
            target=self.run_continuous,
            args=(interval,),
            daemon=True,
        )
        self._thread.start()
        logger.info('Background sync started')

    def stop(self) -> None:
        """Stop background sync and cancel any in-flight run."""
        self._running = False
        self.cancel_event.set()
        if self._thread:
            self._thread.join(timeout=5)
        logger.info('Sync stopped')

    @property
    def stats(self) -> dict:
        """Get ingestion statistics."""
        with self._stats_lock:
            return {
                'sync_count': self._sync_count,
                'error_count': self._error_count,
                'last_sync_time': self._last_sync_time,
                'running': self._running,
            }
