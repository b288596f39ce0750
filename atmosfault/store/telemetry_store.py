"""
Telemetry store - keyed persistence for balloon samples.

Only the ingestion pipeline writes here; the correlation engine and the
balloon tracker read. Every write is an upsert on (batch_index, ordinal)
so retries and duplicate sync triggers are safe.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from atmosfault.exceptions import StorageError
from atmosfault.geo import BoundingBox
from atmosfault.models import SessionLocal, TelemetrySample, get_session
from atmosfault.store.dialect import upsert_insert

logger = logging.getLogger(__name__)


class TelemetryStore:
    """Repository for TelemetrySample rows."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or SessionLocal

    def upsert_chunk(self, rows: List[dict]) -> int:
        """
        Insert or overwrite one chunk of samples in a single transaction.

        Each row needs batch_index, ordinal, latitude, longitude, altitude
        and observed_at. Returns the number of rows written.

        Raises:
            StorageError if the transaction fails (nothing from this chunk
            is committed).
        """
        if not rows:
            return 0

        try:
            with get_session(self._session_factory) as session:
                stmt = upsert_insert(session, TelemetrySample).values(rows)
                stmt = stmt.on_conflict_do_update(
                    index_elements=['batch_index', 'ordinal'],
                    set_={
                        'latitude': stmt.excluded.latitude,
                        'longitude': stmt.excluded.longitude,
                        'altitude': stmt.excluded.altitude,
                        'observed_at': stmt.excluded.observed_at,
                    }
                )
                session.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f'Telemetry upsert failed: {e}') from e

        return len(rows)

    def within_box(self, bbox: BoundingBox, limit: int = 50) -> List[TelemetrySample]:
        """
        Samples whose stored position falls inside bbox.

        Ordered by (batch_index, ordinal) so the same snapshot always yields
        the same rows when the limit truncates.
        """
        lon_clauses = [
            TelemetrySample.longitude.between(lo, hi)
            for lo, hi in bbox.lon_ranges()
        ]
        query = (
            select(TelemetrySample)
            .where(TelemetrySample.latitude.between(bbox.lat_min, bbox.lat_max))
            .where(or_(*lon_clauses))
            .order_by(TelemetrySample.batch_index, TelemetrySample.ordinal)
            .limit(limit)
        )
        return self._fetch(query)

    def track(self, ordinal: int, limit: int = 100) -> List[TelemetrySample]:
        """All samples sharing an ordinal across shards, newest shard first."""
        query = (
            select(TelemetrySample)
            .where(TelemetrySample.ordinal == ordinal)
            .order_by(TelemetrySample.batch_index)
            .limit(limit)
        )
        return self._fetch(query)

    def get(self, batch_index: int, ordinal: int) -> Optional[TelemetrySample]:
        query = select(TelemetrySample).where(
            TelemetrySample.batch_index == batch_index,
            TelemetrySample.ordinal == ordinal,
        )
        rows = self._fetch(query)
        return rows[0] if rows else None

    def count(self, batch_index: Optional[int] = None) -> int:
        query = select(func.count()).select_from(TelemetrySample)
        if batch_index is not None:
            query = query.where(TelemetrySample.batch_index == batch_index)
        try:
            with self._session_factory() as session:
                return session.execute(query).scalar_one()
        except SQLAlchemyError as e:
            raise StorageError(f'Telemetry count failed: {e}') from e

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete samples last observed before cutoff. Returns rows deleted."""
        try:
            with get_session(self._session_factory) as session:
                result = session.execute(
                    delete(TelemetrySample).where(TelemetrySample.observed_at < cutoff)
                )
        except SQLAlchemyError as e:
            raise StorageError(f'Telemetry cleanup failed: {e}') from e

        deleted = result.rowcount or 0
        if deleted:
            logger.info(f'Cleanup: removed {deleted} telemetry samples older than {cutoff.isoformat()}')
        return deleted

    def _fetch(self, query) -> List[TelemetrySample]:
        try:
            with self._session_factory() as session:
                return list(session.scalars(query).all())
        except SQLAlchemyError as e:
            raise StorageError(f'Telemetry query failed: {e}') from e

