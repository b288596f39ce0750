"""
Tracking cache store - persisted provider responses keyed by tracking number.

Written only by the cache-aside fetcher. At most one row per external id;
writes are upserts that refresh refreshed_at.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from atmosfault.exceptions import StorageError
from atmosfault.models import SessionLocal, CachedTrackingRecord, as_utc, get_session
from atmosfault.store.dialect import upsert_insert

logger = logging.getLogger(__name__)


class TrackingCacheStore:
    """Repository for CachedTrackingRecord rows."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or SessionLocal

    def get(self, external_id: str) -> Optional[CachedTrackingRecord]:
        try:
            with self._session_factory() as session:
                record = session.get(CachedTrackingRecord, external_id)
        except SQLAlchemyError as e:
            raise StorageError(f'Tracking cache read failed: {e}') from e

        if record is not None:
            record.refreshed_at = as_utc(record.refreshed_at)
            record.created_at = as_utc(record.created_at)
        return record

    def upsert(self, external_id: str, payload: dict, refreshed_at: datetime) -> None:
        """Insert a new row or replace the payload of the existing one."""
        try:
            with get_session(self._session_factory) as session:
                stmt = upsert_insert(session, CachedTrackingRecord).values(
                    external_id=external_id,
                    payload=payload,
                    refreshed_at=refreshed_at,
                    created_at=refreshed_at,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=['external_id'],
                    set_={
                        'payload': stmt.excluded.payload,
                        'refreshed_at': stmt.excluded.refreshed_at,
                    }
                )
                session.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f'Tracking cache write failed: {e}') from e

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete rows not refreshed since cutoff. Returns rows deleted."""
        try:
            with get_session(self._session_factory) as session:
                result = session.execute(
                    delete(CachedTrackingRecord).where(CachedTrackingRecord.refreshed_at < cutoff)
                )
        except SQLAlchemyError as e:
            raise StorageError(f'Tracking cache cleanup failed: {e}') from e

        deleted = result.rowcount or 0
        if deleted:
            logger.info(f'Cleanup: removed {deleted} cached tracking records')
        return deleted
