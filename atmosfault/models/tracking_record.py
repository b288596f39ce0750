"""
CachedTrackingRecord model - persisted provider responses.

Backs the cache-aside layer in front of the tracking provider. The full
provider response is stored as an opaque JSON blob so the cache never has
to track provider schema changes; validation happens when the blob is read.

Design notes:
- One row per external id (upsert pattern)
- Freshness is derived from refreshed_at, never stored as a flag
- refreshed_at is indexed for retention sweeps
"""

from datetime import datetime

from sqlalchemy import JSON, String, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from atmosfault.models.base import Base, utcnow


class CachedTrackingRecord(Base):
    """Latest provider response for one tracking number."""

    __tablename__ = 'tracking_cache'

    external_id: Mapped[str] = mapped_column(
        String(100),
        primary_key=True,
        comment='Carrier tracking number'
    )

    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        comment='Complete provider response'
    )

    refreshed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment='Last successful live fetch'
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment='First cached'
    )

    __table_args__ = (
        Index('ix_tracking_cache_refreshed_at', 'refreshed_at'),
    )

    def __repr__(self) -> str:
        return f'<CachedTrackingRecord {self.external_id} @ {self.refreshed_at}>'
