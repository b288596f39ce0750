"""
TelemetrySample model - hourly positional samples from the balloon feed.

The feed publishes 24 shards, one per hour (00 = most recent), each a
plain array of [latitude, longitude, altitude_km] triples. A sample is
identified by which shard it came from and its position in that shard,
so (batch_index, ordinal) is the natural key and the idempotency boundary
for re-ingestion.

Schema optimized for:
- Idempotent chunked upserts keyed on (batch_index, ordinal)
- Bounding-box prefilter queries on latitude/longitude
- Age-based retention sweeps on observed_at
"""

from datetime import datetime

from sqlalchemy import Float, Integer, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from atmosfault.models.base import Base, utcnow


class TelemetrySample(Base):
    """
    One observation of one balloon in one hourly shard.

    Values are overwritten in place when the same shard is ingested again;
    rows are removed only by the retention sweep.
    """

    __tablename__ = 'telemetry_samples'

    # Surrogate primary key
    # Using Integer for SQLite compatibility (autoincrement only works with INTEGER)
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment='Surrogate key'
    )

    latitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment='Latitude in decimal degrees'
    )

    longitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment='Longitude in decimal degrees'
    )

    altitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment='Altitude in kilometers'
    )

    batch_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment='Source shard, 0-23 (hours before the latest snapshot)'
    )

    ordinal: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment='Position within the source shard'
    )

    observed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment='When this sample was last ingested'
    )

    __table_args__ = (
        # Idempotency key for re-ingestion
        UniqueConstraint('batch_index', 'ordinal', name='uq_telemetry_batch_ordinal'),

        # Retention sweep
        Index('ix_telemetry_observed_at', 'observed_at'),

        # Per-shard queries
        Index('ix_telemetry_batch_index', 'batch_index'),

        # Per-balloon track across shards
        Index('ix_telemetry_ordinal', 'ordinal'),

        # Bounding-box prefilter for correlation
        Index('ix_telemetry_location', 'latitude', 'longitude'),
    )

    def __repr__(self) -> str:
        return f'<TelemetrySample {self.source_id} @ {self.altitude:.1f}km>'

    @property
    def source_id(self) -> str:
        """Public identifier, e.g. 'ATM-05000042' for shard 5, ordinal 42."""
        return format_source_id(self.batch_index, self.ordinal)


def format_source_id(batch_index: int, ordinal: int) -> str:
    return f'ATM-{batch_index:02d}{ordinal:06d}'
