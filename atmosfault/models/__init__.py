"""
Database models for AtmosFault.

Two tables, each written by exactly one pipeline:
1. telemetry_samples - hourly balloon positions (ingestion pipeline)
2. tracking_cache    - provider responses (cache-aside fetcher)
"""

from atmosfault.models.base import (
    Base, engine, SessionLocal, init_db, get_session, utcnow, as_utc,
)
from atmosfault.models.telemetry_sample import TelemetrySample, format_source_id
from atmosfault.models.tracking_record import CachedTrackingRecord

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'init_db',
    'get_session',
    'utcnow',
    'as_utc',
    'TelemetrySample',
    'format_source_id',
    'CachedTrackingRecord',
]
