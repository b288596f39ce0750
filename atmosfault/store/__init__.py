"""
Persistence repositories.

Each store wraps one table and translates database failures into
StorageError so callers can skip the failed unit of work and continue.
"""

from atmosfault.store.telemetry_store import TelemetryStore
from atmosfault.store.tracking_cache import TrackingCacheStore

__all__ = ['TelemetryStore', 'TrackingCacheStore']
