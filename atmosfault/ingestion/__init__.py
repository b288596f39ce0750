"""
Data ingestion module for AtmosFault.

Handles pulling the hourly telemetry shards and upserting them into
the telemetry store.
"""

from atmosfault.ingestion.feed_client import TelemetryFeedClient, RawSample, validate_batch_index
from atmosfault.ingestion.pipeline import IngestionPipeline, SyncResult

__all__ = [
    'TelemetryFeedClient',
    'RawSample',
    'validate_batch_index',
    'IngestionPipeline',
    'SyncResult',
]
