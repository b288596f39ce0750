"""
AtmosFault Package.

Shipment tracking that pins the blame for delays on nearby weather
balloons, built with Flask, SQLAlchemy, and NumPy.

Modules:
    api/          REST endpoints for tracking lookups and telemetry sync
    models/       SQLAlchemy ORM models (TelemetrySample, CachedTrackingRecord)
    store/        Upsert-based persistence for telemetry and provider payloads
    ingestion/    Hourly telemetry shard pipeline with chunked writes
    analytics/    Geospatial blame correlation over nearby balloons
    services/     Carrier provider, cache-aside fetch, geocoding, weather
    cache.py      Thread-safe in-memory TTL cache
    geo.py        Haversine distance and bounding boxes
    config.py     Centralized configuration from environment variables
    sync.py       Command line sync and retention cleanup
"""

__version__ = '1.0.0'
