"""
Configuration management for AtmosFault.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic strings scattered
throughout the codebase.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class TrackingProviderConfig:
    """Shipment tracking provider (DHL Unified Tracking API)."""
    api_key: Optional[str] = os.getenv('DHL_API_KEY') or None
    base_url: str = os.getenv('DHL_API_URL', 'https://api-eu.dhl.com/track/shipments')
    service: str = 'express'
    timeout_seconds: float = float(os.getenv('DHL_TIMEOUT_SECONDS', '10'))

    # Cached responses younger than this are served without a live call
    cache_ttl_seconds: int = int(os.getenv('TRACKING_CACHE_TTL_SECONDS', '300'))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class TelemetryFeedConfig:
    """Hourly telemetry shard feed (WindBorne balloon constellation)."""
    base_url: str = os.getenv('TELEMETRY_FEED_URL', 'https://a.windbornesystems.com/treasure')
    timeout_seconds: float = float(os.getenv('TELEMETRY_FEED_TIMEOUT_SECONDS', '10'))

    batch_count: int = 24
    chunk_size: int = 1000  # Max rows per upsert transaction

    # 0 disables the background sync loop
    sync_interval_minutes: int = int(os.getenv('SYNC_INTERVAL_MINUTES', '0'))
    max_workers: int = int(os.getenv('SYNC_MAX_WORKERS', '1'))


@dataclass(frozen=True)
class GeocodingConfig:
    """Mapbox geocoding settings."""
    api_key: Optional[str] = os.getenv('MAPBOX_API_KEY') or None
    base_url: str = 'https://api.mapbox.com/geocoding/v5/mapbox.places'
    timeout_seconds: float = float(os.getenv('GEOCODING_TIMEOUT_SECONDS', '10'))
    cache_ttl_seconds: int = int(os.getenv('GEOCODE_CACHE_TTL_SECONDS', '1800'))
    cache_max_entries: int = 500

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class WeatherConfig:
    """OpenWeatherMap settings."""
    api_key: Optional[str] = os.getenv('OPENWEATHER_API_KEY') or None
    base_url: str = 'https://api.openweathermap.org/data/2.5/weather'
    timeout_seconds: float = float(os.getenv('WEATHER_TIMEOUT_SECONDS', '10'))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class CorrelationConfig:
    """Blame correlation tuning."""
    radius_km: float = float(os.getenv('CORRELATION_RADIUS_KM', '1000'))
    query_limit: int = 50  # Max samples pulled by the bounding-box prefilter
    max_candidates: int = 10
    severity_sample_size: int = 5  # Top-N candidates averaged into the severity index


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///atmosfault.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class RetentionConfig:
    """Data retention policy."""
    days: int = int(os.getenv('RETENTION_DAYS', '7'))


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    provider: TrackingProviderConfig
    feed: TelemetryFeedConfig
    geocoding: GeocodingConfig
    weather: WeatherConfig
    correlation: CorrelationConfig
    database: DatabaseConfig
    retention: RetentionConfig

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        provider=TrackingProviderConfig(),
        feed=TelemetryFeedConfig(),
        geocoding=GeocodingConfig(),
        weather=WeatherConfig(),
        correlation=CorrelationConfig(),
        database=DatabaseConfig(),
        retention=RetentionConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
