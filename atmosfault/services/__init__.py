"""
External integration services.

Handles third-party API calls with caching, timeouts, and graceful
degradation when services are unavailable, and assembles them into
tracking responses.
"""

from atmosfault.services.cache_aside import CacheAsideFetcher
from atmosfault.services.geocoding import Geocoder, Coordinates
from atmosfault.services.provider import ProviderResponse, TrackingProviderClient
from atmosfault.services.balloon_tracking import BalloonTracker
from atmosfault.services.response import TrackingResponse, PackageStatus
from atmosfault.services.tracking import TrackingAssembler
from atmosfault.services.weather import WeatherService, WeatherReport

__all__ = [
    'CacheAsideFetcher',
    'Geocoder',
    'Coordinates',
    'ProviderResponse',
    'TrackingProviderClient',
    'BalloonTracker',
    'TrackingResponse',
    'PackageStatus',
    'TrackingAssembler',
    'WeatherService',
    'WeatherReport',
]
