"""
Geocoding service - resolves carrier city names to coordinates.

Carrier scans carry a locality string, not a position. To place a scan on
the map (and to correlate it with telemetry) the city is resolved through
the Mapbox places API.

Carrier localities look like "CITY - REGION - COUNTRY"; the country part
is used to bias the lookup so "EAST MIDLANDS - GB" and a same-named US
town don't collide.

Results, including misses, are memoized in a TTLCache passed in by the
caller. Lookups never raise: any failure means "no coordinates".
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import quote

import requests

from atmosfault.cache import TTLCache
from atmosfault.config import config

logger = logging.getLogger(__name__)


# Carrier country codes that differ from ISO 3166-1 alpha-2
COUNTRY_ALIASES = {
    'UK': 'GB',
    'USA': 'US',
}


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


def split_locality(address_locality: str) -> Tuple[str, Optional[str]]:
    """
    Split a carrier locality into (city, country).

    "LONDON - HEATHROW - UK" -> ("LONDON", "UK")
    "LEIPZIG"                -> ("LEIPZIG", None)
    """
    parts = [p.strip() for p in address_locality.split(' - ')]
    city = parts[0]
    country = parts[2] if len(parts) > 2 and parts[2] else None
    return city, country


class Geocoder:
    """
    Mapbox-backed city geocoder with read-through memoization.

    Strategy: cache -> Mapbox API. Negative results are cached too, so an
    unknown city costs one API call per TTL rather than one per request.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        cache: Optional[TTLCache] = None,
        base_url: str = 'https://api.mapbox.com/geocoding/v5/mapbox.places',
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=1800, max_entries=500)
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

        if not self.api_key:
            logger.warning('MAPBOX_API_KEY not configured - city coordinates unavailable')

    @classmethod
    def from_config(cls) -> 'Geocoder':
        """Create geocoder from application configuration."""
        return cls(
            api_key=config.geocoding.api_key,
            cache=TTLCache(
                ttl_seconds=config.geocoding.cache_ttl_seconds,
                max_entries=config.geocoding.cache_max_entries,
            ),
            base_url=config.geocoding.base_url,
            timeout=config.geocoding.timeout_seconds,
        )

    def lookup(
        self,
        address_locality: Optional[str],
        country_code: Optional[str] = None,
    ) -> Optional[Coordinates]:
        """
        Resolve a carrier locality to coordinates.

        Args:
            address_locality: "CITY - REGION - COUNTRY" or a bare city name
            country_code: Overrides the country parsed from the locality

        Returns:
            Coordinates, or None when the city cannot be resolved.
        """
        if not address_locality or not address_locality.strip():
            return None

        city, parsed_country = split_locality(address_locality)
        country = country_code or parsed_country
        cache_key = f'{city}:{country}' if country else city

        found, coords = self.cache.lookup(cache_key)
        if found:
            return coords

        coords = self._fetch_from_mapbox(city, country)
        if coords is None:
            logger.warning(f'No coordinates found for city: {address_locality}{f" ({country})" if country else ""}')

        self.cache.set(cache_key, coords)
        return coords

    def _fetch_from_mapbox(self, city: str, country: Optional[str]) -> Optional[Coordinates]:
        if not self.api_key:
            return None

        params = {
            'access_token': self.api_key,
            'limit': 1,
            'types': 'place',
        }
        if country:
            params['country'] = COUNTRY_ALIASES.get(country.upper(), country).lower()

        url = f'{self.base_url}/{quote(city)}.json'

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            if response.status_code != 200:
                logger.warning(f'Mapbox API error: {response.status_code}')
                return None
            data = response.json()
        except requests.RequestException as e:
            logger.warning(f'Mapbox API error for "{city}": {e}')
            return None
        except ValueError:
            logger.warning(f'Mapbox returned invalid JSON for "{city}"')
            return None

        features = data.get('features') if isinstance(data, dict) else None
        if not features:
            logger.debug(f'Mapbox: no results for city "{city}"{f" in {country}" if country else ""}')
            return None

        try:
            longitude, latitude = features[0]['center'][:2]
            return Coordinates(latitude=float(latitude), longitude=float(longitude))
        except (KeyError, TypeError, ValueError, IndexError):
            logger.warning(f'Mapbox returned an unexpected feature for "{city}"')
            return None
