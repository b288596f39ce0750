"""
Weather service - current surface conditions at a coordinate.

Backed by the OpenWeatherMap current weather endpoint in metric units.
Weather is an optional enrichment: the assembler swallows every failure
raised here.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional

import requests

from atmosfault.config import config
from atmosfault.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass
class WeatherReport:
    """Current conditions at one point."""
    temperature: float  # Celsius
    feels_like: float
    pressure: float  # hPa
    humidity: float  # %
    wind_speed: float  # m/s
    wind_direction: Optional[float]  # degrees
    description: str  # e.g. "clear sky"
    icon: str  # OpenWeatherMap icon code
    clouds: Optional[float]  # % cloud coverage

    @classmethod
    def from_api(cls, data: dict) -> 'WeatherReport':
        """
        Parse an OpenWeatherMap response.

        Raises:
            UpstreamUnavailable if required sections are missing
        """
        try:
            main = data['main']
            wind = data.get('wind') or {}
            condition = data['weather'][0]
            return cls(
                temperature=float(main['temp']),
                feels_like=float(main['feels_like']),
                pressure=float(main['pressure']),
                humidity=float(main['humidity']),
                wind_speed=float(wind.get('speed', 0.0)),
                wind_direction=wind.get('deg'),
                description=str(condition.get('description', '')),
                icon=str(condition.get('icon', '')),
                clouds=(data.get('clouds') or {}).get('all'),
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(f'Malformed weather payload: {e}', service='weather') from e

    def to_dict(self) -> dict:
        return asdict(self)


class WeatherService:
    """Client for current weather lookups."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = 'https://api.openweathermap.org/data/2.5/weather',
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls) -> 'WeatherService':
        """Create service from application configuration."""
        return cls(
            api_key=config.weather.api_key,
            base_url=config.weather.base_url,
            timeout=config.weather.timeout_seconds,
        )

    def at(self, latitude: float, longitude: float) -> Optional[WeatherReport]:
        """
        Current weather at a coordinate.

        Returns None when no API key is configured.

        Raises:
            UpstreamUnavailable on network/HTTP errors or a malformed body
        """
        if not self.api_key:
            logger.warning('OpenWeatherMap API key not configured')
            return None

        params = {
            'lat': latitude,
            'lon': longitude,
            'appid': self.api_key,
            'units': 'metric',
        }

        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise UpstreamUnavailable(
                f'Weather API error: {status}', service='weather', status_code=status,
            ) from e
        except requests.exceptions.RequestException as e:
            raise UpstreamUnavailable(f'Weather request failed: {e}', service='weather') from e
        except ValueError as e:
            raise UpstreamUnavailable('Weather API returned invalid JSON', service='weather') from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable('Weather API returned a non-object body', service='weather')

        return WeatherReport.from_api(data)
