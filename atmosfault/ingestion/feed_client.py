"""
Telemetry feed client.

The feed publishes the balloon constellation as 24 static JSON files,
one per hour, named by zero-padded hour offset:

    {base_url}/00.json   - latest snapshot
    {base_url}/01.json   - one hour earlier
    ...
    {base_url}/23.json

Each file is a JSON array of [latitude, longitude, altitude_km] triples.
The files are published by a best-effort process and are occasionally
truncated or contain junk rows. A bad row is dropped but keeps its
position: the array index is part of the sample's identity.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional

import requests

from atmosfault.config import config
from atmosfault.exceptions import UpstreamUnavailable, ValidationError

logger = logging.getLogger(__name__)

BATCH_COUNT = 24


def validate_batch_index(batch_index: Any) -> int:
    """Return batch_index if it is an int in 0..23, else raise ValidationError."""
    if isinstance(batch_index, bool) or not isinstance(batch_index, int):
        raise ValidationError(f'Invalid hour {batch_index!r}. Must be between 0 and 23')
    if not 0 <= batch_index < BATCH_COUNT:
        raise ValidationError(f'Invalid hour {batch_index}. Must be between 0 and 23')
    return batch_index


@dataclass
class RawSample:
    """
    One parsed row of a feed file.

    ordinal is the row's index in the source array, not its index in the
    list of rows that survived parsing.
    """
    ordinal: int
    latitude: float
    longitude: float
    altitude: float

    @classmethod
    def from_array(cls, ordinal: int, arr: Any) -> Optional['RawSample']:
        """
        Parse a [lat, lon, alt] row.

        Returns None if the row is malformed or out of range.
        """
        if not isinstance(arr, (list, tuple)) or len(arr) < 3:
            return None

        try:
            lat, lon, alt = (float(v) for v in arr[:3])
        except (TypeError, ValueError):
            return None

        if not all(math.isfinite(v) for v in (lat, lon, alt)):
            return None
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            return None

        return cls(ordinal=ordinal, latitude=lat, longitude=lon, altitude=alt)


class TelemetryFeedClient:
    """
    Client for the hourly telemetry feed.

    Handles:
    - GET requests for one shard at a time
    - Bounded timeouts
    - Translating transport and payload failures into UpstreamUnavailable
    """

    def __init__(
        self,
        base_url: str = 'https://a.windbornesystems.com/treasure',
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls) -> 'TelemetryFeedClient':
        """Create client from application configuration."""
        return cls(
            base_url=config.feed.base_url,
            timeout=config.feed.timeout_seconds,
        )

    def batch_url(self, batch_index: int) -> str:
        return f'{self.base_url}/{batch_index:02d}.json'

    def fetch_batch(self, batch_index: int) -> List[RawSample]:
        """
        Fetch and parse one hourly shard.

        Returns:
            Parsed rows in source order. Malformed rows are skipped.

        Raises:
            ValidationError if batch_index is outside 0..23
            UpstreamUnavailable on network/HTTP errors or a non-array body
        """
        validate_batch_index(batch_index)
        url = self.batch_url(batch_index)

        logger.debug(f'Fetching telemetry shard: {url}')

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            logger.error(f'Telemetry feed timeout for hour {batch_index}')
            raise UpstreamUnavailable(f'Telemetry feed timed out: {url}', service='telemetry') from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.error(f'Telemetry feed error for hour {batch_index}: {status}')
            raise UpstreamUnavailable(
                f'Telemetry feed returned {status}: {url}',
                service='telemetry',
                status_code=status,
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f'Telemetry feed request failed for hour {batch_index}: {e}')
            raise UpstreamUnavailable(f'Telemetry feed request failed: {e}', service='telemetry') from e
        except ValueError as e:
            # Body was not JSON
            raise UpstreamUnavailable(f'Telemetry feed returned invalid JSON: {url}', service='telemetry') from e

        if not isinstance(data, list):
            raise UpstreamUnavailable(
                f'Telemetry feed returned {type(data).__name__}, expected array: {url}',
                service='telemetry',
            )

        samples = []
        for ordinal, arr in enumerate(data):
            sample = RawSample.from_array(ordinal, arr)
            if sample:
                samples.append(sample)

        skipped = len(data) - len(samples)
        if skipped:
            logger.warning(f'Skipped {skipped} malformed rows in hour {batch_index}')
        logger.info(f'Fetched {len(samples)} samples for hour {batch_index}')

        return samples
