"""
Balloon tracking - the alternate data source.

Every balloon in the telemetry feed can be "tracked" like a parcel with an
id of the form ATM-HHOOOOOO: two digits of hour offset followed by six
digits of ordinal. The ordinal is what identifies a balloon across shards;
the hour part only has to be valid.

Shard 00 is the latest snapshot, so the current position is the sample
with the lowest batch index and the timeline runs from the highest batch
index (oldest) down to the lowest.

Status is derived from altitude:
- below 1 km:  pending (still at the launch site)
- 1-20 km:     in transit
- 20 km+:      delivered (to the upper atmosphere)
- any sample last observed more than 24 h ago: failed
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from atmosfault.models import TelemetrySample, as_utc, utcnow
from atmosfault.services.response import (
    Location, PackageStatus, TimelineEvent, TrackingResponse,
)
from atmosfault.store import TelemetryStore

logger = logging.getLogger(__name__)

TRACKING_NUMBER_RE = re.compile(r'^ATM-(\d{8})$')
STALE_AFTER = timedelta(hours=24)
MAX_TRACK_SAMPLES = 100


def parse_tracking_number(tracking_number: str) -> Optional[Tuple[int, int]]:
    """
    Split ATM-HHOOOOOO into (hour, ordinal).

    Returns None if the format is wrong or the hour is outside 0..23.
    """
    match = TRACKING_NUMBER_RE.match(tracking_number or '')
    if not match:
        return None

    digits = match.group(1)
    hour = int(digits[:2])
    ordinal = int(digits[2:])
    if hour > 23:
        return None
    return hour, ordinal


def is_balloon_tracking_number(tracking_number: str) -> bool:
    return parse_tracking_number(tracking_number) is not None


def determine_status(altitude: float, observed_at: datetime, now: datetime) -> PackageStatus:
    if now - observed_at > STALE_AFTER:
        return PackageStatus.FAILED
    if altitude < 1:
        return PackageStatus.PENDING
    if altitude < 20:
        return PackageStatus.IN_TRANSIT
    return PackageStatus.DELIVERED


def estimate_delivery(status: PackageStatus, altitude: float, observed_at: datetime) -> Optional[datetime]:
    if status == PackageStatus.FAILED:
        return None
    if status == PackageStatus.PENDING:
        return observed_at + timedelta(hours=8)
    if status == PackageStatus.IN_TRANSIT:
        # Lower balloons have further to climb
        return observed_at + timedelta(hours=4 if altitude < 10 else 2)
    return observed_at


def _describe(status: PackageStatus, sample: TelemetrySample) -> str:
    prefix = f'Hour {sample.batch_index}'
    if status == PackageStatus.PENDING:
        return f'{prefix}: At origin facility'
    if status == PackageStatus.IN_TRANSIT:
        return f'{prefix}: In transit - altitude {sample.altitude:.1f} km'
    if status == PackageStatus.DELIVERED:
        return f'{prefix}: Delivered to destination'
    return f'{prefix}: Delivery failed'


def _location(sample: TelemetrySample) -> Location:
    return Location(
        latitude=sample.latitude,
        longitude=sample.longitude,
        altitude=sample.altitude,
        timestamp=as_utc(sample.observed_at).isoformat(),
    )


def build_timeline(samples: List[TelemetrySample], now: datetime) -> List[TimelineEvent]:
    """Timeline events for one balloon, oldest shard first."""
    ordered = sorted(samples, key=lambda s: s.batch_index, reverse=True)
    events = []
    for sample in ordered:
        observed_at = as_utc(sample.observed_at)
        status = determine_status(sample.altitude, observed_at, now)
        events.append(TimelineEvent(
            status=status,
            timestamp=observed_at.isoformat(),
            location=_location(sample),
            description=_describe(status, sample),
        ))
    return events


class BalloonTracker:
    """Builds tracking responses straight from the telemetry store."""

    def __init__(
        self,
        store: Optional[TelemetryStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store or TelemetryStore()
        self._clock = clock

    def lookup(self, tracking_number: str) -> Optional[TrackingResponse]:
        """
        Tracking response for a balloon id.

        Returns None for a malformed id or a balloon with no samples.

        Raises:
            StorageError if the store query fails
        """
        parsed = parse_tracking_number(tracking_number)
        if parsed is None:
            return None
        _, ordinal = parsed

        samples = self.store.track(ordinal, limit=MAX_TRACK_SAMPLES)
        if not samples:
            logger.info(f'No telemetry for balloon {tracking_number}')
            return None

        now = self._clock()
        latest = min(samples, key=lambda s: s.batch_index)
        oldest = max(samples, key=lambda s: s.batch_index)
        observed_at = as_utc(latest.observed_at)

        status = determine_status(latest.altitude, observed_at, now)
        eta = estimate_delivery(status, latest.altitude, observed_at)

        return TrackingResponse(
            tracking_number=tracking_number,
            status=status,
            current_location=_location(latest),
            origin=_location(oldest),
            destination=Location(city='Upper Atmosphere') if status == PackageStatus.DELIVERED else Location(),
            timeline=build_timeline(samples, now),
            estimated_delivery=eta.isoformat() if eta else None,
            metadata={
                'source': 'telemetry',
                'balloon_id': latest.source_id,
                'ordinal': latest.ordinal,
                'snapshot_hour': latest.batch_index,
                'samples': len(samples),
            },
        )
