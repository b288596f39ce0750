"""
Tracking assembler - composes the tracking response.

Primary data comes from one of two sources:
- Carrier shipments: provider response via the cache-aside fetcher
- Balloons (ids shaped ATM-HHOOOOOO): the telemetry store

If the primary source has nothing, the whole lookup is None (404).
Everything else is enrichment and best-effort:
- City coordinates from the geocoder (missing coordinates are omitted)
- Weather at the current position
- Blame correlation at the current position

An enrichment failure is logged and the field left out; it never costs
the caller the core tracking data.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from atmosfault.analytics.correlation import CorrelationEngine
from atmosfault.models import utcnow
from atmosfault.services.balloon_tracking import BalloonTracker, is_balloon_tracking_number
from atmosfault.services.cache_aside import CacheAsideFetcher
from atmosfault.services.geocoding import Geocoder
from atmosfault.services.provider import Address, Shipment, ShipmentEvent
from atmosfault.services.response import (
    Location, PackageStatus, TimelineEvent, TrackingResponse,
)
from atmosfault.services.weather import WeatherService

logger = logging.getLogger(__name__)

UNKNOWN = 'Unknown'

_STATUS_CODES = {
    'delivered': PackageStatus.DELIVERED,
    'transit': PackageStatus.IN_TRANSIT,
    'failure': PackageStatus.FAILED,
    'pending': PackageStatus.PENDING,
}


def map_status(status_code: str) -> PackageStatus:
    """Provider status code -> PackageStatus; unknown codes read as in transit."""
    return _STATUS_CODES.get(status_code.lower(), PackageStatus.IN_TRANSIT)


def estimate_delivery(shipment: Shipment, now: datetime) -> Optional[str]:
    """
    Delivered shipments report their delivery time; active ones get a
    rough estimate of 3 days in transit, 5 days otherwise.
    """
    code = shipment.status.status_code.lower()
    if code == 'delivered':
        return shipment.status.timestamp
    days = 3 if code == 'transit' else 5
    return (now + timedelta(days=days)).isoformat()


class TrackingAssembler:
    """
    Orchestrates primary lookup and enrichments into one TrackingResponse.

    Collaborators are injected; pass None for geocoder, weather or
    correlation to disable that enrichment.
    """

    def __init__(
        self,
        fetcher: CacheAsideFetcher,
        balloons: Optional[BalloonTracker] = None,
        geocoder: Optional[Geocoder] = None,
        weather: Optional[WeatherService] = None,
        correlation: Optional[CorrelationEngine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.fetcher = fetcher
        self.balloons = balloons
        self.geocoder = geocoder
        self.weather = weather
        self.correlation = correlation
        self._clock = clock

    def assemble(self, external_id: str) -> Optional[TrackingResponse]:
        """
        Build the tracking response for an id.

        Returns None if the id is unknown or the primary source is
        unavailable.
        """
        external_id = (external_id or '').strip()
        if not external_id:
            return None

        if self.balloons is not None and is_balloon_tracking_number(external_id):
            response = self.balloons.lookup(external_id)
        else:
            response = self._from_provider(external_id)

        if response is None:
            return None

        self._attach_weather(response)
        self._attach_blame(response)
        return response

    # -------------------------------------------------------------------------
    # Carrier shipments
    # -------------------------------------------------------------------------

    def _from_provider(self, external_id: str) -> Optional[TrackingResponse]:
        provider_response = self.fetcher.get_tracking(external_id)
        if provider_response is None or not provider_response.shipments:
            return None

        shipment = provider_response.shipments[0]

        # Provider lists events newest first
        latest = shipment.events[0] if shipment.events else shipment.status

        return TrackingResponse(
            tracking_number=shipment.id,
            status=map_status(shipment.status.status_code),
            current_location=self._event_location(latest),
            origin=self._address_location(shipment.origin),
            destination=self._address_location(shipment.destination),
            timeline=self._build_timeline(shipment.events),
            estimated_delivery=estimate_delivery(shipment, self._clock()),
            metadata={
                'source': 'carrier',
                'service': shipment.service,
                'product_name': shipment.product_name,
                'total_pieces': shipment.total_pieces,
            },
        )

    def _build_timeline(self, events: List[ShipmentEvent]) -> List[TimelineEvent]:
        """Timeline in chronological order (oldest first)."""
        return [
            TimelineEvent(
                status=map_status(event.status_code),
                timestamp=event.timestamp,
                location=self._event_location(event),
                description=event.description,
            )
            for event in reversed(events)
        ]

    def _event_location(self, event: ShipmentEvent) -> Location:
        location = self._address_location(event.address)
        location.timestamp = event.timestamp
        return location

    def _address_location(self, address: Address) -> Location:
        location = Location(
            city=address.locality or UNKNOWN,
            country=address.country_code or UNKNOWN,
        )
        if address.locality:
            coords = self._geocode(address.locality, address.country_code)
            if coords is not None:
                location.latitude = coords.latitude
                location.longitude = coords.longitude
        return location

    def _geocode(self, locality: str, country_code: Optional[str]):
        if self.geocoder is None:
            return None
        try:
            return self.geocoder.lookup(locality, country_code)
        except Exception as e:
            logger.warning(f'Geocoding failed for {locality}: {e}')
            return None

    # -------------------------------------------------------------------------
    # Enrichments
    # -------------------------------------------------------------------------

    def _attach_weather(self, response: TrackingResponse) -> None:
        current = response.current_location
        if self.weather is None or not current.has_coordinates:
            return
        try:
            response.weather = self.weather.at(current.latitude, current.longitude)
        except Exception as e:
            logger.error(f'Failed to fetch weather for {response.tracking_number}: {e}')

    def _attach_blame(self, response: TrackingResponse) -> None:
        current = response.current_location
        if self.correlation is None or not current.has_coordinates:
            return
        try:
            blame = self.correlation.correlate(
                current.latitude, current.longitude, city=current.city,
            )
        except Exception as e:
            logger.error(f'Failed to correlate telemetry for {response.tracking_number}: {e}')
            return

        if blame is not None:
            response.blame = blame
            logger.info(
                f'Found {len(blame.candidates)} culprit balloons for '
                f'{response.tracking_number}, severity index {blame.severity_index}'
            )
