"""
Tracking response shapes returned by the assembler.

Built per request and never persisted. to_dict() produces the JSON body
served by the tracking endpoint; optional fields that are unknown are
emitted as null rather than dropped, except the blame and weather
enrichments, which are omitted entirely when unavailable.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from atmosfault.analytics.correlation import CorrelationResult
from atmosfault.services.weather import WeatherReport


class PackageStatus(str, Enum):
    PENDING = 'pending'
    IN_TRANSIT = 'in_transit'
    DELIVERED = 'delivered'
    FAILED = 'failed'
    ON_HOLD = 'on_hold'


@dataclass
class Location:
    city: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None  # km, balloon source only
    timestamp: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict:
        return {
            'city': self.city,
            'country': self.country,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'altitude': self.altitude,
            'timestamp': self.timestamp,
        }


@dataclass
class TimelineEvent:
    status: PackageStatus
    timestamp: str
    location: Location
    description: str

    def to_dict(self) -> dict:
        return {
            'status': self.status.value,
            'timestamp': self.timestamp,
            'location': self.location.to_dict(),
            'description': self.description,
        }


@dataclass
class TrackingResponse:
    tracking_number: str
    status: PackageStatus
    current_location: Location
    origin: Location
    destination: Location
    timeline: List[TimelineEvent] = field(default_factory=list)
    estimated_delivery: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    # Best-effort enrichments
    blame: Optional[CorrelationResult] = None
    weather: Optional[WeatherReport] = None

    def to_dict(self) -> dict:
        body = {
            'tracking_number': self.tracking_number,
            'status': self.status.value,
            'current_location': self.current_location.to_dict(),
            'origin': self.origin.to_dict(),
            'destination': self.destination.to_dict(),
            'timeline': [e.to_dict() for e in self.timeline],
            'estimated_delivery': self.estimated_delivery,
            'metadata': self.metadata,
        }
        if self.blame is not None:
            body['blame'] = self.blame.to_dict()
        if self.weather is not None:
            body['weather'] = self.weather.to_dict()
        return body
