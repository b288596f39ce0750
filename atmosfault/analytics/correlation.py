"""
Geospatial correlation of a tracked object with nearby telemetry.

Given where a package currently is, find the balloons that were flying
nearby and decide how much of the delay can be pinned on them.

Pipeline:
1. Prefilter: bounding box around the subject (cheap indexed SQL range scan)
2. Postfilter: exact haversine distance, vectorized with NumPy
3. Classify: altitude -> threat level and blame category
4. Score: severity 0-100, half altitude, half proximity
5. Rank: severity desc, top N kept
6. Summarize: severity index from the mean of the top 5, bucketed into a
   threat tier, plus a fixed narrative per tier

Scoring is fully deterministic for a given store snapshot. The only
randomness is which flavor sentence explains each candidate, and that is
drawn from an injected random.Random so tests can pin it.
"""

import logging
import math
import random
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

import numpy as np

from atmosfault.config import config
from atmosfault.geo import BoundingBox, haversine_distances
from atmosfault.models import TelemetrySample, as_utc
from atmosfault.store import TelemetryStore

logger = logging.getLogger(__name__)


class ThreatLevel(str, Enum):
    """Hurricane-style atmospheric threat tiers."""
    PEACEFUL = 'PEACEFUL'
    TURBULENT = 'TURBULENT'
    CHAOTIC = 'CHAOTIC'
    APOCALYPTIC = 'APOCALYPTIC'
    DOOMED = 'DOOMED'


class BlameCategory(str, Enum):
    """What the balloon's altitude band says went wrong."""
    PRESSURE_WARFARE = 'PRESSURE_WARFARE'
    TURBULENCE_NIGHTMARE = 'TURBULENCE_NIGHTMARE'
    JET_STREAM_CHAOS = 'JET_STREAM_CHAOS'
    ALTITUDE_MADNESS = 'ALTITUDE_MADNESS'
    ATMOSPHERIC_HOSTAGE = 'ATMOSPHERIC_HOSTAGE'


# Altitude (km) upper bounds, checked in order; anything above is the last tier
THREAT_BY_ALTITUDE = [
    (5, ThreatLevel.PEACEFUL),
    (10, ThreatLevel.TURBULENT),
    (15, ThreatLevel.CHAOTIC),
    (20, ThreatLevel.APOCALYPTIC),
]

CATEGORY_BY_ALTITUDE = [
    (3, BlameCategory.PRESSURE_WARFARE),
    (8, BlameCategory.TURBULENCE_NIGHTMARE),
    (15, BlameCategory.JET_STREAM_CHAOS),
    (20, BlameCategory.ALTITUDE_MADNESS),
]

# Severity index upper bounds for the overall tier
THREAT_BY_SEVERITY = [
    (20, ThreatLevel.PEACEFUL),
    (40, ThreatLevel.TURBULENT),
    (60, ThreatLevel.CHAOTIC),
    (80, ThreatLevel.APOCALYPTIC),
]

ALTITUDE_CEILING_KM = 25.0
DISTANCE_HORIZON_KM = 1000.0

DRAMATIC_REASONS = {
    BlameCategory.JET_STREAM_CHAOS: [
        'A rogue jet stream at {alt}km hijacked your package like a high-altitude carjacking',
        'Jet stream winds are treating your package like a pinball at {alt}km',
        'The jet stream is running a protection racket at {alt}km - your package paid the toll',
    ],
    BlameCategory.PRESSURE_WARFARE: [
        'Competing pressure systems are using your package as a bargaining chip at {alt}km',
        'A low-pressure zone is holding your package hostage for atmospheric ransom',
        'Pressure systems are playing tug-of-war with your package at {alt}km',
    ],
    BlameCategory.TURBULENCE_NIGHTMARE: [
        'Turbulence at {alt}km is giving your package the ride of its life (not in a good way)',
        'Your package is experiencing what we call "aggressive atmospheric disagreement" at {alt}km',
        'Turbulence is treating your package like a cocktail shaker at {alt}km',
    ],
    BlameCategory.ALTITUDE_MADNESS: [
        'The {alt}km altitude zone is known to atmospheric scientists as "The Bermuda Triangle of Shipping"',
        "At {alt}km, your package entered an atmospheric no-man's-land",
        'Altitude {alt}km is where packages go to question their life choices',
    ],
    BlameCategory.ATMOSPHERIC_HOSTAGE: [
        'Your package is being held captive by atmospheric forces at {alt}km',
        'A weather pattern at {alt}km has taken your package prisoner',
        'Your package is trapped in atmospheric bureaucracy at {alt}km',
    ],
}

SCIENTIFIC_REASONS = {
    BlameCategory.JET_STREAM_CHAOS: (
        'Jet stream activity at {alt}km altitude creates wind shear conditions exceeding '
        '100 knots, forcing aircraft to adjust flight paths and causing routing delays.'
    ),
    BlameCategory.PRESSURE_WARFARE: (
        'Pressure differential at {alt}km creates unstable atmospheric conditions, '
        'requiring flight path modifications for safety.'
    ),
    BlameCategory.TURBULENCE_NIGHTMARE: (
        'Clear air turbulence detected at {alt}km with wind speed variations of 40+ knots '
        'per vertical kilometer, necessitating altitude changes.'
    ),
    BlameCategory.ALTITUDE_MADNESS: (
        'Atmospheric instability at {alt}km creates challenging flight conditions '
        'requiring extended routing.'
    ),
    BlameCategory.ATMOSPHERIC_HOSTAGE: (
        'Complex weather system at {alt}km creating multi-layer wind patterns that '
        'impact optimal flight routing.'
    ),
}

# What would have happened without telemetry, keyed by overall tier
ALTERNATE_TIMELINES = {
    ThreatLevel.PEACEFUL: (
        "Your package would've arrived on time, blissfully unaware of the atmospheric "
        "drama unfolding around it."
    ),
    ThreatLevel.TURBULENT: (
        "Your package would've been delayed by 2-3 hours, with the carrier blaming "
        "'unforeseen weather conditions' (which we now foresee, thanks to balloons)."
    ),
    ThreatLevel.CHAOTIC: (
        "Your package would've taken a scenic detour through 3 extra states, adding a "
        "full day to delivery, while the airline pretended everything was fine."
    ),
    ThreatLevel.APOCALYPTIC: (
        "Your package would've been grounded for 48 hours with vague explanations about "
        "'operational issues' (aka: pilots don't like flying through atmospheric chaos)."
    ),
    ThreatLevel.DOOMED: (
        "Your package would've been rerouted through an alternate dimension. Delivery "
        "estimate: sometime between tomorrow and the heat death of the universe."
    ),
}


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def _bucket(value: float, bounds, top):
    for upper, label in bounds:
        if value < upper:
            return label
    return top


def threat_level_for_altitude(altitude_km: float) -> ThreatLevel:
    return _bucket(altitude_km, THREAT_BY_ALTITUDE, ThreatLevel.DOOMED)


def blame_category_for_altitude(altitude_km: float) -> BlameCategory:
    return _bucket(altitude_km, CATEGORY_BY_ALTITUDE, BlameCategory.ATMOSPHERIC_HOSTAGE)


def threat_level_for_severity(severity_index: float) -> ThreatLevel:
    return _bucket(severity_index, THREAT_BY_SEVERITY, ThreatLevel.DOOMED)


def severity_score(altitude_km: float, distance_km: float) -> int:
    """
    Severity 0-100: half from altitude, half from proximity.

    Altitude saturates at 25 km; proximity falls linearly to zero at
    1000 km regardless of the search radius.
    """
    altitude_factor = min(max(altitude_km, 0.0) / ALTITUDE_CEILING_KM, 1.0)
    distance_factor = max(0.0, 1.0 - distance_km / DISTANCE_HORIZON_KM)
    return min(round_half_up(altitude_factor * 50 + distance_factor * 50), 100)


def alternate_timeline(severity_index: float) -> str:
    return ALTERNATE_TIMELINES[threat_level_for_severity(severity_index)]


@dataclass
class Candidate:
    """One telemetry sample implicated in a delay."""
    source_id: str
    latitude: float
    longitude: float
    altitude: float
    threat_level: ThreatLevel
    category: BlameCategory
    distance_km: float
    severity: int
    explanation: str = ''
    scientific_reason: str = ''
    observed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'source_id': self.source_id,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'altitude': self.altitude,
            'threat_level': self.threat_level.value,
            'category': self.category.value,
            'distance_km': round(self.distance_km, 1),
            'severity': self.severity,
            'explanation': self.explanation,
            'scientific_reason': self.scientific_reason,
            'observed_at': self.observed_at.isoformat() if self.observed_at else None,
        }


@dataclass
class SubjectLocation:
    latitude: float
    longitude: float
    city: Optional[str] = None


@dataclass
class CorrelationResult:
    """The blame chain for one tracked object."""
    subject_location: SubjectLocation
    candidates: List[Candidate] = field(default_factory=list)
    overall_threat: ThreatLevel = ThreatLevel.PEACEFUL
    severity_index: int = 0
    narrative: str = ALTERNATE_TIMELINES[ThreatLevel.PEACEFUL]

    def to_dict(self) -> dict:
        return {
            'subject_location': {
                'city': self.subject_location.city,
                'latitude': self.subject_location.latitude,
                'longitude': self.subject_location.longitude,
            },
            'candidates': [c.to_dict() for c in self.candidates],
            'overall_threat': self.overall_threat.value,
            'severity_index': self.severity_index,
            'narrative': self.narrative,
        }


class CorrelationEngine:
    """
    Finds and ranks telemetry samples near a coordinate.

    Configuration:
    - radius_km: default search radius (1000 km, route scale)
    - query_limit: max rows the prefilter pulls from the store
    - max_candidates: candidates kept in the result
    - severity_sample_size: top-N candidates averaged into the severity index
    """

    def __init__(
        self,
        store: Optional[TelemetryStore] = None,
        rng: Optional[random.Random] = None,
        radius_km: Optional[float] = None,
        query_limit: Optional[int] = None,
        max_candidates: Optional[int] = None,
        severity_sample_size: Optional[int] = None,
    ):
        self.store = store or TelemetryStore()
        self.rng = rng or random.Random()
        self.radius_km = radius_km or config.correlation.radius_km
        self.query_limit = query_limit or config.correlation.query_limit
        self.max_candidates = max_candidates or config.correlation.max_candidates
        self.severity_sample_size = severity_sample_size or config.correlation.severity_sample_size

    def nearby(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
    ) -> List[Candidate]:
        """
        All candidates within radius_km, ranked by severity.

        Ties break on distance, then source id, so ranking never depends
        on query order.
        """
        bbox = BoundingBox.from_center_radius(latitude, longitude, radius_km)
        samples: List[TelemetrySample] = self.store.within_box(bbox, limit=self.query_limit)
        if not samples:
            return []

        lats = np.array([s.latitude for s in samples], dtype=np.float64)
        lons = np.array([s.longitude for s in samples], dtype=np.float64)
        distances = haversine_distances(latitude, longitude, lats, lons)

        candidates = []
        for sample, distance in zip(samples, distances):
            distance = float(distance)
            if distance > radius_km:
                continue
            candidates.append(Candidate(
                source_id=sample.source_id,
                latitude=sample.latitude,
                longitude=sample.longitude,
                altitude=sample.altitude,
                threat_level=threat_level_for_altitude(sample.altitude),
                category=blame_category_for_altitude(sample.altitude),
                distance_km=distance,
                severity=severity_score(sample.altitude, distance),
                observed_at=as_utc(sample.observed_at) if sample.observed_at else None,
            ))

        candidates.sort(key=lambda c: (-c.severity, c.distance_km, c.source_id))
        return candidates

    def severity_index(self, candidates: List[Candidate]) -> int:
        """Mean severity of the top candidates, 0 when there are none."""
        top = candidates[:self.severity_sample_size]
        if not top:
            return 0
        mean = float(np.mean([c.severity for c in top]))
        return min(round_half_up(mean), 100)

    def explain(self, candidate: Candidate) -> None:
        """Attach narrative text. Consumes the injected random source."""
        alt = f'{candidate.altitude:.1f}'
        candidate.explanation = self.rng.choice(DRAMATIC_REASONS[candidate.category]).format(alt=alt)
        candidate.scientific_reason = SCIENTIFIC_REASONS[candidate.category].format(alt=alt)

    def correlate(
        self,
        latitude: Optional[float],
        longitude: Optional[float],
        radius_km: Optional[float] = None,
        city: Optional[str] = None,
    ) -> Optional[CorrelationResult]:
        """
        Build the blame chain for a subject location.

        Returns None when either coordinate is missing: there is nothing to
        correlate against. Otherwise always returns a result, with an empty
        candidate list and a PEACEFUL tier when nothing is in range.

        Raises:
            StorageError if the telemetry query fails
        """
        if latitude is None or longitude is None:
            return None

        radius_km = radius_km or self.radius_km
        ranked = self.nearby(latitude, longitude, radius_km)

        index = self.severity_index(ranked)
        kept = ranked[:self.max_candidates]
        for candidate in kept:
            self.explain(candidate)

        result = CorrelationResult(
            subject_location=SubjectLocation(latitude=latitude, longitude=longitude, city=city),
            candidates=kept,
            overall_threat=threat_level_for_severity(index),
            severity_index=index,
            narrative=alternate_timeline(index),
        )

        logger.info(
            f'Correlated ({latitude:.3f}, {longitude:.3f}): {len(ranked)} samples in range, '
            f'severity index {index} ({result.overall_threat.value})'
        )
        return result
