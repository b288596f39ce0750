"""
Geodesy helpers shared by ingestion and correlation.

Distances use the haversine great-circle formula on a spherical Earth
(R = 6371 km). Bounding boxes are a cheap SQL prefilter; they are built to
be a strict superset of the true search circle so the haversine postfilter
never has to recover points the box missed.
"""

import math
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0


def haversine_distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float
) -> float:
    """
    Calculate great-circle distance between two points in kilometers.

    Uses the Haversine formula for accuracy over short to medium distances.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) *
        math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def haversine_distances(
    lat: float, lon: float,
    lats: np.ndarray, lons: np.ndarray,
) -> np.ndarray:
    """Vectorized haversine from one point to many, in kilometers."""
    lat_rad = np.radians(lat)
    lats_rad = np.radians(np.asarray(lats, dtype=np.float64))
    delta_lat = lats_rad - lat_rad
    delta_lon = np.radians(np.asarray(lons, dtype=np.float64) - lon)

    a = (
        np.sin(delta_lat / 2) ** 2 +
        np.cos(lat_rad) * np.cos(lats_rad) *
        np.sin(delta_lon / 2) ** 2
    )
    # Rounding can push a a hair past 1.0 for antipodal points
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


@dataclass
class BoundingBox:
    """
    Axis-aligned latitude/longitude box around a search circle.

    Longitudes are kept unwrapped here (lon_min may be < -180 or lon_max
    > 180); use lon_ranges() to get the normalized intervals to query.
    """
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @classmethod
    def from_center_radius(
        cls,
        center_lat: float,
        center_lon: float,
        radius_km: float
    ) -> 'BoundingBox':
        """
        Create bounding box from center point and radius.

        Uses approximate conversion: 1 degree ~ 111 km at equator, and
        divides by cos(latitude) for longitude. At high latitudes the circle
        bulges past that estimate on its poleward side, so the longitude
        delta is widened to the exact spherical extent when that is larger.
        A box that reaches a pole spans every longitude.
        """
        lat_delta = radius_km / KM_PER_DEGREE
        lat_min = center_lat - lat_delta
        lat_max = center_lat + lat_delta

        if lat_min <= -90 or lat_max >= 90:
            return cls(max(lat_min, -90.0), min(lat_max, 90.0), -180.0, 180.0)

        cos_lat = math.cos(math.radians(center_lat))
        angular = radius_km / EARTH_RADIUS_KM
        ratio = math.sin(angular) / cos_lat
        if angular >= math.pi / 2 or ratio >= 1:
            return cls(lat_min, lat_max, -180.0, 180.0)

        lon_delta = max(
            radius_km / (KM_PER_DEGREE * cos_lat),
            math.degrees(math.asin(ratio)),
        )
        if lon_delta >= 180:
            return cls(lat_min, lat_max, -180.0, 180.0)

        return cls(
            lat_min=lat_min,
            lat_max=lat_max,
            lon_min=center_lon - lon_delta,
            lon_max=center_lon + lon_delta,
        )

    def lon_ranges(self) -> List[Tuple[float, float]]:
        """Longitude intervals within [-180, 180], split at the antimeridian."""
        if self.lon_max - self.lon_min >= 360:
            return [(-180.0, 180.0)]
        if self.lon_min < -180:
            return [(self.lon_min + 360, 180.0), (-180.0, self.lon_max)]
        if self.lon_max > 180:
            return [(self.lon_min, 180.0), (-180.0, self.lon_max - 360)]
        return [(self.lon_min, self.lon_max)]

    def contains(self, lat: float, lon: float) -> bool:
        if not (self.lat_min <= lat <= self.lat_max):
            return False
        return any(lo <= lon <= hi for lo, hi in self.lon_ranges())
