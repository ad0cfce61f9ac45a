# family_events/geo/distance.py
"""Great-circle distance helpers (haversine). Pure, no I/O."""
from __future__ import annotations

import math

from ..config import ORIGIN_LAT, ORIGIN_LON

EARTH_RADIUS_KM = 6371.0

ORIGIN: tuple[float, float] = (ORIGIN_LAT, ORIGIN_LON)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in km between two WGS84 points, rounded to one decimal."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 1)


def distance_from_origin(lat: float, lon: float, origin: tuple[float, float] = ORIGIN) -> float:
    return haversine_km(origin[0], origin[1], lat, lon)


def is_within_radius(
    lat: float,
    lon: float,
    max_distance_km: float,
    origin: tuple[float, float] = ORIGIN,
) -> bool:
    """Boundary is inclusive."""
    return distance_from_origin(lat, lon, origin) <= max_distance_km
