"""Great-circle distance and coordinate sanity helpers."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_MILES = 3959.0
METERS_PER_MILE = 1609.344


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in metres."""
    return haversine_km(lat1, lng1, lat2, lng2) * 1000.0


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in statute miles."""
    return haversine_km(lat1, lng1, lat2, lng2) * EARTH_RADIUS_MILES / EARTH_RADIUS_KM


def miles_to_meters(miles: float) -> float:
    return miles * METERS_PER_MILE


def is_valid_latitude(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and -90.0 <= value <= 90.0


def is_valid_longitude(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and -180.0 <= value <= 180.0


def has_usable_coordinates(lat: float | None, lng: float | None) -> bool:
    """True when both values are in range and the pair is not the (0, 0) placeholder."""
    if not (is_valid_latitude(lat) and is_valid_longitude(lng)):
        return False
    return not (lat == 0.0 and lng == 0.0)
