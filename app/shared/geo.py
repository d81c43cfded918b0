# app/shared/geo.py
"""
Geographic helpers shared by proximity matching and dispatch.

All inputs are decimal degrees. Conversion to radians happens only here,
and callers are expected to run `is_valid_coordinate` first so that NaN or
out-of-range values never reach the trigonometric functions.
"""

import math
from typing import Any, Optional, Tuple

EARTH_RADIUS_KM = 6371.0

LatLng = Tuple[float, float]


def is_valid_coordinate(lat: Any, lng: Any) -> bool:
    """True when lat/lng are finite numbers inside [-90, 90] / [-180, 180]."""
    if lat is None or lng is None:
        return False
    if isinstance(lat, bool) or isinstance(lng, bool):
        return False
    try:
        lat = float(lat)
        lng = float(lng)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lng) or math.isinf(lat) or math.isinf(lng):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def coerce_point(point: Any) -> Optional[LatLng]:
    """
    Normalize a point given as a (lat, lng) tuple, a {"lat", "lng"} mapping
    or an object with lat/lng attributes. Returns None when invalid.
    """
    if point is None:
        return None
    if isinstance(point, dict):
        lat, lng = point.get("lat"), point.get("lng")
    elif isinstance(point, (tuple, list)):
        if len(point) != 2:
            return None
        lat, lng = point
    else:
        lat, lng = getattr(point, "lat", None), getattr(point, "lng", None)

    if not is_valid_coordinate(lat, lng):
        return None
    return float(lat), float(lng)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two points on a spherical Earth.

    Args:
        lat1, lng1: first point in decimal degrees
        lat2, lng2: second point in decimal degrees

    Returns:
        Distance in kilometers.

    Example:
        >>> round(haversine_km(-13.9600, 33.7700, -13.9626, 33.7741), 2)
        0.53
    """
    lat1, lng1, lat2, lng2 = map(math.radians, [lat1, lng1, lat2, lng2])

    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_km(origin: Any, target: Any) -> Optional[float]:
    """Haversine distance between two loosely-typed points, None if either is invalid."""
    a = coerce_point(origin)
    b = coerce_point(target)
    if a is None or b is None:
        return None
    return haversine_km(a[0], a[1], b[0], b[1])


def distance_m(origin: Any, target: Any) -> Optional[float]:
    km = distance_km(origin, target)
    return None if km is None else km * 1000.0


def within_threshold(origin: Any, target: Any, threshold_m: float) -> bool:
    """True when both points are valid and no more than threshold_m meters apart."""
    meters = distance_m(origin, target)
    return meters is not None and meters <= threshold_m
