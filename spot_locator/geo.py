from __future__ import annotations

import math

EARTH_RADIUS_M = 6371000.0


def normalize_lon_delta(d_lng: float) -> float:
    """Wrap a longitude difference into [-180, 180]."""
    d = math.fmod(d_lng + 180.0, 360.0)
    if d < 0:
        d += 360.0
    return d - 180.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(normalize_lon_delta(lng2 - lng1))
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    # rounding can push a just outside [0, 1] near the poles and antipodes
    a = max(0.0, min(1.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{int(round(meters))} m"
    return f"{meters / 1000.0:.1f} km"
