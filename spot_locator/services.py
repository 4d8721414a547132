from __future__ import annotations

from typing import Iterable

from spot_locator.errors import NoPosition
from spot_locator.geo import haversine_m
from spot_locator.models import GeoPoint, ParkingSpot, RankedResult, RankOptions, UserPosition

_DEFAULT_OPTIONS = RankOptions()


def rank(
    position: UserPosition | None,
    spots: Iterable[ParkingSpot],
    options: RankOptions | None = None,
) -> list[RankedResult]:
    """Order spots by great-circle distance from ``position``.

    Ties on distance fall back to the spot id so the order is deterministic.
    Pure: neither ``spots`` nor the spots themselves are modified.
    """
    if position is None:
        raise NoPosition()
    options = options or _DEFAULT_OPTIONS

    needle = options.query.strip().lower() if options.query else ""
    lat, lon = position.point.latitude, position.point.longitude

    rows: list[RankedResult] = []
    for s in spots:
        if options.exclude_full and s.is_full:
            continue
        if needle and needle not in s.name.lower():
            continue
        d = haversine_m(lat, lon, s.point.latitude, s.point.longitude)
        if options.radius_m is not None and d > options.radius_m:
            continue
        rows.append(RankedResult(spot=s, distance_m=d))

    rows.sort(key=lambda r: (r.distance_m, r.spot.id))
    if options.max_results is not None:
        rows = rows[: options.max_results]
    return rows


def find_nearby(
    spots: Iterable[ParkingSpot],
    lat: float,
    lon: float,
    k: int = 5,
    radius_m: float | None = None,
    exclude_full: bool = False,
) -> list[RankedResult]:
    position = UserPosition(point=GeoPoint(latitude=lat, longitude=lon))
    options = RankOptions(max_results=max(1, int(k)), radius_m=radius_m, exclude_full=exclude_full)
    return rank(position, spots, options)
