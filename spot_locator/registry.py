from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from spot_locator.errors import InvalidSpot, OutOfRange, UnknownSpot
from spot_locator.models import ParkingSpot

logger = logging.getLogger(__name__)


def _to_spot(entry: ParkingSpot | Mapping[str, Any], idx: int) -> ParkingSpot:
    if isinstance(entry, ParkingSpot):
        return entry
    try:
        return ParkingSpot.model_validate(entry)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err["loc"]) or "record"
        raise InvalidSpot(f"spot #{idx}: {field}: {err['msg']}") from e


class SpotRegistry:
    """In-memory set of parking spots for the current session.

    The snapshot is a tuple of frozen ParkingSpot instances. Every mutation
    builds a new tuple and swaps it in under the lock, so ``all()`` never
    exposes a half-applied change.
    """

    def __init__(self, spots: Iterable[ParkingSpot | Mapping[str, Any]] | None = None):
        self._lock = threading.Lock()
        self._spots: tuple[ParkingSpot, ...] = ()
        self._index: dict[str, int] = {}
        if spots is not None:
            self.load(spots)

    def load(self, spots: Iterable[ParkingSpot | Mapping[str, Any]]) -> None:
        validated: list[ParkingSpot] = []
        index: dict[str, int] = {}
        for idx, entry in enumerate(spots):
            spot = _to_spot(entry, idx)
            if spot.id in index:
                raise InvalidSpot(f"spot #{idx}: duplicate id {spot.id!r}")
            index[spot.id] = len(validated)
            validated.append(spot)

        with self._lock:
            self._spots = tuple(validated)
            self._index = index
        logger.info("Loaded %d parking spots", len(validated))

    def update_availability(self, spot_id: str, new_available: int) -> ParkingSpot:
        with self._lock:
            pos = self._index.get(spot_id)
            if pos is None:
                raise UnknownSpot(f"unknown spot id {spot_id!r}")
            current = self._spots[pos]
            if (
                isinstance(new_available, bool)
                or not isinstance(new_available, int)
                or not 0 <= new_available <= current.capacity
            ):
                raise OutOfRange(
                    f"available={new_available!r} for spot {spot_id!r} must be an integer in [0, {current.capacity}]"
                )
            updated = current.model_copy(update={"available": new_available})
            spots = list(self._spots)
            spots[pos] = updated
            self._spots = tuple(spots)
        logger.debug("Spot %s availability %d -> %d", spot_id, current.available, new_available)
        return updated

    def all(self) -> tuple[ParkingSpot, ...]:
        return self._spots

    def get(self, spot_id: str) -> ParkingSpot | None:
        with self._lock:
            pos = self._index.get(spot_id)
            return self._spots[pos] if pos is not None else None

    def __len__(self) -> int:
        return len(self._spots)

    def __contains__(self, spot_id: object) -> bool:
        return spot_id in self._index
