"""Position sources: where location fixes come from.

A source reports each fix or failure to a callback. Failures are handed over
as ``PositionError`` instances rather than raised, and a failure never ends
the tracking stream.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Union

import requests
from pydantic import ValidationError

from spot_locator.errors import PermissionDenied, PositionError, PositionTimeout, PositionUnavailable
from spot_locator.models import GeoPoint, UserPosition

logger = logging.getLogger(__name__)

PositionResult = Union[UserPosition, PositionError]
PositionCallback = Callable[[PositionResult], None]


def make_position(
    latitude: float,
    longitude: float,
    accuracy_m: float = 0.0,
    captured_at: datetime | None = None,
) -> PositionResult:
    """Build a UserPosition, or a PositionUnavailable if the fix is not usable."""
    try:
        point = GeoPoint(latitude=latitude, longitude=longitude)
        if captured_at is None:
            return UserPosition(point=point, accuracy_m=accuracy_m)
        return UserPosition(point=point, accuracy_m=accuracy_m, captured_at=captured_at)
    except ValidationError as e:
        return PositionUnavailable(f"invalid fix ({latitude}, {longitude}): {e.errors()[0]['msg']}")


def _first(data: dict, keys: tuple[str, ...]) -> Any:
    for k in keys:
        if data.get(k) not in (None, ""):
            return data[k]
    return None


def parse_fix(data: Any) -> PositionResult:
    """Read a fix from a JSON payload.

    Accepts flat ``{"latitude", "longitude", "accuracy"}`` objects (with
    ``lat``/``lon``/``lng`` aliases) and the browser shape ``{"coords": {...}}``.
    """
    if isinstance(data, dict) and isinstance(data.get("coords"), dict):
        data = data["coords"]
    if not isinstance(data, dict):
        return PositionUnavailable("location payload is not an object")

    lat = _first(data, ("latitude", "lat"))
    lon = _first(data, ("longitude", "lon", "lng"))
    acc = _first(data, ("accuracy", "accuracy_m")) or 0.0
    try:
        return make_position(float(lat), float(lon), float(acc))
    except (TypeError, ValueError):
        return PositionUnavailable(f"location payload missing coordinates: {data!r}")


class PositionSource(ABC):
    @abstractmethod
    def start_tracking(self, callback: PositionCallback) -> None:
        """Begin continuous observation; ``callback`` receives every fix or failure."""

    @abstractmethod
    def stop_tracking(self) -> None:
        """Stop observation. Idempotent; no tracking callbacks fire after return."""

    @abstractmethod
    def request_single_fix(self, callback: PositionCallback) -> None:
        """One-shot read; ``callback`` fires exactly once."""


class _SingleFix:
    def __init__(self, callback: PositionCallback):
        self.callback = callback
        self.timer: Any = None


class PushPositionSource(PositionSource):
    """Source fed from outside, e.g. a browser posting ``watchPosition`` results.

    A tracking timeout fires when no fix or failure is pushed for
    ``timeout_s`` seconds; the timer is re-armed after every delivery, so
    tracking keeps going. Pending single-fix requests are answered by the
    next pushed fix or failure, or time out on their own.
    """

    def __init__(self, timeout_s: float = 10.0, timer_factory: Callable[..., Any] = threading.Timer):
        self.timeout_s = timeout_s
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._callback: PositionCallback | None = None
        self._generation = 0
        self._timer: Any = None
        self._pending: list[_SingleFix] = []

    @property
    def is_tracking(self) -> bool:
        return self._callback is not None

    def start_tracking(self, callback: PositionCallback) -> None:
        with self._lock:
            self._generation += 1
            self._callback = callback
            self._arm_timer()

    def stop_tracking(self) -> None:
        with self._lock:
            self._generation += 1
            self._callback = None
            self._cancel_timer()

    def request_single_fix(self, callback: PositionCallback) -> None:
        request = _SingleFix(callback)
        with self._lock:
            request.timer = self._start_timer(self._on_single_timeout, request)
            self._pending.append(request)

    def push_fix(
        self,
        latitude: float,
        longitude: float,
        accuracy_m: float = 0.0,
        captured_at: datetime | None = None,
    ) -> None:
        self._deliver(make_position(latitude, longitude, accuracy_m, captured_at))

    def push_error(self, error: PositionError) -> None:
        self._deliver(error)

    def _deliver(self, result: PositionResult) -> None:
        with self._lock:
            pending, self._pending = self._pending, []
            for request in pending:
                request.timer.cancel()
        try:
            with self._lock:
                if self._callback is not None:
                    try:
                        self._callback(result)
                    finally:
                        if self._callback is not None:
                            self._arm_timer()
        finally:
            # pending single fixes resolve even if the tracking callback raised
            for request in pending:
                request.callback(result)

    def _start_timer(self, fn: Callable[..., None], *args: Any) -> Any:
        timer = self._timer_factory(self.timeout_s, fn, args=args)
        timer.daemon = True
        timer.start()
        return timer

    def _arm_timer(self) -> None:
        self._cancel_timer()
        self._timer = self._start_timer(self._on_tracking_timeout, self._generation)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_tracking_timeout(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._callback is None:
                return
            logger.warning("No position fix within %.1fs", self.timeout_s)
            try:
                self._callback(PositionTimeout())
            finally:
                if generation == self._generation and self._callback is not None:
                    self._arm_timer()

    def _on_single_timeout(self, request: _SingleFix) -> None:
        with self._lock:
            if request not in self._pending:
                return
            self._pending.remove(request)
        request.callback(PositionTimeout())


class HttpPositionSource(PositionSource):
    """Polls a JSON location endpoint (a GPS gateway, a device API) with requests."""

    def __init__(
        self,
        url: str,
        poll_interval_s: float = 5.0,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.url = url
        self.poll_interval_s = poll_interval_s
        self.timeout_s = timeout_s
        self._session = session or requests.Session()
        self._lock = threading.RLock()
        self._callback: PositionCallback | None = None
        self._generation = 0
        self._stop_event: threading.Event | None = None

    def fetch(self) -> PositionResult:
        try:
            r = self._session.get(self.url, timeout=self.timeout_s)
        except requests.Timeout:
            return PositionTimeout(f"location endpoint did not answer within {self.timeout_s}s")
        except requests.RequestException as e:
            return PositionUnavailable(f"location endpoint unreachable: {e}")

        if r.status_code in (401, 403):
            return PermissionDenied(f"location endpoint refused access ({r.status_code})")
        try:
            r.raise_for_status()
            data = r.json()
        except (requests.HTTPError, ValueError) as e:
            return PositionUnavailable(f"location endpoint failed: {e}")
        return parse_fix(data)

    def start_tracking(self, callback: PositionCallback) -> None:
        with self._lock:
            self._halt()
            self._callback = callback
            stop = threading.Event()
            self._stop_event = stop
            threading.Thread(
                target=self._poll,
                args=(self._generation, stop),
                name="position-poll",
                daemon=True,
            ).start()
        logger.info("Polling %s every %.1fs", self.url, self.poll_interval_s)

    def stop_tracking(self) -> None:
        with self._lock:
            self._halt()

    def request_single_fix(self, callback: PositionCallback) -> None:
        threading.Thread(
            target=lambda: callback(self.fetch()),
            name="position-fix",
            daemon=True,
        ).start()

    def _halt(self) -> None:
        self._generation += 1
        self._callback = None
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None

    def _poll(self, generation: int, stop: threading.Event) -> None:
        while not stop.is_set():
            result = self.fetch()
            if isinstance(result, PositionError):
                logger.warning("Position poll failed: %s", result.message)
            with self._lock:
                if generation != self._generation or self._callback is None:
                    return
                self._callback(result)
            stop.wait(self.poll_interval_s)
