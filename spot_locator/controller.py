"""Engine lifecycle: binds a position source to the ranker and publishes results.

Every input (intents, fixes, failures, availability updates) becomes an
update on a single FIFO queue. The thread that finds the queue idle drains
it, applying updates one at a time in arrival order; other threads only
enqueue. Listeners are called on the draining thread right after each
applied update and must not block on the futures returned here.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable, Iterable, Mapping

from spot_locator.errors import EngineError, NotTracking, PositionError, RegistryError
from spot_locator.models import (
    EngineSnapshot,
    EngineStatus,
    ErrorInfo,
    ParkingSpot,
    RankedResult,
    RankOptions,
    UserPosition,
)
from spot_locator.position import PositionResult, PositionSource
from spot_locator.registry import SpotRegistry
from spot_locator.services import rank

logger = logging.getLogger(__name__)

Listener = Callable[[EngineSnapshot], None]
Update = Callable[[], "EngineError | None"]


class EngineController:
    def __init__(
        self,
        source: PositionSource,
        registry: SpotRegistry | None = None,
        options: RankOptions | None = None,
    ):
        self.source = source
        self._registry = registry if registry is not None else SpotRegistry()
        self._options = options or RankOptions()

        self._status = EngineStatus.IDLE
        self._position: UserPosition | None = None
        self._results: list[RankedResult] = []
        self._error: ErrorInfo | None = None
        # bumped on start/stop; callbacks from an older session are dropped
        self._session = 0
        # last fix or failure applied; a recenter answered by that same push is not applied twice
        self._last_result: PositionResult | None = None

        self._listeners: list[Listener] = []
        self._queue: deque[tuple[Update, Future]] = deque()
        self._queue_lock = threading.Lock()
        self._draining = False

    # -- read side ---------------------------------------------------------

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def is_tracking(self) -> bool:
        return self._status is not EngineStatus.IDLE

    @property
    def position(self) -> UserPosition | None:
        return self._position

    @property
    def results(self) -> list[RankedResult]:
        return list(self._results)

    @property
    def error(self) -> ErrorInfo | None:
        return self._error

    @property
    def registry(self) -> SpotRegistry:
        return self._registry

    @property
    def options(self) -> RankOptions:
        return self._options

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            status=self._status,
            position=self._position,
            results=list(self._results),
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- intents -----------------------------------------------------------

    def start(self) -> Future:
        return self._submit(self._apply_start)

    def stop(self) -> Future:
        return self._submit(self._apply_stop)

    def recenter(self) -> Future:
        return self._submit(self._apply_recenter)

    def load_spots(self, spots: Iterable[ParkingSpot | Mapping[str, Any]]) -> Future:
        spots = list(spots)
        return self._submit(lambda: self._apply_load(spots))

    def update_availability(self, spot_id: str, available: int) -> Future:
        return self._submit(lambda: self._apply_availability(spot_id, available))

    def set_options(self, options: RankOptions) -> Future:
        return self._submit(lambda: self._apply_options(options))

    # -- queue -------------------------------------------------------------

    def _submit(self, update: Update) -> Future:
        future: Future = Future()
        with self._queue_lock:
            self._queue.append((update, future))
            if self._draining:
                return future
            self._draining = True
        self._drain()
        return future

    def _drain(self) -> None:
        while True:
            with self._queue_lock:
                if not self._queue:
                    self._draining = False
                    return
                update, future = self._queue.popleft()
            try:
                outcome = update()
            except Exception as e:
                future.set_exception(e)
                # whatever is still queued is drained by the next submitter
                with self._queue_lock:
                    self._draining = False
                raise
            future.set_result(outcome)

    def _position_callback(self, session: int, single: bool = False) -> Callable[[PositionResult], None]:
        def on_result(result: PositionResult) -> None:
            self._submit(lambda: self._apply_position_result(session, result, single))

        return on_result

    # -- update handlers (run on the draining thread only) ------------------

    def _apply_start(self) -> EngineError | None:
        if self.is_tracking:
            return None
        self._session += 1
        self._last_result = None
        self._status = EngineStatus.AWAITING_FIX
        self._position = None
        self._results = []
        self._error = None
        logger.info("Tracking started (session %d)", self._session)
        self.source.start_tracking(self._position_callback(self._session))
        self._publish()
        return None

    def _apply_stop(self) -> EngineError | None:
        self.source.stop_tracking()
        self._session += 1
        self._last_result = None
        self._status = EngineStatus.IDLE
        self._position = None
        self._results = []
        self._error = None
        logger.info("Tracking stopped")
        self._publish()
        return None

    def _apply_recenter(self) -> EngineError | None:
        if not self.is_tracking:
            logger.warning("Recenter ignored: tracking is not running")
            return NotTracking()
        self.source.request_single_fix(self._position_callback(self._session, single=True))
        return None

    def _apply_position_result(
        self, session: int, result: PositionResult, single: bool = False
    ) -> EngineError | None:
        if session != self._session or not self.is_tracking:
            logger.debug("Dropping position result from stale session %d", session)
            return None
        if single and result is self._last_result:
            return result if isinstance(result, PositionError) else None
        self._last_result = result
        if isinstance(result, PositionError):
            logger.warning("Position failure: %s", result.message)
            self._error = result.to_info()
            self._publish()
            return result
        self._position = result
        self._status = EngineStatus.ACTIVE
        self._error = None
        self._recompute()
        self._publish()
        return None

    def _apply_load(self, spots: list) -> EngineError | None:
        try:
            self._registry.load(spots)
        except RegistryError as e:
            logger.error("Spot load rejected: %s", e.message)
            return self._fail(e)
        self._error = None
        return self._refresh()

    def _apply_availability(self, spot_id: str, available: int) -> EngineError | None:
        try:
            self._registry.update_availability(spot_id, available)
        except RegistryError as e:
            logger.warning("Availability update rejected: %s", e.message)
            return self._fail(e)
        return self._refresh()

    def _apply_options(self, options: RankOptions) -> EngineError | None:
        self._options = options
        return self._refresh()

    def _fail(self, error: EngineError) -> EngineError:
        self._error = error.to_info()
        self._publish()
        return error

    def _refresh(self) -> None:
        if self._status is EngineStatus.ACTIVE:
            self._error = None
            self._recompute()
            self._publish()
        return None

    def _recompute(self) -> None:
        self._results = rank(self._position, self._registry.all(), self._options)

    def _publish(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            listener(snap)
