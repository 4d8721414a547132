import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from spot_locator.config import settings
from spot_locator.controller import EngineController
from spot_locator.data_loader import load_sample_spots, load_spots
from spot_locator.errors import POSITION_ERRORS, OutOfRange, UnknownSpot
from spot_locator.models import (
    AvailabilityUpdate,
    EngineSnapshot,
    NearbyQuery,
    ParkingSpot,
    PositionFailure,
    PositionFix,
    RankedResult,
    RankOptions,
)
from spot_locator.position import HttpPositionSource, PositionSource, PushPositionSource
from spot_locator.services import find_nearby

logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s: %(name)s - %(message)s")
logger = logging.getLogger(__name__)

# Seconds an endpoint waits for its update to be applied by the engine queue
UPDATE_WAIT_S = 5.0

# Global engine, built on startup
engine: EngineController | None = None


def build_source() -> PositionSource:
    if settings.position_feed_url:
        return HttpPositionSource(
            settings.position_feed_url,
            poll_interval_s=settings.poll_interval_s,
            timeout_s=settings.http_timeout_s,
        )
    return PushPositionSource(timeout_s=settings.position_timeout_s)


@asynccontextmanager
async def lifespan(_: FastAPI):
    global engine
    engine = EngineController(build_source(), options=RankOptions(max_results=settings.default_max_results))
    try:
        result = load_spots(settings)
    except Exception as e:
        logger.error("Error loading parking data: %s; falling back to sample spots", e)
        result = load_sample_spots()

    err = engine.load_spots(result.records).result(timeout=UPDATE_WAIT_S)
    if err is not None:
        logger.error("Parking data from %s rejected: %s; falling back to sample spots", result.source, err.message)
        result = load_sample_spots()
        err = engine.load_spots(result.records).result(timeout=UPDATE_WAIT_S)
    if err is None:
        logger.info("Successfully loaded %d parking spots from %s", len(engine.registry), result.source)
    yield
    engine.stop().result(timeout=UPDATE_WAIT_S)
    engine = None


app = FastAPI(title="Parking Spot Locator API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _engine() -> EngineController:
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not started")
    return engine


def _push_source() -> PushPositionSource:
    source = _engine().source
    if not isinstance(source, PushPositionSource):
        raise HTTPException(status_code=409, detail="Positions come from the configured location feed")
    return source


@app.get("/health")
def health():
    eng = _engine()
    return {
        "status": "ok",
        "tracking": eng.status.value,
        "spots_loaded": len(eng.registry),
    }


@app.get("/state", response_model=EngineSnapshot)
def get_state() -> EngineSnapshot:
    return _engine().snapshot()


@app.post("/tracking/start", response_model=EngineSnapshot)
def start_tracking() -> EngineSnapshot:
    eng = _engine()
    eng.start().result(timeout=UPDATE_WAIT_S)
    return eng.snapshot()


@app.post("/tracking/stop", response_model=EngineSnapshot)
def stop_tracking() -> EngineSnapshot:
    eng = _engine()
    eng.stop().result(timeout=UPDATE_WAIT_S)
    return eng.snapshot()


@app.post("/tracking/recenter", response_model=EngineSnapshot)
def recenter() -> EngineSnapshot:
    """Ask for a fresh fix. The answer arrives with the next pushed position."""
    eng = _engine()
    err = eng.recenter().result(timeout=UPDATE_WAIT_S)
    if err is not None:
        raise HTTPException(status_code=409, detail=err.message)
    return eng.snapshot()


@app.post("/position", response_model=EngineSnapshot)
def push_position(fix: PositionFix) -> EngineSnapshot:
    """Fix reported by the browser's geolocation watcher."""
    _push_source().push_fix(fix.latitude, fix.longitude, fix.accuracy_m)
    return _engine().snapshot()


@app.post("/position/error", response_model=EngineSnapshot)
def push_position_error(failure: PositionFailure) -> EngineSnapshot:
    error_cls = POSITION_ERRORS.get(failure.code)
    if error_cls is None:
        raise HTTPException(
            status_code=422,
            detail=f"Unknown position error code {failure.code!r}; expected one of {sorted(POSITION_ERRORS)}",
        )
    _push_source().push_error(error_cls(failure.message))
    return _engine().snapshot()


@app.get("/spots", response_model=list[ParkingSpot])
def list_spots() -> list[ParkingSpot]:
    return list(_engine().registry.all())


@app.put("/spots/{spot_id}/availability", response_model=ParkingSpot)
def update_availability(spot_id: str, update: AvailabilityUpdate) -> ParkingSpot:
    eng = _engine()
    err = eng.update_availability(spot_id, update.available).result(timeout=UPDATE_WAIT_S)
    if isinstance(err, UnknownSpot):
        raise HTTPException(status_code=404, detail=err.message)
    if isinstance(err, OutOfRange):
        raise HTTPException(status_code=422, detail=err.message)
    return eng.registry.get(spot_id)


@app.post("/spots/nearby", response_model=list[RankedResult])
def get_nearby_spots(query: NearbyQuery) -> list[RankedResult]:
    """
    Rank parking spots around an arbitrary point, independent of tracking.

    - **lat, lon**: Center point coordinates (required)
    - **k**: Maximum number of spots to return (default: 5)
    - **radius_m**: Optional maximum distance in meters
    - **exclude_full**: Leave out spots with no free space
    """
    return find_nearby(
        _engine().registry.all(),
        lat=query.lat,
        lon=query.lon,
        k=query.k,
        radius_m=query.radius_m,
        exclude_full=query.exclude_full,
    )
