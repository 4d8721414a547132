from __future__ import annotations

import os

from pydantic import BaseModel, Field


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


class Settings(BaseModel):
    # Remote JSON/GeoJSON list of parking facilities. Takes precedence over the cache file.
    spots_source_url: str | None = None

    # Local cache path (CSV/GeoJSON/JSON). The built-in sample set is used when missing.
    spots_cache_path: str = "parking_spots.geojson"

    # Browser geolocation default: give up on a fix after 10s
    position_timeout_s: float = Field(default=10.0, gt=0)

    # Optional JSON endpoint polled for fixes instead of browser pushes
    position_feed_url: str | None = None
    poll_interval_s: float = Field(default=5.0, gt=0)

    http_timeout_s: float = Field(default=10.0, gt=0)
    default_max_results: int | None = Field(default=None, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        max_results = os.getenv("PARKING_MAX_RESULTS", "").strip()
        return cls(
            spots_source_url=os.getenv("PARKING_SPOTS_URL", "").strip() or None,
            spots_cache_path=os.getenv("PARKING_SPOTS_PATH", "").strip() or "parking_spots.geojson",
            position_timeout_s=_env_float("PARKING_POSITION_TIMEOUT_S", 10.0),
            position_feed_url=os.getenv("PARKING_POSITION_FEED_URL", "").strip() or None,
            poll_interval_s=_env_float("PARKING_POLL_INTERVAL_S", 5.0),
            http_timeout_s=_env_float("PARKING_HTTP_TIMEOUT_S", 10.0),
            default_max_results=int(max_results) if max_results else None,
            log_level=os.getenv("PARKING_LOG_LEVEL", "INFO").strip() or "INFO",
        )


settings = Settings.from_env()
