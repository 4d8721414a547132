from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from spot_locator.geo import format_distance


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class UserPosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    point: GeoPoint
    accuracy_m: float = Field(default=0.0, ge=0)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ParkingSpot(BaseModel):
    """A parking facility and its live availability count."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    point: GeoPoint
    capacity: int = Field(..., gt=0)
    available: int = Field(..., ge=0)
    price_per_hour: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> object:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @model_validator(mode="after")
    def available_within_capacity(self) -> "ParkingSpot":
        if self.available > self.capacity:
            raise ValueError(
                f"available ({self.available}) cannot exceed capacity ({self.capacity})"
            )
        return self

    @property
    def is_full(self) -> bool:
        return self.available == 0

    @property
    def occupancy_rate(self) -> float:
        return (self.capacity - self.available) / self.capacity


class RankedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    spot: ParkingSpot
    distance_m: float = Field(..., ge=0)

    @computed_field
    @property
    def distance_label(self) -> str:
        return format_distance(self.distance_m)


class RankOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_results: int | None = Field(default=None, ge=1)
    exclude_full: bool = False
    radius_m: float | None = Field(default=None, gt=0)
    # case-insensitive substring match on the spot name
    query: str | None = None


class ErrorInfo(BaseModel):
    code: str
    message: str


class EngineStatus(str, Enum):
    IDLE = "idle"
    AWAITING_FIX = "awaiting_fix"
    ACTIVE = "active"


class EngineSnapshot(BaseModel):
    status: EngineStatus
    position: UserPosition | None = None
    results: list[RankedResult] = Field(default_factory=list)
    error: ErrorInfo | None = None


class PositionFix(BaseModel):
    latitude: float
    longitude: float
    accuracy_m: float = 0.0


class PositionFailure(BaseModel):
    code: str
    message: str | None = None


class AvailabilityUpdate(BaseModel):
    available: int


class NearbyQuery(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    k: int = Field(default=5, ge=1)
    radius_m: float | None = Field(default=None, gt=0)
    exclude_full: bool = False
