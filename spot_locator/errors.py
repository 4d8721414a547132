"""Error taxonomy for the ranking engine.

Position sources hand these out as values, the registry raises them, and the
controller turns both into the ``error`` field of the published snapshot.
"""

from __future__ import annotations

from spot_locator.models import ErrorInfo


class EngineError(Exception):
    code = "engine_error"
    default_message = "Engine error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(code=self.code, message=self.message)


class PositionError(EngineError):
    code = "position_error"


class PermissionDenied(PositionError):
    code = "permission_denied"
    default_message = "Location access was not granted"


class PositionUnavailable(PositionError):
    code = "position_unavailable"
    default_message = "Location could not be determined"


class PositionTimeout(PositionError):
    code = "timeout"
    default_message = "No location fix arrived in time"


class RegistryError(EngineError):
    code = "registry_error"


class InvalidSpot(RegistryError):
    code = "invalid_spot"
    default_message = "Parking spot record is invalid"


class UnknownSpot(RegistryError):
    code = "unknown_spot"
    default_message = "Parking spot is not registered"


class OutOfRange(RegistryError):
    code = "out_of_range"
    default_message = "Availability is outside [0, capacity]"


class NoPosition(EngineError):
    code = "no_position"
    default_message = "Cannot rank without a position fix"


class NotTracking(EngineError):
    code = "not_tracking"
    default_message = "Tracking is not running"


POSITION_ERRORS: dict[str, type[PositionError]] = {
    cls.code: cls for cls in (PermissionDenied, PositionUnavailable, PositionTimeout)
}
