"""Error taxonomy shared by the HTTP layer and the signaling engines.

Every error carries an HTTP status code and a stable ``code`` string. The API
renders them as ``{"ok": false, "error": ..., "code": ..., **extra}`` and the
HTTP gateway rebuilds the same exception class from ``code`` on the client,
so callers can tell a missing vehicle from a backend failure or a media fault.
"""
from typing import Any, Dict, Optional, Type


class PlateCallError(Exception):
    """Base exception for all call signaling errors."""

    status_code: int = 500
    code: str = "internal_error"
    retryable: bool = False

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> Dict[str, Any]:
        """Render the JSON error body."""
        return {"ok": False, "error": self.message, "code": self.code, **self.extra}


# Request errors


class RequestError(PlateCallError):
    """Raised when a request is missing or has malformed fields."""

    status_code = 400
    code = "bad_request"


class MissingPlateError(RequestError):
    code = "missing_plate"


class MissingChannelError(RequestError):
    code = "missing_channel"


class InvalidRequestError(RequestError):
    code = "invalid_request"


class InvalidTransitionError(RequestError):
    code = "invalid_transition"


# Resolution errors: user-facing, never retried automatically


class ResolutionError(PlateCallError):
    """Raised when a plate does not resolve to a callable vehicle."""

    status_code = 404
    code = "resolution_failed"


class PlateNotFoundError(ResolutionError):
    status_code = 404
    code = "plate_not_found"

    @classmethod
    def for_plate(cls, raw_plate: str, plate: str) -> "PlateNotFoundError":
        return cls(
            f'No owner found for plate "{raw_plate}" (normalized "{plate}")',
            plate=plate,
        )


class VehicleOwnerMissingError(ResolutionError):
    status_code = 409
    code = "owner_missing"

    @classmethod
    def for_plate(cls, plate: str) -> "VehicleOwnerMissingError":
        return cls(f'Vehicle "{plate}" has no owner assigned', plate=plate)


class VehicleDisabledError(ResolutionError):
    status_code = 409
    code = "vehicle_disabled"

    @classmethod
    def for_plate(cls, plate: str) -> "VehicleDisabledError":
        return cls(f'Vehicle "{plate}" is disabled', plate=plate)


# Persistence errors: safe to retry


class PersistenceError(PlateCallError):
    """Raised when the call session store cannot be read or written."""

    status_code = 500
    code = "persistence_error"
    retryable = True


class CallInsertError(PersistenceError):
    code = "insert_failed"


class CallNotFoundError(PlateCallError):
    status_code = 404
    code = "call_not_found"


class VehicleNotFoundError(PlateCallError):
    status_code = 404
    code = "vehicle_not_found"


# Admission errors


class AdmissionError(PlateCallError):
    """Raised when a media token cannot be issued."""

    status_code = 500
    code = "admission_failed"


class ChannelNotFoundError(AdmissionError):
    status_code = 404
    code = "channel_not_found"


class ChannelDisabledError(AdmissionError):
    status_code = 403
    code = "channel_disabled"


class AdmissionConfigError(AdmissionError):
    status_code = 500
    code = "admission_misconfigured"


# Client-side errors


class MediaError(PlateCallError):
    """Raised at the media adapter boundary (permissions, join, network)."""

    status_code = 502
    code = "media_error"


class GatewayError(PlateCallError):
    """Raised when the backend cannot be reached."""

    status_code = 503
    code = "gateway_unavailable"
    retryable = True


_ERRORS_BY_CODE: Dict[str, Type[PlateCallError]] = {}


def _register(cls: Type[PlateCallError]) -> None:
    _ERRORS_BY_CODE[cls.code] = cls
    for subclass in cls.__subclasses__():
        _register(subclass)


_register(PlateCallError)


def error_from_payload(
    status_code: int, payload: Optional[Dict[str, Any]]
) -> PlateCallError:
    """Rebuild a typed error from an API error body."""
    payload = dict(payload or {})
    payload.pop("ok", None)
    message = str(payload.pop("error", "") or f"Request failed with status {status_code}")
    code = payload.pop("code", None)
    cls = _ERRORS_BY_CODE.get(code) if code else None
    if cls is None:
        error = PlateCallError(message, **payload)
        error.status_code = status_code
        return error
    return cls(message, **payload)
