from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    status_code: int


class ProximityError(Exception):
    """Base proximity subsystem exception."""

    code = "PROXIMITY_ERROR"
    status_code = 500


class InvalidSampleError(ProximityError):
    """Raised when a position sample carries malformed coordinates or accuracy."""

    code = "INVALID_SAMPLE"
    status_code = 422


class CatalogUnavailableError(ProximityError):
    """Raised when the facility catalog could not be fetched; the cached snapshot is kept."""

    code = "CATALOG_UNAVAILABLE"
    status_code = 503


class RouteFetchError(ProximityError):
    """Base class for directions provider failures."""

    code = "ROUTE_FETCH_FAILED"
    status_code = 502


class RouteTimeoutError(RouteFetchError):
    code = "ROUTE_TIMEOUT"
    status_code = 504


class RouteProviderError(RouteFetchError):
    code = "ROUTE_PROVIDER_ERROR"
    status_code = 502

    def __init__(self, message: str, transient: bool = False, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.transient = transient
        self.upstream_status = upstream_status


class RouteNotFoundError(RouteFetchError):
    """The provider reported that no path exists between the two points."""

    code = "ROUTE_NOT_FOUND"
    status_code = 404


class RouteCancelledError(RouteFetchError):
    """The request was superseded by a newer one or the session stopped."""

    code = "ROUTE_CANCELLED"
    status_code = 409


class SessionStoppedError(ProximityError):
    code = "SESSION_STOPPED"
    status_code = 409


class SessionNotFoundError(ProximityError):
    code = "SESSION_NOT_FOUND"
    status_code = 404


class FacilityNotFoundError(ProximityError):
    code = "FACILITY_NOT_FOUND"
    status_code = 404


class NoObserverLocationError(ProximityError):
    """A route or estimate was requested before any location was accepted."""

    code = "OBSERVER_LOCATION_UNAVAILABLE"
    status_code = 409


def to_api_error(exc: ProximityError) -> ApiError:
    return ApiError(exc.code, str(exc) or exc.code.lower(), exc.status_code)
