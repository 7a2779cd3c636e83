"""Geo engine core package."""

from geo_engine.distance import EARTH_RADIUS_METERS, haversine_distance_meters, initial_bearing_degrees
from geo_engine.geofence import is_point_inside_radius, validate_radius, within_radius
from geo_engine.models import (
    DistanceMeasurement,
    Facility,
    FacilityKind,
    GeoPoint,
    InvalidCoordinateError,
    RankedEntry,
    RankedResult,
)
from geo_engine.proximity import nearest, rank
from geo_engine.travel import StraightLineEstimate, estimate_travel_minutes, straight_line_estimate

__all__ = [
    "EARTH_RADIUS_METERS",
    "DistanceMeasurement",
    "Facility",
    "FacilityKind",
    "GeoPoint",
    "InvalidCoordinateError",
    "RankedEntry",
    "RankedResult",
    "StraightLineEstimate",
    "estimate_travel_minutes",
    "haversine_distance_meters",
    "initial_bearing_degrees",
    "is_point_inside_radius",
    "nearest",
    "rank",
    "straight_line_estimate",
    "validate_radius",
    "within_radius",
]
