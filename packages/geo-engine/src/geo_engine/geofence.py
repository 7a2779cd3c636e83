from __future__ import annotations

import math

from geo_engine.distance import haversine_distance_meters
from geo_engine.models import GeoPoint


def validate_radius(radius_meters: float | None) -> None:
    if radius_meters is None:
        return
    if math.isnan(radius_meters) or radius_meters < 0:
        raise ValueError("radius_meters must be >= 0")


def within_radius(distance_meters: float, radius_meters: float | None) -> bool:
    """``None`` means unbounded; a facility exactly on the boundary is inside."""
    return radius_meters is None or distance_meters <= radius_meters


def is_point_inside_radius(center: GeoPoint, point: GeoPoint, radius_meters: float) -> bool:
    validate_radius(radius_meters)
    return within_radius(haversine_distance_meters(center, point), radius_meters)
