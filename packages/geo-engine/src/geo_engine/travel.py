from __future__ import annotations

from dataclasses import dataclass

from geo_engine.distance import haversine_distance_meters, initial_bearing_degrees
from geo_engine.models import GeoPoint

DIRECTIONS_URL_TEMPLATE = "https://www.google.com/maps/dir/{start_lat},{start_lng}/{end_lat},{end_lng}"


@dataclass(frozen=True)
class StraightLineEstimate:
    distance_meters: float
    bearing_degrees: float
    estimated_minutes: float
    directions_url: str


def estimate_travel_minutes(distance_meters: float, average_speed_kmh: float) -> float:
    if average_speed_kmh <= 0:
        raise ValueError("average_speed_kmh must be > 0")
    meters_per_minute = (average_speed_kmh * 1000) / 60
    return distance_meters / meters_per_minute


def build_directions_url(origin: GeoPoint, destination: GeoPoint) -> str:
    return DIRECTIONS_URL_TEMPLATE.format(
        start_lat=origin.lat,
        start_lng=origin.lng,
        end_lat=destination.lat,
        end_lng=destination.lng,
    )


def straight_line_estimate(
    origin: GeoPoint,
    destination: GeoPoint,
    average_speed_kmh: float = 30.0,
) -> StraightLineEstimate:
    """Fallback used when no routed path is available.

    Travel time assumes a constant average speed along the great circle, which
    underestimates real road time; callers should present it as approximate.
    """
    distance_meters = haversine_distance_meters(origin, destination)
    return StraightLineEstimate(
        distance_meters=round(distance_meters, 2),
        bearing_degrees=round(initial_bearing_degrees(origin, destination), 2),
        estimated_minutes=round(estimate_travel_minutes(distance_meters, average_speed_kmh), 2),
        directions_url=build_directions_url(origin, destination),
    )
