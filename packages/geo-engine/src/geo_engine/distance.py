import math

from geo_engine.models import GeoPoint

EARTH_RADIUS_METERS = 6_371_000


def haversine_distance_meters(start: GeoPoint, end: GeoPoint) -> float:
    if start == end:
        return 0.0
    start_lat = math.radians(start.lat)
    end_lat = math.radians(end.lat)
    delta_lat = math.radians(end.lat - start.lat)
    delta_lng = math.radians(end.lng - start.lng)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(start_lat) * math.cos(end_lat) * math.sin(delta_lng / 2) ** 2
    )
    # float noise can push a past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def initial_bearing_degrees(start: GeoPoint, end: GeoPoint) -> float:
    """Forward azimuth from ``start`` towards ``end``, clockwise from north in [0, 360)."""
    if start == end:
        return 0.0
    start_lat = math.radians(start.lat)
    end_lat = math.radians(end.lat)
    delta_lng = math.radians(end.lng - start.lng)

    y = math.sin(delta_lng) * math.cos(end_lat)
    x = math.cos(start_lat) * math.sin(end_lat) - math.sin(start_lat) * math.cos(end_lat) * math.cos(delta_lng)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360.0) % 360.0
