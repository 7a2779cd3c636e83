from __future__ import annotations

from collections.abc import Iterable

from geo_engine.distance import haversine_distance_meters
from geo_engine.geofence import validate_radius, within_radius
from geo_engine.models import DistanceMeasurement, Facility, GeoPoint, RankedEntry, RankedResult


def _sort_key(entry: RankedEntry) -> tuple[float, str, float, float]:
    facility = entry.facility
    return (entry.measurement.meters, facility.id, facility.point.lat, facility.point.lng)


def rank(
    observer: GeoPoint,
    facilities: Iterable[Facility],
    radius_meters: float | None = None,
    stale: bool = False,
) -> RankedResult:
    validate_radius(radius_meters)

    entries: list[RankedEntry] = []
    for facility in facilities:
        meters = haversine_distance_meters(observer, facility.point)
        if not within_radius(meters, radius_meters):
            continue
        entries.append(RankedEntry(facility=facility, measurement=DistanceMeasurement(facility.id, meters)))
    entries.sort(key=_sort_key)
    return RankedResult(entries=tuple(entries), stale=stale)


def nearest(observer: GeoPoint, facilities: Iterable[Facility]) -> Facility | None:
    head = rank(observer, facilities).head
    return head.facility if head else None
