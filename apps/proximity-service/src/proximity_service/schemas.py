from __future__ import annotations

from datetime import datetime
from typing import Any

from geo_engine.models import Facility, GeoPoint, RankedResult
from geo_engine.travel import StraightLineEstimate
from pydantic import BaseModel, Field

from proximity_service.catalog import CatalogSnapshot
from proximity_service.location import ObserverState, PositionSample
from proximity_service.road_ranking import RoadRankedResult
from proximity_service.routing import Route
from proximity_service.session import ProximityUpdate, SessionStatus


class PositionSampleRequest(BaseModel):
    # range checks happen in the location adapter so they surface as INVALID_SAMPLE
    lat: float
    lng: float
    accuracy_meters: float | None = None
    timestamp: datetime | None = None

    def to_sample(self) -> PositionSample:
        return PositionSample(
            lat=self.lat,
            lng=self.lng,
            accuracy_meters=self.accuracy_meters,
            timestamp=self.timestamp,
        )


class RouteRequest(BaseModel):
    facility_id: str = Field(..., min_length=1)
    timeout_seconds: float | None = Field(default=None, gt=0, le=120)


def point_payload(point: GeoPoint) -> dict[str, float]:
    return {"lat": point.lat, "lng": point.lng}


def facility_payload(facility: Facility) -> dict[str, Any]:
    return {
        "id": facility.id,
        "kind": facility.kind.value,
        "lat": facility.point.lat,
        "lng": facility.point.lng,
        "attributes": dict(facility.attributes),
    }


def observer_payload(observer: ObserverState | None) -> dict[str, Any] | None:
    if observer is None:
        return None
    return {
        **point_payload(observer.last_known_point),
        "accuracy_meters": observer.accuracy_meters,
        "updated_at": observer.last_updated_at.isoformat(),
    }


def ranked_payload(result: RankedResult) -> dict[str, Any]:
    return {
        "stale": result.stale,
        "items": [
            {**facility_payload(entry.facility), "distance_meters": round(entry.measurement.meters, 2)}
            for entry in result
        ],
    }


def road_ranked_payload(result: RoadRankedResult) -> dict[str, Any]:
    return {
        "stale": result.stale,
        "items": [
            {
                **facility_payload(entry.facility),
                "distance_meters": round(entry.road_meters, 2),
                "duration_seconds": round(entry.duration_seconds, 1),
                "straight_line_meters": round(entry.straight_line_meters, 2),
                "routed": entry.routed,
            }
            for entry in result
        ],
    }


def route_payload(route: Route) -> dict[str, Any]:
    return {
        "origin": point_payload(route.origin_point),
        "destination_facility_id": route.destination_facility_id,
        "geometry": {
            "type": "LineString",
            "coordinates": [[point.lng, point.lat] for point in route.geometry],
        },
        "distance_meters": route.distance_meters,
        "duration_seconds": route.duration_seconds,
        "fetched_at": route.fetched_at,
    }


def straight_line_payload(estimate: StraightLineEstimate) -> dict[str, Any]:
    return {
        "distance_meters": estimate.distance_meters,
        "bearing_degrees": estimate.bearing_degrees,
        "estimated_minutes": estimate.estimated_minutes,
        "directions_url": estimate.directions_url,
    }


def update_payload(update: ProximityUpdate) -> dict[str, Any]:
    nearest = update.nearest_shelter
    return {
        "session_id": update.session_id,
        "sequence": update.sequence,
        "observer": observer_payload(update.observer),
        "results": {kind.value: ranked_payload(result) for kind, result in update.results.items()},
        "nearest_shelter": facility_payload(nearest) if nearest else None,
    }


def session_payload(status: SessionStatus) -> dict[str, Any]:
    return {
        "session_id": status.session_id,
        "state": status.state.value,
        "observer": observer_payload(status.observer),
    }


def catalog_payload(snapshot: CatalogSnapshot, stale: bool) -> dict[str, Any]:
    return {
        "kind": snapshot.kind.value,
        "version": snapshot.version,
        "fetched_at": snapshot.fetched_at,
        "count": len(snapshot.facilities),
        "rejected": [{"source_id": item.source_id, "reason": item.reason} for item in snapshot.rejected],
        "stale": stale,
    }


