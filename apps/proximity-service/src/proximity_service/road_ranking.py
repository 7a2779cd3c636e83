from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from geo_engine.models import Facility, GeoPoint, RankedEntry, RankedResult
from geo_engine.travel import estimate_travel_minutes

from proximity_service.errors import RouteFetchError
from proximity_service.routing import RouteFetcher

logger = logging.getLogger(__name__)

# 2 minutes per km when the provider cannot route a candidate
FALLBACK_SPEED_KMH = 30.0


@dataclass(frozen=True)
class RoadRankedEntry:
    facility: Facility
    straight_line_meters: float
    road_meters: float
    duration_seconds: float
    routed: bool


@dataclass(frozen=True)
class RoadRankedResult:
    entries: tuple[RoadRankedEntry, ...] = ()
    stale: bool = False

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def facility_ids(self) -> list[str]:
        return [entry.facility.id for entry in self.entries]


async def _measure(
    fetcher: RouteFetcher,
    origin: GeoPoint,
    candidate: RankedEntry,
    timeout_seconds: float,
) -> RoadRankedEntry:
    facility = candidate.facility
    straight_line = candidate.measurement.meters
    try:
        route = await fetcher.fetch_route(origin, facility.point, facility.id, timeout_seconds)
    except RouteFetchError as exc:
        logger.warning(
            "road_distance_fallback",
            extra={"component": "road_ranking", "facility_id": facility.id, "code": exc.code},
        )
        return RoadRankedEntry(
            facility=facility,
            straight_line_meters=straight_line,
            road_meters=straight_line,
            duration_seconds=estimate_travel_minutes(straight_line, FALLBACK_SPEED_KMH) * 60,
            routed=False,
        )
    return RoadRankedEntry(
        facility=facility,
        straight_line_meters=straight_line,
        road_meters=route.distance_meters,
        duration_seconds=route.duration_seconds,
        routed=True,
    )


async def road_rank(
    fetcher: RouteFetcher,
    origin: GeoPoint,
    candidates: RankedResult,
    timeout_seconds: float,
    limit: int = 10,
) -> RoadRankedResult:
    """Re-rank the closest straight-line candidates by road distance.

    Only the first ``limit`` candidates are routed, concurrently. A candidate the
    provider cannot route keeps its straight-line distance and a constant-speed
    duration, flagged with ``routed=False``. Ties on road distance fall back to
    the facility id.
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")
    shortlist = candidates.entries[:limit]
    measured = await asyncio.gather(
        *(_measure(fetcher, origin, candidate, timeout_seconds) for candidate in shortlist)
    )
    ordered = sorted(measured, key=lambda entry: (entry.road_meters, entry.facility.id))
    return RoadRankedResult(entries=tuple(ordered), stale=candidates.stale)
