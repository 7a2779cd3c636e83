from __future__ import annotations

import logging

import pytest
from geo_engine.models import Facility, FacilityKind, GeoPoint
from geo_engine.proximity import rank

from proximity_service.clients.directions_client import ProviderRoute
from proximity_service.errors import RouteNotFoundError, RouteProviderError
from proximity_service.road_ranking import road_rank
from proximity_service.routing import RouteFetcher

ORIGIN = GeoPoint(lat=0.0, lng=0.0)


def shelter(facility_id: str, lng: float) -> Facility:
    return Facility(id=facility_id, point=GeoPoint(lat=0.0, lng=lng), kind=FacilityKind.SHELTER)


class RoadDistances:
    """Directions stub keyed by destination longitude."""

    def __init__(self, distances: dict[float, float], unreachable: set[float] | None = None) -> None:
        self.distances = distances
        self.unreachable = unreachable or set()
        self.calls: list[GeoPoint] = []

    async def fetch(self, origin: GeoPoint, destination: GeoPoint, timeout_seconds: float) -> ProviderRoute:
        self.calls.append(destination)
        if destination.lng in self.unreachable:
            raise RouteNotFoundError("no route between the requested points")
        meters = self.distances[destination.lng]
        return ProviderRoute(geometry=(origin, destination), distance_meters=meters, duration_seconds=meters / 10)


class FailingDirections:
    async def fetch(self, origin: GeoPoint, destination: GeoPoint, timeout_seconds: float) -> ProviderRoute:
        raise RouteProviderError("directions provider returned 503")


@pytest.mark.asyncio
async def test_candidates_are_reordered_by_road_distance() -> None:
    facilities = [shelter("s-a", 0.01), shelter("s-b", 0.02), shelter("s-c", 0.03)]
    provider = RoadDistances({0.01: 8_000.0, 0.02: 2_500.0, 0.03: 4_000.0})
    candidates = rank(ORIGIN, facilities, 50_000)

    result = await road_rank(RouteFetcher(provider, retry_backoff_seconds=0), ORIGIN, candidates, 5)

    assert result.facility_ids() == ["s-b", "s-c", "s-a"]
    assert [entry.road_meters for entry in result] == [2_500.0, 4_000.0, 8_000.0]
    assert result.entries[0].duration_seconds == 250.0
    assert result.entries[0].straight_line_meters == pytest.approx(2_223.9, abs=0.5)
    assert all(entry.routed for entry in result)


@pytest.mark.asyncio
async def test_unroutable_candidate_keeps_straight_line_estimate(caplog: pytest.LogCaptureFixture) -> None:
    facilities = [shelter("s-a", 0.01), shelter("s-b", 0.02)]
    provider = RoadDistances({0.02: 5_000.0}, unreachable={0.01})
    candidates = rank(ORIGIN, facilities, None)

    with caplog.at_level(logging.WARNING, logger="proximity_service.road_ranking"):
        result = await road_rank(RouteFetcher(provider, retry_backoff_seconds=0), ORIGIN, candidates, 5)

    fallback = result.entries[0]
    assert result.facility_ids() == ["s-a", "s-b"]
    assert fallback.routed is False
    assert fallback.road_meters == fallback.straight_line_meters
    # 2 minutes per kilometre
    assert fallback.duration_seconds == pytest.approx(fallback.straight_line_meters / 1_000 * 120)
    assert result.entries[1].routed is True
    assert any(record.getMessage() == "road_distance_fallback" for record in caplog.records)


@pytest.mark.asyncio
async def test_only_the_closest_candidates_are_routed() -> None:
    facilities = [shelter(f"s-{index}", index * 0.01) for index in range(1, 6)]
    provider = RoadDistances({index * 0.01: 1_000.0 * (6 - index) for index in range(1, 6)})
    candidates = rank(ORIGIN, facilities, None)

    result = await road_rank(RouteFetcher(provider, retry_backoff_seconds=0), ORIGIN, candidates, 5, limit=2)

    assert len(provider.calls) == 2
    assert result.facility_ids() == ["s-2", "s-1"]


@pytest.mark.asyncio
async def test_provider_outage_still_returns_every_candidate_with_fallbacks() -> None:
    facilities = [shelter("s-far", 0.05), shelter("s-near", 0.01)]
    candidates = rank(ORIGIN, facilities, None, stale=True)

    result = await road_rank(RouteFetcher(FailingDirections(), retry_backoff_seconds=0), ORIGIN, candidates, 5)

    assert result.facility_ids() == ["s-near", "s-far"]
    assert not any(entry.routed for entry in result)
    assert result.stale is True


@pytest.mark.asyncio
async def test_empty_candidate_list_routes_nothing() -> None:
    provider = RoadDistances({})

    result = await road_rank(RouteFetcher(provider, retry_backoff_seconds=0), ORIGIN, rank(ORIGIN, [], None), 5)

    assert len(result) == 0
    assert provider.calls == []


@pytest.mark.asyncio
async def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        await road_rank(RouteFetcher(RoadDistances({})), ORIGIN, rank(ORIGIN, [], None), 5, limit=0)
