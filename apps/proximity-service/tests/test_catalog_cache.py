from __future__ import annotations

import asyncio
import logging

import pytest
from geo_engine.models import FacilityKind

from proximity_service.catalog import CatalogRefreshScheduler, FacilityCatalogCache, StaticCatalogSource
from proximity_service.errors import CatalogUnavailableError
from proximity_service.observability import ProximityMetrics


class FlakyCatalogSource:
    def __init__(self) -> None:
        self.records: dict[FacilityKind, list[dict]] = {}
        self.failing: set[FacilityKind] = set()
        self.calls = 0

    async def fetch_facilities(self, kind: FacilityKind) -> list[dict]:
        self.calls += 1
        if kind in self.failing:
            raise CatalogUnavailableError(f"{kind.value} down")
        return self.records.get(kind, [])


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def shelter_record(facility_id: str, lat: float = 6.93, lng: float = 79.86) -> dict:
    return {"id": facility_id, "latitude": lat, "longitude": lng, "kind": "shelter", "attributes": {"name": facility_id}}


@pytest.mark.asyncio
async def test_refresh_replaces_snapshot_with_new_version() -> None:
    source = FlakyCatalogSource()
    source.records[FacilityKind.SHELTER] = [shelter_record("s-1")]
    cache = FacilityCatalogCache(source, clock=FakeClock())

    first = await cache.refresh(FacilityKind.SHELTER)
    source.records[FacilityKind.SHELTER] = [shelter_record("s-1"), shelter_record("s-2")]
    second = await cache.refresh(FacilityKind.SHELTER)

    assert first.version == 1
    assert second.version == 2
    assert [facility.id for facility in first.facilities] == ["s-1"]
    assert [facility.id for facility in cache.facilities(FacilityKind.SHELTER)] == ["s-1", "s-2"]
    assert cache.facilities(FacilityKind.SHELTER)[0].attributes["name"] == "s-1"


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_snapshot() -> None:
    source = FlakyCatalogSource()
    source.records[FacilityKind.SHELTER] = [shelter_record("s-1")]
    metrics = ProximityMetrics()
    cache = FacilityCatalogCache(source, clock=FakeClock(), metrics=metrics)
    await cache.refresh(FacilityKind.SHELTER)

    source.failing.add(FacilityKind.SHELTER)
    with pytest.raises(CatalogUnavailableError):
        await cache.refresh(FacilityKind.SHELTER)

    snapshot = cache.snapshot(FacilityKind.SHELTER)
    assert snapshot.version == 1
    assert [facility.id for facility in snapshot.facilities] == ["s-1"]
    assert cache.is_stale(FacilityKind.SHELTER) is True
    assert metrics.catalog_outcomes[("shelter", "failure")] == 1


@pytest.mark.asyncio
async def test_unexpected_source_error_is_wrapped() -> None:
    class BrokenSource:
        async def fetch_facilities(self, kind: FacilityKind) -> list[dict]:
            raise RuntimeError("socket closed")

    cache = FacilityCatalogCache(BrokenSource())

    with pytest.raises(CatalogUnavailableError):
        await cache.refresh(FacilityKind.SHELTER)
    assert cache.facilities(FacilityKind.SHELTER) == ()


@pytest.mark.asyncio
async def test_kinds_refresh_independently() -> None:
    source = FlakyCatalogSource()
    source.records[FacilityKind.SHELTER] = [shelter_record("s-1")]
    cache = FacilityCatalogCache(source, clock=FakeClock())
    await cache.refresh(FacilityKind.SHELTER)

    source.failing.add(FacilityKind.HAZARD_MARKER)
    with pytest.raises(CatalogUnavailableError):
        await cache.refresh(FacilityKind.HAZARD_MARKER)

    assert cache.is_stale(FacilityKind.SHELTER) is False
    assert len(cache.facilities(FacilityKind.SHELTER)) == 1
    assert cache.is_stale(FacilityKind.HAZARD_MARKER) is True


@pytest.mark.asyncio
async def test_malformed_records_are_excluded_and_logged(caplog) -> None:
    source = FlakyCatalogSource()
    source.records[FacilityKind.SHELTER] = [
        shelter_record("ok"),
        shelter_record("bad-lat", lat=95.0),
        {"id": "nan", "latitude": float("nan"), "longitude": 79.8},
        {"latitude": 6.9, "longitude": 79.8},
        {"id": "wrong-kind", "latitude": 6.9, "longitude": 79.8, "kind": "hazard_marker"},
        shelter_record("ok"),
        "not-a-record",
    ]
    cache = FacilityCatalogCache(source, clock=FakeClock())

    with caplog.at_level(logging.WARNING, logger="proximity_service.catalog"):
        snapshot = await cache.refresh(FacilityKind.SHELTER)

    assert [facility.id for facility in snapshot.facilities] == ["ok"]
    reasons = sorted(item.reason for item in snapshot.rejected)
    assert reasons == [
        "duplicate_id",
        "invalid_coordinates",
        "invalid_coordinates",
        "invalid_record",
        "kind_mismatch",
        "missing_id",
    ]
    assert sum(record.getMessage() == "catalog_record_rejected" for record in caplog.records) == 6


@pytest.mark.asyncio
async def test_snapshot_goes_stale_after_max_age() -> None:
    clock = FakeClock()
    source = FlakyCatalogSource()
    cache = FacilityCatalogCache(source, max_age_seconds=180, clock=clock)

    assert cache.is_stale(FacilityKind.SHELTER) is True
    await cache.refresh(FacilityKind.SHELTER)
    assert cache.is_stale(FacilityKind.SHELTER) is False

    clock.now += 181
    assert cache.is_stale(FacilityKind.SHELTER) is True


@pytest.mark.asyncio
async def test_find_searches_every_kind() -> None:
    source = StaticCatalogSource(
        {
            FacilityKind.SHELTER: [shelter_record("s-1")],
            FacilityKind.HAZARD_MARKER: [{"_id": "h-1", "lat": 6.95, "lng": 79.9, "attributes": {"disaster": "Flood"}}],
        }
    )
    cache = FacilityCatalogCache(source)
    await cache.refresh(FacilityKind.SHELTER)
    await cache.refresh(FacilityKind.HAZARD_MARKER)

    hazard = cache.find("h-1")
    assert hazard is not None
    assert hazard.kind is FacilityKind.HAZARD_MARKER
    assert cache.find("missing") is None


@pytest.mark.asyncio
async def test_scheduler_refreshes_all_kinds_and_absorbs_failures() -> None:
    source = FlakyCatalogSource()
    source.records[FacilityKind.SHELTER] = [shelter_record("s-1")]
    source.failing.add(FacilityKind.HAZARD_MARKER)
    cache = FacilityCatalogCache(source)
    scheduler = CatalogRefreshScheduler(cache, interval_seconds=60)

    outcome = await scheduler.refresh_all()

    assert outcome == {FacilityKind.SHELTER: True, FacilityKind.HAZARD_MARKER: False}


@pytest.mark.asyncio
async def test_scheduler_runs_in_background_until_stopped() -> None:
    source = FlakyCatalogSource()
    cache = FacilityCatalogCache(source)
    scheduler = CatalogRefreshScheduler(cache, interval_seconds=0.01)

    scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.stop()

    assert scheduler.running is False
    assert source.calls >= 2


@pytest.mark.asyncio
async def test_oversized_coordinate_rejects_only_that_record() -> None:
    source = FlakyCatalogSource()
    source.records[FacilityKind.SHELTER] = [
        shelter_record("ok"),
        {"id": "huge", "latitude": 10**400, "longitude": 79.86},
    ]
    cache = FacilityCatalogCache(source)

    snapshot = await cache.refresh(FacilityKind.SHELTER)

    assert [facility.id for facility in snapshot.facilities] == ["ok"]
    assert [(item.source_id, item.reason) for item in snapshot.rejected] == [("huge", "invalid_coordinates")]


class BrokenPayloadSource:
    """First fetch returns a payload that is not a record list, later fetches succeed."""

    def __init__(self) -> None:
        self.calls = 0

    async def fetch_facilities(self, kind: FacilityKind) -> list[dict]:
        self.calls += 1
        if self.calls == 1:
            return None  # type: ignore[return-value]
        return [shelter_record("s-1")] if kind is FacilityKind.SHELTER else []


@pytest.mark.asyncio
async def test_scheduler_survives_unexpected_refresh_error(caplog) -> None:
    source = BrokenPayloadSource()
    cache = FacilityCatalogCache(source)
    scheduler = CatalogRefreshScheduler(cache, interval_seconds=0.01)

    with caplog.at_level(logging.ERROR, logger="proximity_service.catalog"):
        scheduler.start()
        await asyncio.sleep(0.05)
        still_running = scheduler.running
        await scheduler.stop()

    assert still_running is True
    assert [facility.id for facility in cache.facilities(FacilityKind.SHELTER)] == ["s-1"]
    assert any(record.getMessage() == "catalog_refresh_loop_error" for record in caplog.records)
