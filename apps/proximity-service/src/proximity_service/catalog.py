from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from geo_engine.models import Facility, FacilityKind, GeoPoint, InvalidCoordinateError

from proximity_service.errors import CatalogUnavailableError
from proximity_service.observability import ProximityMetrics

logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    async def fetch_facilities(self, kind: FacilityKind) -> list[dict[str, Any]]: ...


class StaticCatalogSource:
    """In-process catalog used when no catalog service is configured."""

    def __init__(self, records: Mapping[FacilityKind, list[dict[str, Any]]] | None = None) -> None:
        self._records = {kind: list(items) for kind, items in (records or {}).items()}

    async def fetch_facilities(self, kind: FacilityKind) -> list[dict[str, Any]]:
        return list(self._records.get(kind, []))


@dataclass(frozen=True)
class CatalogRejectedRecord:
    source_id: str
    reason: str


@dataclass(frozen=True)
class CatalogSnapshot:
    kind: FacilityKind
    facilities: tuple[Facility, ...] = ()
    version: int = 0
    fetched_at: float | None = None
    rejected: tuple[CatalogRejectedRecord, ...] = ()


@dataclass
class _KindState:
    snapshot: CatalogSnapshot
    lock: asyncio.Lock
    last_refresh_failed: bool = False


def parse_facility_record(record: Mapping[str, Any], kind: FacilityKind) -> Facility:
    """Build a facility from a catalog record, raising ValueError with a reason code."""
    facility_id = record.get("id", record.get("_id"))
    if facility_id is None or not str(facility_id).strip():
        raise ValueError("missing_id")
    record_kind = record.get("kind")
    if record_kind is not None and record_kind != kind.value:
        raise ValueError("kind_mismatch")
    lat = record.get("latitude", record.get("lat"))
    lng = record.get("longitude", record.get("lng"))
    try:
        point = GeoPoint(lat=lat, lng=lng)
    except InvalidCoordinateError as exc:
        raise ValueError("invalid_coordinates") from exc
    attributes = record.get("attributes") or {}
    if not isinstance(attributes, Mapping):
        raise ValueError("invalid_attributes")
    return Facility(id=str(facility_id), point=point, kind=kind, attributes=attributes)


class FacilityCatalogCache:
    """Per-kind facility snapshots with stale-over-empty refresh semantics.

    Each refresh builds a fresh immutable snapshot and swaps the reference;
    readers holding an older snapshot keep a consistent view.
    """

    def __init__(
        self,
        source: CatalogSource,
        max_age_seconds: float = 180.0,
        clock: Callable[[], float] = time.time,
        metrics: ProximityMetrics | None = None,
    ) -> None:
        self._source = source
        self._max_age_seconds = max_age_seconds
        self._clock = clock
        self._metrics = metrics
        self._kinds = {
            kind: _KindState(snapshot=CatalogSnapshot(kind=kind), lock=asyncio.Lock()) for kind in FacilityKind
        }

    async def refresh(self, kind: FacilityKind) -> CatalogSnapshot:
        state = self._kinds[kind]
        async with state.lock:
            try:
                records = await self._source.fetch_facilities(kind)
            except Exception as exc:
                state.last_refresh_failed = True
                self._observe(kind, "failure")
                logger.warning(
                    "catalog_refresh_failed",
                    extra={
                        "component": "catalog",
                        "kind": kind.value,
                        "retained_version": state.snapshot.version,
                        "error": str(exc),
                    },
                )
                if isinstance(exc, CatalogUnavailableError):
                    raise
                raise CatalogUnavailableError(f"catalog refresh failed for {kind.value}") from exc

            facilities, rejected = self._build(records, kind)
            snapshot = CatalogSnapshot(
                kind=kind,
                facilities=facilities,
                version=state.snapshot.version + 1,
                fetched_at=self._clock(),
                rejected=rejected,
            )
            state.snapshot = snapshot
            state.last_refresh_failed = False
            self._observe(kind, "success")
            logger.info(
                "catalog_refreshed",
                extra={
                    "component": "catalog",
                    "kind": kind.value,
                    "version": snapshot.version,
                    "accepted": len(facilities),
                    "rejected": len(rejected),
                },
            )
            return snapshot

    def snapshot(self, kind: FacilityKind) -> CatalogSnapshot:
        return self._kinds[kind].snapshot

    def facilities(self, kind: FacilityKind) -> tuple[Facility, ...]:
        return self._kinds[kind].snapshot.facilities

    def is_stale(self, kind: FacilityKind) -> bool:
        state = self._kinds[kind]
        fetched_at = state.snapshot.fetched_at
        if fetched_at is None or state.last_refresh_failed:
            return True
        return self._clock() - fetched_at > self._max_age_seconds

    def find(self, facility_id: str) -> Facility | None:
        for state in self._kinds.values():
            for facility in state.snapshot.facilities:
                if facility.id == facility_id:
                    return facility
        return None

    def _build(
        self,
        records: list[dict[str, Any]],
        kind: FacilityKind,
    ) -> tuple[tuple[Facility, ...], tuple[CatalogRejectedRecord, ...]]:
        accepted: dict[str, Facility] = {}
        rejected: list[CatalogRejectedRecord] = []
        for record in records:
            source_id = str(record.get("id", record.get("_id", ""))) if isinstance(record, Mapping) else ""
            try:
                if not isinstance(record, Mapping):
                    raise ValueError("invalid_record")
                facility = parse_facility_record(record, kind)
                if facility.id in accepted:
                    raise ValueError("duplicate_id")
            except ValueError as exc:
                reason = str(exc)
                rejected.append(CatalogRejectedRecord(source_id=source_id, reason=reason))
                logger.warning(
                    "catalog_record_rejected",
                    extra={"component": "catalog", "kind": kind.value, "source_id": source_id, "reason": reason},
                )
                continue
            accepted[facility.id] = facility
        return tuple(accepted.values()), tuple(rejected)

    def _observe(self, kind: FacilityKind, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.observe_catalog_refresh(kind.value, outcome)


class CatalogRefreshScheduler:
    """Polls every facility kind on a fixed interval; failures are logged and absorbed."""

    def __init__(self, cache: FacilityCatalogCache, interval_seconds: float = 60.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._cache = cache
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh_all(self) -> dict[FacilityKind, bool]:
        outcome: dict[FacilityKind, bool] = {}
        for kind in FacilityKind:
            try:
                await self._cache.refresh(kind)
                outcome[kind] = True
            except CatalogUnavailableError:
                outcome[kind] = False
        return outcome

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="catalog-refresh")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh_all()
            except Exception:
                logger.exception("catalog_refresh_loop_error", extra={"component": "catalog"})
            await asyncio.sleep(self._interval_seconds)
