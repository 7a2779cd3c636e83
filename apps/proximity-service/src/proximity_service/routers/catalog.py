from __future__ import annotations

from fastapi import APIRouter, Depends
from geo_engine.models import FacilityKind

from proximity_service.dependencies import get_orchestrator
from proximity_service.orchestrator import ProximityOrchestrator
from proximity_service.response import success_response
from proximity_service.schemas import catalog_payload

router = APIRouter(prefix="/v1/catalog", tags=["catalog"])


@router.get("/{kind}")
async def catalog_status(
    kind: FacilityKind,
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    cache = orchestrator.catalog
    stale = cache.is_stale(kind)
    return success_response(catalog_payload(cache.snapshot(kind), stale), meta={}, stale=stale)


@router.post("/{kind}/refresh")
async def refresh_catalog(
    kind: FacilityKind,
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    cache = orchestrator.catalog
    snapshot = await cache.refresh(kind)
    stale = cache.is_stale(kind)
    return success_response(catalog_payload(snapshot, stale), meta={}, stale=stale)
