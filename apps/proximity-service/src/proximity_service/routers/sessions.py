from __future__ import annotations

import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from geo_engine.models import FacilityKind

from proximity_service.dependencies import get_orchestrator
from proximity_service.orchestrator import ProximityOrchestrator
from proximity_service.response import success_response
from proximity_service.schemas import (
    PositionSampleRequest,
    RouteRequest,
    facility_payload,
    ranked_payload,
    road_ranked_payload,
    route_payload,
    session_payload,
    straight_line_payload,
    update_payload,
)

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])


@router.post("/{session_id}/start")
async def start_tracking(
    session_id: str,
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    orchestrator.start_tracking(session_id)
    return success_response(session_payload(orchestrator.status(session_id)), meta={})


@router.post("/{session_id}/stop")
async def stop_tracking(
    session_id: str,
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    orchestrator.stop_tracking(session_id)
    return success_response(session_payload(orchestrator.status(session_id)), meta={})


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    return success_response(session_payload(orchestrator.status(session_id)), meta={})


@router.post("/{session_id}/samples")
async def submit_sample(
    session_id: str,
    body: PositionSampleRequest,
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    accepted = orchestrator.submit(session_id, body.to_sample())
    session = orchestrator.get_session(session_id)
    return success_response({"accepted": accepted, "state": session.state.value}, meta={})


@router.get("/{session_id}/proximity")
async def proximity(
    session_id: str,
    kind: FacilityKind = Query(default=FacilityKind.SHELTER),
    radius_meters: float | None = Query(default=None, ge=0),
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    result = orchestrator.ranked(session_id, kind=kind, radius_meters=radius_meters)
    return success_response(
        ranked_payload(result),
        meta={"kind": kind.value, "count": len(result)},
        stale=result.stale,
    )


@router.get("/{session_id}/nearest")
async def nearest(
    session_id: str,
    kind: FacilityKind = Query(default=FacilityKind.SHELTER),
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    facility = orchestrator.nearest(session_id, kind=kind)
    return success_response(facility_payload(facility) if facility else None, meta={"kind": kind.value})


@router.get("/{session_id}/road-ranked")
async def road_ranked(
    session_id: str,
    kind: FacilityKind = Query(default=FacilityKind.SHELTER),
    limit: int | None = Query(default=None, ge=1, le=50),
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    result = await orchestrator.road_ranked(session_id, kind=kind, limit=limit)
    return success_response(
        road_ranked_payload(result),
        meta={"kind": kind.value, "count": len(result)},
        stale=result.stale,
    )


@router.post("/{session_id}/routes")
async def request_route(
    session_id: str,
    body: RouteRequest,
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    route = await orchestrator.request_route(session_id, body.facility_id, body.timeout_seconds)
    return success_response(route_payload(route), meta={})


@router.get("/{session_id}/facilities/{facility_id}/straight-line")
async def straight_line(
    session_id: str,
    facility_id: str,
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> dict:
    estimate = orchestrator.straight_line(session_id, facility_id)
    return success_response(straight_line_payload(estimate), meta={"approximate": True})


@router.get("/{session_id}/stream")
async def stream(
    session_id: str,
    max_updates: int | None = Query(default=None, ge=1),
    orchestrator: ProximityOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    session = orchestrator.get_session(session_id)
    subscription = session.subscribe()

    async def body() -> AsyncIterator[str]:
        sent = 0
        try:
            async for update in subscription:
                yield json.dumps(update_payload(update), ensure_ascii=True) + "\n"
                sent += 1
                if max_updates is not None and sent >= max_updates:
                    break
        finally:
            session.unsubscribe(subscription)

    return StreamingResponse(body(), media_type="application/x-ndjson")
