from __future__ import annotations

from fastapi import Request

from proximity_service.orchestrator import ProximityOrchestrator


def get_orchestrator(request: Request) -> ProximityOrchestrator:
    return request.app.state.orchestrator
