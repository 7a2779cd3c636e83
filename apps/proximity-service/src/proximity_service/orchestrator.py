from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable

from geo_engine.models import Facility, FacilityKind, RankedResult
from geo_engine.travel import StraightLineEstimate, straight_line_estimate

from proximity_service.catalog import FacilityCatalogCache
from proximity_service.config import ProximitySettings
from proximity_service.errors import FacilityNotFoundError, SessionNotFoundError, SessionStoppedError
from proximity_service.location import PositionSample
from proximity_service.road_ranking import RoadRankedResult
from proximity_service.routing import Route, RouteFetcher
from proximity_service.session import SessionState, SessionStatus, Subscription, TrackingSession

logger = logging.getLogger(__name__)


class ProximityOrchestrator:
    """Entry point for callers: owns tracking sessions and wires them to the catalog.

    Stopped sessions are released immediately; only their ids are remembered
    (up to ``STOPPED_SESSION_RETENTION``) so late calls still get
    ``SessionStoppedError`` rather than ``SessionNotFoundError``.
    """

    def __init__(
        self,
        catalog: FacilityCatalogCache,
        route_fetcher_factory: Callable[[], RouteFetcher],
        settings: ProximitySettings | None = None,
    ) -> None:
        self._catalog = catalog
        self._route_fetcher_factory = route_fetcher_factory
        self._settings = settings or ProximitySettings()
        self._sessions: dict[str, TrackingSession] = {}
        self._stopped: OrderedDict[str, None] = OrderedDict()

    @property
    def catalog(self) -> FacilityCatalogCache:
        return self._catalog

    @property
    def settings(self) -> ProximitySettings:
        return self._settings

    @property
    def live_session_count(self) -> int:
        return len(self._sessions)

    @property
    def stopped_session_count(self) -> int:
        return len(self._stopped)

    def start_tracking(self, session_id: str) -> TrackingSession:
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        self._stopped.pop(session_id, None)
        session = TrackingSession(
            session_id=session_id,
            catalog=self._catalog,
            route_fetcher=self._route_fetcher_factory(),
            radii={kind: self._radius_for(kind) for kind in FacilityKind},
            min_movement_meters=self._settings.MIN_MOVEMENT_METERS,
            subscriber_queue_size=self._settings.SUBSCRIBER_QUEUE_SIZE,
        )
        self._sessions[session_id] = session
        logger.info("session_started", extra={"component": "orchestrator", "session_id": session_id})
        return session

    def stop_tracking(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            if session_id in self._stopped:
                return
            raise SessionNotFoundError(f"session {session_id} was never started")
        session.stop()
        self._remember_stopped(session_id)

    def get_session(self, session_id: str) -> TrackingSession:
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        if session_id in self._stopped:
            raise SessionStoppedError(f"session {session_id} is stopped")
        raise SessionNotFoundError(f"session {session_id} was never started")

    def status(self, session_id: str) -> SessionStatus:
        session = self._sessions.get(session_id)
        if session is not None:
            return session.status()
        if session_id in self._stopped:
            return SessionStatus(session_id=session_id, state=SessionState.STOPPED)
        raise SessionNotFoundError(f"session {session_id} was never started")

    def submit(self, session_id: str, sample: PositionSample) -> bool:
        return self.get_session(session_id).submit(sample)

    def subscribe(self, session_id: str) -> Subscription:
        return self.get_session(session_id).subscribe()

    def ranked(
        self,
        session_id: str,
        kind: FacilityKind = FacilityKind.SHELTER,
        radius_meters: float | None = None,
    ) -> RankedResult:
        return self.get_session(session_id).ranked(kind, radius_meters)

    def nearest(self, session_id: str, kind: FacilityKind = FacilityKind.SHELTER) -> Facility | None:
        return self.get_session(session_id).nearest(kind)

    async def road_ranked(
        self,
        session_id: str,
        kind: FacilityKind = FacilityKind.SHELTER,
        limit: int | None = None,
    ) -> RoadRankedResult:
        session = self.get_session(session_id)
        return await session.road_ranked(
            kind,
            radius_meters=self._radius_for(kind),
            limit=limit or self._settings.ROAD_RANK_LIMIT,
            timeout_seconds=self._settings.ROUTE_TIMEOUT_SECONDS,
        )

    async def request_route(
        self,
        session_id: str,
        facility_id: str,
        timeout_seconds: float | None = None,
    ) -> Route:
        session = self.get_session(session_id)
        facility = self._require_facility(facility_id)
        timeout = timeout_seconds if timeout_seconds is not None else self._settings.ROUTE_TIMEOUT_SECONDS
        return await session.request_route(facility, timeout)

    def straight_line(self, session_id: str, facility_id: str) -> StraightLineEstimate:
        session = self.get_session(session_id)
        facility = self._require_facility(facility_id)
        return straight_line_estimate(session.require_observer_point(), facility.point)

    def shutdown(self) -> None:
        for session_id in list(self._sessions):
            self.stop_tracking(session_id)

    def _radius_for(self, kind: FacilityKind) -> float | None:
        if kind is FacilityKind.HAZARD_MARKER:
            return self._settings.HAZARD_RADIUS_METERS
        return self._settings.SHELTER_RADIUS_METERS

    def _remember_stopped(self, session_id: str) -> None:
        retention = self._settings.STOPPED_SESSION_RETENTION
        if retention <= 0:
            return
        self._stopped[session_id] = None
        self._stopped.move_to_end(session_id)
        while len(self._stopped) > retention:
            self._stopped.popitem(last=False)

    def _require_facility(self, facility_id: str) -> Facility:
        facility = self._catalog.find(facility_id)
        if facility is None:
            raise FacilityNotFoundError(f"facility {facility_id} is not in the catalog")
        return facility
