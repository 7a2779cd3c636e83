from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from geo_engine.models import Facility, FacilityKind, GeoPoint, RankedResult
from geo_engine.proximity import rank

from proximity_service.catalog import FacilityCatalogCache
from proximity_service.errors import NoObserverLocationError, SessionStoppedError
from proximity_service.location import LocationChanged, LocationStreamAdapter, ObserverState, PositionSample
from proximity_service.road_ranking import RoadRankedResult, road_rank
from proximity_service.routing import Route, RouteFetcher

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    ROUTE_REQUESTED = "route_requested"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ProximityUpdate:
    session_id: str
    sequence: int
    observer: ObserverState
    results: dict[FacilityKind, RankedResult] = field(default_factory=dict)

    @property
    def nearest_shelter(self) -> Facility | None:
        result = self.results.get(FacilityKind.SHELTER)
        head = result.head if result else None
        return head.facility if head else None


@dataclass(frozen=True)
class SessionStatus:
    session_id: str
    state: SessionState
    observer: ObserverState | None = None


_CLOSED = object()


class Subscription:
    """Async iterator over proximity updates for one subscriber.

    The queue is bounded; a subscriber that falls behind loses the oldest
    pending update, never the newest. Updates at or below the last published
    sequence are ignored.
    """

    def __init__(self, maxsize: int = 16) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=max(1, maxsize))
        self._closed = False
        self._last_sequence = 0
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, update: ProximityUpdate) -> None:
        if self._closed or update.sequence <= self._last_sequence:
            return
        self._last_sequence = update.sequence
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(update)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ProximityUpdate:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


class TrackingSession:
    def __init__(
        self,
        session_id: str,
        catalog: FacilityCatalogCache,
        route_fetcher: RouteFetcher,
        radii: dict[FacilityKind, float | None],
        min_movement_meters: float = 0.0,
        subscriber_queue_size: int = 16,
    ) -> None:
        self.session_id = session_id
        self._catalog = catalog
        self._route_fetcher = route_fetcher
        self._radii = radii
        self._subscriber_queue_size = subscriber_queue_size
        self._adapter = LocationStreamAdapter(min_movement_meters=min_movement_meters)
        self._adapter.add_listener(self._on_location_changed)
        self._subscriptions: list[Subscription] = []
        self._state = SessionState.IDLE
        self._pending_routes = 0
        self.current_route: Route | None = None
        self.recompute_count = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def observer(self) -> ObserverState | None:
        return self._adapter.state

    def status(self) -> SessionStatus:
        return SessionStatus(session_id=self.session_id, state=self._state, observer=self._adapter.state)

    def submit(self, sample: PositionSample) -> bool:
        if self._state is SessionState.STOPPED:
            raise SessionStoppedError(f"session {self.session_id} is stopped")
        return self._adapter.submit(sample)

    def subscribe(self) -> Subscription:
        if self._state is SessionState.STOPPED:
            raise SessionStoppedError(f"session {self.session_id} is stopped")
        subscription = Subscription(maxsize=self._subscriber_queue_size)
        self._subscriptions.append(subscription)
        latest = self._adapter.latest()
        if latest is not None:
            subscription.publish(self._build_update(latest))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def ranked(self, kind: FacilityKind, radius_meters: float | None = None) -> RankedResult:
        observer = self._adapter.state
        stale = self._catalog.is_stale(kind)
        if observer is None:
            return RankedResult(stale=stale)
        return rank(observer.last_known_point, self._catalog.facilities(kind), radius_meters, stale=stale)

    def nearest(self, kind: FacilityKind = FacilityKind.SHELTER) -> Facility | None:
        head = self.ranked(kind).head
        return head.facility if head else None

    async def road_ranked(
        self,
        kind: FacilityKind,
        radius_meters: float | None,
        limit: int,
        timeout_seconds: float,
    ) -> RoadRankedResult:
        if self._state is SessionState.STOPPED:
            raise SessionStoppedError(f"session {self.session_id} is stopped")
        origin = self.require_observer_point()
        candidates = rank(origin, self._catalog.facilities(kind), radius_meters, stale=self._catalog.is_stale(kind))
        return await road_rank(self._route_fetcher, origin, candidates, timeout_seconds, limit)

    def require_observer_point(self) -> GeoPoint:
        observer = self._adapter.state
        if observer is None:
            raise NoObserverLocationError(f"session {self.session_id} has no accepted location yet")
        return observer.last_known_point

    async def request_route(self, facility: Facility, timeout_seconds: float) -> Route:
        if self._state is SessionState.STOPPED:
            raise SessionStoppedError(f"session {self.session_id} is stopped")
        origin = self.require_observer_point()
        self._state = SessionState.ROUTE_REQUESTED
        self._pending_routes += 1
        try:
            route = await self._route_fetcher.request(origin, facility.point, facility.id, timeout_seconds)
        finally:
            self._pending_routes -= 1
            if self._pending_routes == 0 and self._state is SessionState.ROUTE_REQUESTED:
                self._state = SessionState.TRACKING
        self.current_route = route
        return route

    def stop(self) -> None:
        if self._state is SessionState.STOPPED:
            return
        self._state = SessionState.STOPPED
        self._route_fetcher.cancel()
        self._adapter.remove_listener(self._on_location_changed)
        self._adapter.reset()
        self.current_route = None
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        logger.info("tracking_stopped", extra={"component": "session", "session_id": self.session_id})

    def _on_location_changed(self, event: LocationChanged) -> None:
        if self._state is SessionState.IDLE:
            self._state = SessionState.TRACKING
            logger.info("tracking_started", extra={"component": "session", "session_id": self.session_id})
        update = self._build_update(event)
        self.recompute_count += 1
        for subscription in list(self._subscriptions):
            subscription.publish(update)

    def _build_update(self, event: LocationChanged) -> ProximityUpdate:
        point = event.state.last_known_point
        results = {
            kind: rank(
                point,
                self._catalog.facilities(kind),
                self._radii.get(kind),
                stale=self._catalog.is_stale(kind),
            )
            for kind in FacilityKind
        }
        return ProximityUpdate(
            session_id=self.session_id,
            sequence=event.sequence,
            observer=event.state,
            results=results,
        )
