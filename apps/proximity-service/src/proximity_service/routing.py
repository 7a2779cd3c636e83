from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Awaitable, Protocol, TypeVar

from geo_engine.models import GeoPoint

from proximity_service.clients.directions_client import ProviderRoute
from proximity_service.errors import (
    RouteCancelledError,
    RouteFetchError,
    RouteProviderError,
    RouteTimeoutError,
)
from proximity_service.observability import ProximityMetrics

T = TypeVar("T")
logger = logging.getLogger(__name__)


class DirectionsProvider(Protocol):
    async def fetch(self, origin: GeoPoint, destination: GeoPoint, timeout_seconds: float) -> ProviderRoute: ...


@dataclass(frozen=True)
class Route:
    origin_point: GeoPoint
    destination_facility_id: str
    geometry: tuple[GeoPoint, ...]
    distance_meters: float
    duration_seconds: float
    fetched_at: float


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, RouteTimeoutError):
        return True
    return isinstance(exc, RouteProviderError) and exc.transient


async def retry_once(
    operation: Callable[[], Awaitable[T]],
    backoff_seconds: float,
    should_retry: Callable[[Exception], bool],
    on_retry: Callable[[Exception], None] | None = None,
) -> T:
    try:
        return await operation()
    except RouteFetchError as exc:
        if not should_retry(exc):
            raise
        if on_retry:
            on_retry(exc)
    await asyncio.sleep(backoff_seconds)
    return await operation()


class RouteFetcher:
    """Fetches routes for one tracking session.

    ``request`` keeps at most one request in flight: a new request cancels the
    previous one, and a superseded caller always gets ``RouteCancelledError``
    even when its provider call had already finished.
    """

    def __init__(
        self,
        provider: DirectionsProvider,
        retry_backoff_seconds: float = 0.2,
        clock: Callable[[], float] = time.time,
        metrics: ProximityMetrics | None = None,
    ) -> None:
        self._provider = provider
        self._retry_backoff_seconds = retry_backoff_seconds
        self._clock = clock
        self._metrics = metrics
        self._in_flight: asyncio.Task[Route] | None = None
        self._generation = 0
        self.cancelled_count = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def fetch_route(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        destination_facility_id: str,
        timeout_seconds: float,
    ) -> Route:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        async def attempt() -> ProviderRoute:
            try:
                return await asyncio.wait_for(
                    self._provider.fetch(origin, destination, timeout_seconds),
                    timeout=timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                raise RouteTimeoutError(f"no response from directions provider within {timeout_seconds}s") from exc

        def on_retry(exc: Exception) -> None:
            self._observe("retried")
            logger.warning(
                "route_fetch_retry",
                extra={"component": "routing", "facility_id": destination_facility_id, "error": str(exc)},
            )

        try:
            provider_route = await retry_once(
                attempt,
                backoff_seconds=self._retry_backoff_seconds,
                should_retry=is_transient,
                on_retry=on_retry,
            )
        except RouteFetchError as exc:
            self._observe(exc.code.lower())
            logger.warning(
                "route_fetch_failed",
                extra={"component": "routing", "facility_id": destination_facility_id, "code": exc.code},
            )
            raise
        self._observe("success")
        return Route(
            origin_point=origin,
            destination_facility_id=destination_facility_id,
            geometry=provider_route.geometry,
            distance_meters=provider_route.distance_meters,
            duration_seconds=provider_route.duration_seconds,
            fetched_at=self._clock(),
        )

    async def request(
        self,
        origin: GeoPoint,
        destination: GeoPoint,
        destination_facility_id: str,
        timeout_seconds: float,
    ) -> Route:
        self.cancel()
        generation = self._generation
        task = asyncio.create_task(
            self.fetch_route(origin, destination, destination_facility_id, timeout_seconds),
            name=f"route-fetch-{destination_facility_id}",
        )
        self._in_flight = task
        try:
            route = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                raise RouteCancelledError("route request was superseded or cancelled") from None
            # the caller itself was cancelled
            task.cancel()
            raise
        except RouteFetchError:
            if generation != self._generation:
                raise RouteCancelledError("route request was superseded or cancelled") from None
            raise
        finally:
            if self._in_flight is task:
                self._in_flight = None
        if generation != self._generation:
            raise RouteCancelledError("route request was superseded or cancelled")
        return route

    def cancel(self) -> bool:
        """Cancel the in-flight request, if any. Safe to call repeatedly."""
        self._generation += 1
        task = self._in_flight
        self._in_flight = None
        if task is None or task.done():
            return False
        task.cancel()
        self.cancelled_count += 1
        logger.info("route_fetch_cancelled", extra={"component": "routing"})
        return True

    def _observe(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.observe_route_fetch(outcome)
