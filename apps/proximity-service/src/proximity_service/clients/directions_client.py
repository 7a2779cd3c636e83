from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from geo_engine.models import GeoPoint

from proximity_service.errors import RouteNotFoundError, RouteProviderError, RouteTimeoutError

NO_ROUTE_CODES = frozenset({"NoRoute", "NoSegment"})


@dataclass(frozen=True)
class ProviderRoute:
    geometry: tuple[GeoPoint, ...]
    distance_meters: float
    duration_seconds: float


def format_coordinates(points: list[GeoPoint]) -> str:
    """Directions APIs take ``lng,lat`` pairs joined by ``;``."""
    return ";".join(f"{point.lng},{point.lat}" for point in points)


class DirectionsClient:
    """Client for Mapbox Directions v5 compatible providers (OSRM answers the same shape)."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        profile: str = "driving",
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._profile = profile
        self._client_factory = client_factory

    def build_path(self, origin: GeoPoint, destination: GeoPoint) -> str:
        return f"/directions/v5/mapbox/{self._profile}/{format_coordinates([origin, destination])}"

    async def fetch(self, origin: GeoPoint, destination: GeoPoint, timeout_seconds: float) -> ProviderRoute:
        params: dict[str, Any] = {"geometries": "geojson", "overview": "full"}
        if self._access_token:
            params["access_token"] = self._access_token

        try:
            factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=timeout_seconds))
            async with factory() as client:
                response = await client.get(f"{self._base_url}{self.build_path(origin, destination)}", params=params)
        except httpx.TimeoutException as exc:
            raise RouteTimeoutError("directions provider timed out") from exc
        except httpx.HTTPError as exc:
            raise RouteProviderError("directions request failed", transient=True) from exc

        payload = self._json_or_none(response)
        code = payload.get("code") if payload else None
        if code in NO_ROUTE_CODES:
            raise RouteNotFoundError(str(payload.get("message") or "no route between origin and destination"))
        if response.status_code >= 500:
            raise RouteProviderError(
                f"directions provider returned {response.status_code}",
                transient=True,
                upstream_status=response.status_code,
            )
        if response.status_code >= 400 or payload is None or code not in (None, "Ok"):
            raise RouteProviderError(
                f"directions provider rejected request: {code or response.status_code}",
                upstream_status=response.status_code,
            )
        return self._parse_route(payload)

    @staticmethod
    def _json_or_none(response: httpx.Response) -> dict[str, Any] | None:
        try:
            payload = response.json()
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None

    @staticmethod
    def _parse_route(payload: dict[str, Any]) -> ProviderRoute:
        routes = payload.get("routes") or []
        if not routes:
            raise RouteNotFoundError("directions provider returned no routes")
        route = routes[0]
        try:
            coordinates = route["geometry"]["coordinates"]
            geometry = tuple(GeoPoint(lat=float(lat), lng=float(lng)) for lng, lat, *_ in coordinates)
            return ProviderRoute(
                geometry=geometry,
                distance_meters=float(route["distance"]),
                duration_seconds=float(route["duration"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise RouteProviderError("directions provider returned malformed route") from exc
