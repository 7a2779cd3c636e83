from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
from geo_engine.models import FacilityKind

from proximity_service.errors import CatalogUnavailableError


class FacilityCatalogClient:
    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory

    async def fetch_facilities(self, kind: FacilityKind) -> list[dict[str, Any]]:
        try:
            factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout_seconds))
            async with factory() as client:
                response = await client.get(f"{self._base_url}/facilities", params={"kind": kind.value})
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise CatalogUnavailableError(f"catalog timeout for {kind.value}") from exc
        except httpx.HTTPStatusError as exc:
            raise CatalogUnavailableError(
                f"catalog returned {exc.response.status_code} for {kind.value}"
            ) from exc
        except httpx.HTTPError as exc:
            raise CatalogUnavailableError(f"catalog request failed for {kind.value}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogUnavailableError("catalog returned invalid json") from exc
        data = payload.get("data") if isinstance(payload, dict) else payload
        if not isinstance(data, list):
            raise CatalogUnavailableError("catalog payload has no data list")
        return data
