from __future__ import annotations

import httpx
import pytest
from geo_engine.models import FacilityKind

from proximity_service.clients.catalog_client import FacilityCatalogClient
from proximity_service.errors import CatalogUnavailableError


def build_client(handler):
    transport = httpx.MockTransport(handler)
    return FacilityCatalogClient(
        base_url="https://catalog.example.com/",
        timeout_seconds=5.0,
        client_factory=lambda: httpx.AsyncClient(transport=transport, timeout=5.0),
    )


@pytest.mark.asyncio
async def test_catalog_client_requests_kind_and_returns_records() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/facilities"
        assert request.url.params["kind"] == "shelter"
        return httpx.Response(
            status_code=200,
            json={"data": [{"id": "s-1", "latitude": 6.93, "longitude": 79.86, "kind": "shelter"}]},
        )

    client = build_client(handler)
    rows = await client.fetch_facilities(FacilityKind.SHELTER)

    assert rows[0]["id"] == "s-1"


@pytest.mark.asyncio
async def test_catalog_client_maps_http_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=503, json={"message": "down"})

    client = build_client(handler)
    with pytest.raises(CatalogUnavailableError):
        await client.fetch_facilities(FacilityKind.HAZARD_MARKER)


@pytest.mark.asyncio
async def test_catalog_client_maps_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = build_client(handler)
    with pytest.raises(CatalogUnavailableError):
        await client.fetch_facilities(FacilityKind.SHELTER)


@pytest.mark.asyncio
async def test_catalog_client_rejects_payload_without_data_list() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, json={"data": {"id": "s-1"}})

    client = build_client(handler)
    with pytest.raises(CatalogUnavailableError):
        await client.fetch_facilities(FacilityKind.SHELTER)
