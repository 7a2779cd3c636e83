from fastapi.testclient import TestClient

from proximity_service.app import create_app
from proximity_service.catalog import StaticCatalogSource
from proximity_service.config import ProximitySettings
from proximity_service.observability import HttpRequestMetric, InMemoryHttpMetricsCollector


def build_app():
    return create_app(
        settings=ProximitySettings(OTEL_ENABLED=False),
        catalog_source=StaticCatalogSource(),
    )


def test_trace_header_is_propagated() -> None:
    client = TestClient(build_app())

    response = client.get("/healthz", headers={"x-trace-id": "trace-abc"})

    assert response.status_code == 200
    assert response.headers["x-trace-id"] == "trace-abc"


def test_trace_header_is_generated_when_missing() -> None:
    client = TestClient(build_app())

    response = client.get("/healthz")

    assert response.headers["x-trace-id"]


def test_request_metric_is_collected() -> None:
    app = build_app()
    client = TestClient(app)

    response = client.get("/v1/sessions/ghost")
    metrics = app.state.http_metrics.snapshot()

    assert response.status_code == 404
    assert metrics[-1]["path"] == "/v1/sessions/{session_id}"
    assert metrics[-1]["status_code"] == 404
    assert metrics[-1]["duration_ms"] >= 0


def test_prometheus_metrics_endpoint_exposes_service_metrics() -> None:
    app = build_app()
    client = TestClient(app)

    client.get("/healthz")
    client.post("/v1/catalog/shelter/refresh")
    response = client.get("/metrics")
    body = response.text

    assert response.status_code == 200
    assert "proximity_http_requests_total" in body
    assert "proximity_http_request_duration_ms" in body
    assert 'proximity_catalog_refresh_total{kind="shelter",outcome="success"} 1.0' in body


def test_readiness_reports_refresh_loop_state() -> None:
    client = TestClient(build_app())

    response = client.get("/readyz")

    assert response.status_code == 200
    assert response.json()["data"] == {"status": "ready", "catalog_refresh_running": False}


def test_lifespan_starts_and_stops_catalog_refresh() -> None:
    app = build_app()

    with TestClient(app) as client:
        assert client.get("/readyz").json()["data"]["catalog_refresh_running"] is True

    assert app.state.refresh_scheduler.running is False


def test_per_session_urls_share_one_metric_series() -> None:
    app = build_app()
    client = TestClient(app)

    for index in range(25):
        client.post(f"/v1/sessions/observer-{index}/start")
    client.get("/nowhere")
    body = client.get("/metrics").text

    series = [line for line in body.splitlines() if line.startswith("proximity_http_requests_total{")]
    assert 'path="/v1/sessions/{session_id}/start"' in body
    assert "observer-3" not in body
    assert any('path="<unmatched>"' in line for line in series)
    assert len([line for line in series if "/start" in line]) == 1


def test_in_memory_collector_keeps_only_recent_requests() -> None:
    collector = InMemoryHttpMetricsCollector(max_entries=3)

    for index in range(5):
        collector.observe(
            HttpRequestMetric(method="GET", path="/healthz", status_code=200, duration_ms=1.0, trace_id=f"t-{index}")
        )

    assert [item["trace_id"] for item in collector.snapshot()] == ["t-2", "t-3", "t-4"]
