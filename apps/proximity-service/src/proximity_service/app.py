from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from devkit.observability import (
    configure_otel,
    configure_health_check_access_log_filter,
    install_trace_id_log_records,
)
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from proximity_service.catalog import (
    CatalogRefreshScheduler,
    CatalogSource,
    FacilityCatalogCache,
    StaticCatalogSource,
)
from proximity_service.clients.catalog_client import FacilityCatalogClient
from proximity_service.clients.directions_client import DirectionsClient
from proximity_service.config import ProximitySettings, load_proximity_settings
from proximity_service.errors import ApiError, ProximityError, to_api_error
from proximity_service.middleware import ObservabilityMiddleware
from proximity_service.observability import (
    CompositeHttpMetricsCollector,
    InMemoryHttpMetricsCollector,
    ProximityMetrics,
)
from proximity_service.orchestrator import ProximityOrchestrator
from proximity_service.response import error_response, success_response
from proximity_service.routers.catalog import router as catalog_router
from proximity_service.routers.sessions import router as sessions_router
from proximity_service.routing import DirectionsProvider, RouteFetcher

logger = logging.getLogger(__name__)


def _build_catalog_source(settings: ProximitySettings) -> CatalogSource:
    if settings.CATALOG_BASE_URL:
        return FacilityCatalogClient(
            base_url=settings.CATALOG_BASE_URL,
            timeout_seconds=settings.CATALOG_TIMEOUT_SECONDS,
        )
    logger.warning("catalog_source_not_configured", extra={"component": "app"})
    return StaticCatalogSource()


def _build_directions_provider(settings: ProximitySettings) -> DirectionsProvider:
    return DirectionsClient(
        base_url=settings.DIRECTIONS_BASE_URL,
        access_token=settings.DIRECTIONS_ACCESS_TOKEN,
        profile=settings.DIRECTIONS_PROFILE,
    )


def create_app(
    settings: ProximitySettings | None = None,
    catalog_source: CatalogSource | None = None,
    directions_provider: DirectionsProvider | None = None,
) -> FastAPI:
    settings = settings or load_proximity_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.refresh_scheduler.start()
        yield
        await app.state.refresh_scheduler.stop()
        app.state.orchestrator.shutdown()

    app = FastAPI(title="Proximity Service", version="0.1.0", lifespan=lifespan)
    configure_otel(service_name=settings.SERVICE_NAME, enabled=settings.OTEL_ENABLED)
    configure_health_check_access_log_filter()
    install_trace_id_log_records()

    app.state.http_metrics = InMemoryHttpMetricsCollector()
    app.state.metrics = ProximityMetrics()
    app.add_middleware(
        ObservabilityMiddleware,
        collector=CompositeHttpMetricsCollector([app.state.http_metrics, app.state.metrics]),
    )

    catalog = FacilityCatalogCache(
        source=catalog_source or _build_catalog_source(settings),
        max_age_seconds=settings.CATALOG_MAX_AGE_SECONDS,
        metrics=app.state.metrics,
    )
    provider = directions_provider or _build_directions_provider(settings)
    app.state.orchestrator = ProximityOrchestrator(
        catalog=catalog,
        route_fetcher_factory=lambda: RouteFetcher(
            provider,
            retry_backoff_seconds=settings.ROUTE_RETRY_BACKOFF_SECONDS,
            metrics=app.state.metrics,
        ),
        settings=settings,
    )
    app.state.refresh_scheduler = CatalogRefreshScheduler(
        catalog,
        interval_seconds=settings.CATALOG_REFRESH_INTERVAL_SECONDS,
    )

    app.include_router(sessions_router)
    app.include_router(catalog_router)

    @app.get("/healthz")
    async def healthz() -> dict:
        return success_response({"status": "ok"}, meta={})

    @app.get("/readyz")
    async def readyz() -> dict:
        return success_response(
            {"status": "ready", "catalog_refresh_running": app.state.refresh_scheduler.running},
            meta={},
        )

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = app.state.metrics.render()
        return Response(content=payload, media_type="text/plain; version=0.0.4")

    @app.exception_handler(ApiError)
    async def handle_api_error(_: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=error_response(exc.code, exc.message))

    @app.exception_handler(ProximityError)
    async def handle_proximity_error(_: Request, exc: ProximityError) -> JSONResponse:
        error = to_api_error(exc)
        return JSONResponse(status_code=error.status_code, content=error_response(error.code, error.message))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = "; ".join(err["msg"] for err in errors)
        details = [".".join(str(part) for part in err["loc"]) for err in errors]
        return JSONResponse(
            status_code=422,
            content=error_response("VALIDATION_ERROR", message, details),
        )

    return app


app = create_app()
