from __future__ import annotations

from time import perf_counter
from uuid import uuid4

from devkit.observability import get_tracer, set_trace_id
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from proximity_service.observability import HttpMetricCollector, HttpRequestMetric

UNMATCHED_ROUTE = "<unmatched>"


def route_template(request: Request) -> str:
    """Path template of the matched route, so per-session URLs share one metric series."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


class ObservabilityMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, collector: HttpMetricCollector) -> None:
        super().__init__(app)
        self._collector = collector
        self._tracer = get_tracer("proximity-service")

    async def dispatch(self, request: Request, call_next) -> Response:
        trace_id = request.headers.get("x-trace-id") or str(uuid4())
        set_trace_id(trace_id)
        started = perf_counter()
        status_code = 500
        with self._tracer.start_as_current_span("http.request") as span:
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.target", request.url.path)
            span.set_attribute("trace.id", trace_id)
            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                route = route_template(request)
                span.set_attribute("http.status_code", status_code)
                span.set_attribute("http.route", route)
                self._collector.observe(
                    HttpRequestMetric(
                        method=request.method,
                        path=route,
                        status_code=status_code,
                        duration_ms=(perf_counter() - started) * 1000.0,
                        trace_id=trace_id,
                    )
                )

        response.headers["x-trace-id"] = trace_id
        return response
