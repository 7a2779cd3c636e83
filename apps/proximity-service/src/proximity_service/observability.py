from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from typing import Protocol

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest


@dataclass(frozen=True)
class HttpRequestMetric:
    method: str
    path: str
    status_code: int
    duration_ms: float
    trace_id: str


class HttpMetricCollector(Protocol):
    def observe(self, metric: HttpRequestMetric) -> None: ...


class InMemoryHttpMetricsCollector(HttpMetricCollector):
    """Keeps the most recent requests only; older entries fall off the end."""

    def __init__(self, max_entries: int = 1_000) -> None:
        self._metrics: deque[HttpRequestMetric] = deque(maxlen=max(1, max_entries))

    def observe(self, metric: HttpRequestMetric) -> None:
        self._metrics.append(metric)

    def snapshot(self) -> list[dict]:
        return [asdict(item) for item in self._metrics]


class ProximityMetrics:
    """Prometheus collectors for the HTTP surface and the upstream collaborators.

    Also keeps plain counters so tests can assert on outcomes without parsing
    the exposition format.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()
        self._request_counter = Counter(
            "proximity_http_requests_total",
            "Total proximity service HTTP requests",
            labelnames=("method", "path", "status_code"),
            registry=self._registry,
        )
        self._latency_histogram = Histogram(
            "proximity_http_request_duration_ms",
            "Proximity service HTTP request latency in milliseconds",
            labelnames=("method", "path"),
            buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 3000),
            registry=self._registry,
        )
        self._route_counter = Counter(
            "proximity_route_fetch_total",
            "Directions provider fetch attempts by outcome",
            labelnames=("outcome",),
            registry=self._registry,
        )
        self._catalog_counter = Counter(
            "proximity_catalog_refresh_total",
            "Facility catalog refreshes by kind and outcome",
            labelnames=("kind", "outcome"),
            registry=self._registry,
        )
        self.route_outcomes: dict[str, int] = defaultdict(int)
        self.catalog_outcomes: dict[tuple[str, str], int] = defaultdict(int)

    def observe(self, metric: HttpRequestMetric) -> None:
        status = str(metric.status_code)
        self._request_counter.labels(metric.method, metric.path, status).inc()
        self._latency_histogram.labels(metric.method, metric.path).observe(metric.duration_ms)

    def observe_route_fetch(self, outcome: str) -> None:
        self.route_outcomes[outcome] += 1
        self._route_counter.labels(outcome).inc()

    def observe_catalog_refresh(self, kind: str, outcome: str) -> None:
        self.catalog_outcomes[(kind, outcome)] += 1
        self._catalog_counter.labels(kind, outcome).inc()

    def render(self) -> str:
        return generate_latest(self._registry).decode("utf-8")


class CompositeHttpMetricsCollector(HttpMetricCollector):
    def __init__(self, collectors: list[HttpMetricCollector]) -> None:
        self._collectors = collectors

    def observe(self, metric: HttpRequestMetric) -> None:
        for collector in self._collectors:
            collector.observe(metric)
