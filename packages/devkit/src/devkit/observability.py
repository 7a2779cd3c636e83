from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

HEALTH_CHECK_PATHS = ("/healthz", "/readyz")

_configured = False
_health_check_filter_configured = False
_trace_records_installed = False

_trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")


def set_trace_id(trace_id: str) -> None:
    _trace_id_ctx.set(trace_id)


def get_trace_id() -> str:
    return _trace_id_ctx.get()


class _HealthCheckAccessLogFilter(logging.Filter):
    """Drops successful health check hits from the uvicorn access log."""

    def __init__(self, ignored_paths: tuple[str, ...]) -> None:
        super().__init__()
        self._ignored_paths = {self._normalize_path(path) for path in ignored_paths}

    @staticmethod
    def _normalize_path(path: str) -> str:
        base = path.split("?", 1)[0]
        if base != "/" and base.endswith("/"):
            return base[:-1]
        return base

    @staticmethod
    def _extract_path_and_status(record: logging.LogRecord) -> tuple[str | None, int | None]:
        # uvicorn access records: (client_addr, method, path, http_version, status_code)
        args: Any = getattr(record, "args", ())
        if not isinstance(args, tuple) or len(args) < 5:
            return None, None
        path = args[2] if isinstance(args[2], str) else None
        try:
            status = int(args[4])
        except (TypeError, ValueError):
            status = None
        return path, status

    def filter(self, record: logging.LogRecord) -> bool:
        path, status = self._extract_path_and_status(record)
        if path is None or status != 200:
            return True
        return self._normalize_path(path) not in self._ignored_paths


def configure_otel(service_name: str, enabled: bool = True) -> None:
    global _configured
    if _configured or not enabled:
        return
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    trace.set_tracer_provider(provider)
    _configured = True


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def configure_health_check_access_log_filter(ignored_paths: tuple[str, ...] = HEALTH_CHECK_PATHS) -> None:
    global _health_check_filter_configured
    if _health_check_filter_configured:
        return
    logging.getLogger("uvicorn.access").addFilter(_HealthCheckAccessLogFilter(ignored_paths=ignored_paths))
    _health_check_filter_configured = True


def install_trace_id_log_records() -> None:
    """Every log record gets a ``trace_id`` attribute holding the active request trace id.

    Handlers can then use ``%(trace_id)s`` without each call site passing it in ``extra``.
    """
    global _trace_records_installed
    if _trace_records_installed:
        return
    base_factory = logging.getLogRecordFactory()

    def factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
        record = base_factory(*args, **kwargs)
        record.trace_id = get_trace_id()
        return record

    logging.setLogRecordFactory(factory)
    _trace_records_installed = True
