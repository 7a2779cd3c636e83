from __future__ import annotations

import logging

from devkit.observability import _HealthCheckAccessLogFilter, install_trace_id_log_records, set_trace_id


def _access_record(path: str, status: int) -> logging.LogRecord:
    return logging.LogRecord(
        name="uvicorn.access",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg='%s - "%s %s HTTP/%s" %d',
        args=("127.0.0.1:12345", "GET", path, "1.1", status),
        exc_info=None,
    )


def test_health_check_access_log_filter_ignores_successful_checks() -> None:
    health_filter = _HealthCheckAccessLogFilter(ignored_paths=("/healthz", "/readyz"))
    assert health_filter.filter(_access_record("/healthz", 200)) is False
    assert health_filter.filter(_access_record("/readyz/", 200)) is False
    assert health_filter.filter(_access_record("/readyz?full=true", 200)) is False


def test_health_check_access_log_filter_keeps_session_traffic_and_failures() -> None:
    health_filter = _HealthCheckAccessLogFilter(ignored_paths=("/healthz", "/readyz"))
    assert health_filter.filter(_access_record("/healthz", 503)) is True
    assert health_filter.filter(_access_record("/v1/sessions/s-1/samples", 200)) is True


def test_health_check_access_log_filter_passes_unrelated_records() -> None:
    health_filter = _HealthCheckAccessLogFilter(ignored_paths=("/healthz",))
    record = logging.LogRecord("other", logging.INFO, __file__, 1, "catalog_refreshed", None, None)
    assert health_filter.filter(record) is True


def test_log_records_carry_active_trace_id(caplog) -> None:
    install_trace_id_log_records()
    install_trace_id_log_records()
    set_trace_id("trace-42")

    with caplog.at_level(logging.INFO, logger="proximity_service.session"):
        logging.getLogger("proximity_service.session").info("tracking_started", extra={"component": "session"})

    assert caplog.records[-1].trace_id == "trace-42"
    assert caplog.records[-1].component == "session"
