"""Common runtime devkit for service infrastructure concerns."""

from devkit.config import ServiceSettings, load_settings
from devkit.observability import (
    configure_otel,
    configure_health_check_access_log_filter,
    get_tracer,
    get_trace_id,
    install_trace_id_log_records,
    set_trace_id,
)

__all__ = [
    "ServiceSettings",
    "configure_otel",
    "configure_health_check_access_log_filter",
    "get_trace_id",
    "get_tracer",
    "install_trace_id_log_records",
    "load_settings",
    "set_trace_id",
]
