from __future__ import annotations

STALE_WARNING = "results may be outdated"


def success_response(
    data: object,
    meta: dict[str, object] | None = None,
    *,
    stale: bool = False,
) -> dict[str, object]:
    """Wrap ``data`` in the success envelope.

    ``stale`` marks results computed from a catalog snapshot that failed to
    refresh or aged out; clients get ``meta.stale`` plus a human warning.
    """
    envelope_meta = dict(meta or {})
    if stale:
        envelope_meta["stale"] = True
        envelope_meta["warning"] = STALE_WARNING
    return {"success": True, "data": data, "meta": envelope_meta}


def error_response(code: str, message: str, details: list[str] | None = None) -> dict[str, object]:
    error: dict[str, object] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "error": error}
