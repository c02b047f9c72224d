"""Engine metadata utilities."""

from typing import Any

from stock_advisor import ENGINE_VERSION, SCHEMA_VERSION


def build_meta(operation: str, duration_ms: float | None = None, **kwargs: Any) -> dict[str, Any]:
    """
    Build standard metadata block for results.

    Args:
        operation: Name of the operation producing this result
        duration_ms: Execution time in milliseconds (optional)
        **kwargs: Additional metadata fields

    Returns:
        Metadata dict with version info
    """
    meta: dict[str, Any] = {
        "engine_version": ENGINE_VERSION,
        "schema_version": SCHEMA_VERSION,
        "operation": operation,
    }
    if duration_ms is not None:
        meta["duration_ms"] = round(duration_ms, 1)
    meta.update(kwargs)
    return meta
