"""Structured event logging shared by the apply and regenerate pipelines."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

TELEMETRY_LOGGER = logging.getLogger("gitpatcher.telemetry")


def serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set)):
        return [serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): serialise_event_value(child) for key, child in value.items()}
    return str(value)


def emit_event(
    event: str,
    *,
    logger: logging.Logger | None = None,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Log a JSON event payload on ``logger`` (the telemetry logger by default)."""
    target = logger or TELEMETRY_LOGGER
    if not target.isEnabledFor(level):
        return
    payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = serialise_event_value(value)
    try:
        message = json.dumps(payload, separators=(",", ":"), ensure_ascii=True)
    except (TypeError, ValueError):
        fallback = {key: serialise_event_value(value) for key, value in payload.items()}
        message = json.dumps(fallback, separators=(",", ":"), ensure_ascii=True)
    target.log(level, message)


__all__ = ["TELEMETRY_LOGGER", "emit_event", "serialise_event_value"]
