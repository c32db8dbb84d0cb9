"""Structured log events for repository queries and API activity.

Every event is a single log record. The readable message carries
``[EVENT_TYPE] message (key=value, ...)`` and the same data is attached to the
record as ``event_*`` attributes for handlers that want it structured.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


DEFAULT_EVENT_LOGGER = logging.getLogger("training_portal.events")

_MAX_TEXT_LENGTH = 200


def _shorten(text: str) -> Optional[str]:
    text = text.strip()
    if not text:
        return None
    if len(text) > _MAX_TEXT_LENGTH:
        return text[:_MAX_TEXT_LENGTH] + "…"
    return text


def sanitize_context_value(value: Any) -> Any:
    """Reduce *value* to something a JSON log formatter can emit.

    Numbers and booleans pass through, mappings are cleaned recursively and
    everything else becomes a bounded string. Empty results collapse to
    ``None`` so callers can drop them.
    """

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, dict):
        return normalize_context(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return _shorten(", ".join(sorted(str(item) for item in value)))
    if isinstance(value, (list, tuple)):
        return _shorten(", ".join(str(item) for item in value))
    if isinstance(value, Path):
        return str(value)
    return _shorten(str(value))


def normalize_context(values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Sanitise every entry of *values*, dropping blank keys and empty values."""

    cleaned: Dict[str, Any] = {}
    for key, raw_value in (values or {}).items():
        if key is None or key == "":
            continue
        value = sanitize_context_value(raw_value)
        if value is None or value == "" or value == {}:
            continue
        cleaned[str(key)] = value
    return cleaned


def emit_structured_event(
    event_type: str,
    message: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: logging.Logger | logging.LoggerAdapter = DEFAULT_EVENT_LOGGER,
) -> None:
    """Log one event of ``event_type``.

    ``correlation`` identifies the request, ``context`` describes what the
    caller was doing and ``payload`` holds results. Later groups win when keys
    collide in the readable message.
    """

    text = str(message).strip()
    groups = {
        "event_correlation": normalize_context(correlation),
        "event_context": normalize_context(context),
        "event_payload": normalize_context(payload),
    }

    details: Dict[str, Any] = {}
    for group in groups.values():
        details.update(group)
    rendered = f"[{event_type}] {text}" if event_type else text
    if details:
        rendered += " (" + ", ".join(f"{key}={value}" for key, value in details.items()) + ")"

    extra: Dict[str, Any] = {"event_type": event_type or "", "event_message": text}
    extra.update({name: group for name, group in groups.items() if group})
    if duration_ms is not None:
        extra["event_duration_ms"] = float(duration_ms)
    logger.log(level, rendered, extra=extra)


def emit_db_event(
    action: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.DEBUG,
    logger: logging.Logger | logging.LoggerAdapter = DEFAULT_EVENT_LOGGER,
) -> None:
    """Log a repository query; debug level unless told otherwise."""

    emit_structured_event(
        "DB_QUERY",
        action,
        payload=payload,
        context=context,
        correlation=correlation,
        duration_ms=duration_ms,
        level=level,
        logger=logger,
    )


__all__ = [
    "DEFAULT_EVENT_LOGGER",
    "emit_db_event",
    "emit_structured_event",
    "normalize_context",
    "sanitize_context_value",
]
