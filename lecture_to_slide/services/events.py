"""Structured log events for job lifecycle, provider calls and file operations.

Every event is a single log line of the form ``[TYPE] message (key=value, ...)``
on the ``lecture_to_slide.events`` logger. The same details are attached to the
record as ``event_*`` attributes for handlers that want them unflattened.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union


DEFAULT_EVENT_LOGGER = logging.getLogger("lecture_to_slide.events")

_MAX_VALUE_LENGTH = 200

EventLogger = Union[logging.Logger, logging.LoggerAdapter]


class EventType(str, Enum):
    JOB_STATE = "JOB_STATE"
    PROVIDER_CALL = "PROVIDER_CALL"
    FILE_OP = "FILE_OP"


def _truncate(text: str) -> Optional[str]:
    text = text.strip()
    if not text:
        return None
    if len(text) <= _MAX_VALUE_LENGTH:
        return text
    return text[:_MAX_VALUE_LENGTH] + "…"


def sanitize_context_value(value: Any) -> Any:
    """Return a log-friendly, JSON-serialisable form of *value*.

    Enums collapse to their value, paths and datetimes to strings, sequences to
    a comma separated string. Blank strings become ``None``.
    """

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return sanitize_context_value(value.value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return normalize_context(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return _truncate(", ".join(str(item) for item in value))
    if isinstance(value, Path):
        return str(value)
    return _truncate(str(value))


def normalize_context(values: Optional[Mapping[Any, Any]]) -> Dict[str, Any]:
    """Drop empty keys and values from *values* and sanitise the rest."""

    normalised: Dict[str, Any] = {}
    for key, raw_value in (values or {}).items():
        if key is None or key == "":
            continue
        value = sanitize_context_value(raw_value)
        if value is None or value == "" or value == {}:
            continue
        normalised[str(key)] = value
    return normalised


def emit_structured_event(
    event_type: EventType | str,
    message: str,
    *,
    payload: Optional[Mapping[str, Any]] = None,
    context: Optional[Mapping[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: EventLogger = DEFAULT_EVENT_LOGGER,
) -> None:
    label = event_type.value if isinstance(event_type, EventType) else str(event_type or "")
    text = str(message).strip()
    event_context = normalize_context(context)
    event_payload = normalize_context(payload)

    line = f"[{label}] {text}" if label else text
    details = {**event_context, **event_payload}
    if details:
        line += " (" + ", ".join(f"{key}={value}" for key, value in details.items()) + ")"

    extra: Dict[str, Any] = {"event": text, "event_type": label}
    if event_context:
        extra["event_context"] = event_context
    if event_payload:
        extra["event_payload"] = event_payload
    if duration_ms is not None:
        extra["event_duration_ms"] = round(float(duration_ms), 3)
    logger.log(level, line, extra=extra)


def emit_job_event(
    code: str,
    message: str,
    *,
    payload: Optional[Mapping[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: EventLogger = DEFAULT_EVENT_LOGGER,
) -> None:
    """Record a status change or other lifecycle step of job *code*."""

    emit_structured_event(
        EventType.JOB_STATE,
        message,
        payload=payload,
        context={"code": code},
        duration_ms=duration_ms,
        level=level,
        logger=logger,
    )


def emit_provider_event(
    code: str,
    message: str,
    *,
    payload: Optional[Mapping[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: EventLogger = DEFAULT_EVENT_LOGGER,
) -> None:
    """Record a finished transcription or generation call made for job *code*."""

    emit_structured_event(
        EventType.PROVIDER_CALL,
        message,
        payload=payload,
        context={"code": code} if code else None,
        duration_ms=duration_ms,
        level=level,
        logger=logger,
    )


def emit_file_event(
    operation: str,
    *,
    payload: Optional[Mapping[str, Any]] = None,
    context: Optional[Mapping[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: EventLogger = DEFAULT_EVENT_LOGGER,
) -> None:
    emit_structured_event(
        EventType.FILE_OP,
        operation,
        payload=payload,
        context=context,
        duration_ms=duration_ms,
        level=level,
        logger=logger,
    )


__all__ = [
    "DEFAULT_EVENT_LOGGER",
    "EventType",
    "emit_file_event",
    "emit_job_event",
    "emit_provider_event",
    "emit_structured_event",
    "normalize_context",
    "sanitize_context_value",
]
