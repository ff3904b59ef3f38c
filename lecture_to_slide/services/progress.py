"""Utilities for reporting deterministic progress percentages."""

from __future__ import annotations

from typing import Optional


# Fixed checkpoints surfaced to polling clients. The values only need to be
# monotonic; they carry no meaning beyond UI feedback.
SUBMITTED_PERCENT = 5
TRANSCRIBING_PERCENT = 10
GENERATING_PERCENT = 40
TOOL_TURN_PERCENT = 70
TOOL_TURN_STEP = 2
TOOL_TURN_CEILING = 95
READY_PERCENT = 100


def clamp_percent(value: Optional[float]) -> int:
    """Return *value* rounded and clamped to the inclusive range ``[0, 100]``."""

    if value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(round(max(0.0, min(number, 100.0))))


def tool_turn_percent(turn: int) -> int:
    """Return the percentage to report once tool turn *turn* has completed.

    The first completed turn lands on :data:`TOOL_TURN_PERCENT`; later turns
    creep forward by :data:`TOOL_TURN_STEP` without reaching 100 before the
    artifact is stored.
    """

    completed = max(turn - 1, 0)
    return min(TOOL_TURN_PERCENT + completed * TOOL_TURN_STEP, TOOL_TURN_CEILING)


__all__ = [
    "GENERATING_PERCENT",
    "READY_PERCENT",
    "SUBMITTED_PERCENT",
    "TOOL_TURN_PERCENT",
    "TRANSCRIBING_PERCENT",
    "clamp_percent",
    "tool_turn_percent",
]
