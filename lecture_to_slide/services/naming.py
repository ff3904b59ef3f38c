"""Helpers for join codes and artifact file names."""

from __future__ import annotations

import re
import secrets
from typing import Container, Optional

__all__ = [
    "JOIN_CODE_PATTERN",
    "build_presentation_name",
    "build_upload_name",
    "is_join_code",
    "new_join_code",
]


JOIN_CODE_PATTERN = re.compile(r"^\d{6}$")
_JOIN_CODE_ATTEMPTS = 20
_SUFFIX_PATTERN = re.compile(r"^\.[a-z0-9]{1,8}$")


def new_join_code(taken: Optional[Container[str]] = None) -> str:
    """Return a random six-digit join code.

    Codes already present in *taken* are skipped for a bounded number of
    draws; after that a colliding code is returned and the caller's record
    silently replaces the older one.
    """

    code = _draw_code()
    if taken is None:
        return code
    for _ in range(_JOIN_CODE_ATTEMPTS):
        if code not in taken:
            break
        code = _draw_code()
    return code


def _draw_code() -> str:
    return str(100_000 + secrets.randbelow(900_000))


def is_join_code(value: str) -> bool:
    """Return ``True`` when *value* looks like a six-digit join code."""

    return bool(JOIN_CODE_PATTERN.match(value or ""))


def build_presentation_name(code: str) -> str:
    """Return the deterministic output file name for job *code*."""

    return f"presentation_{code}.pptx"


def build_upload_name(code: str, suffix: Optional[str] = None, *, default: str = ".m4a") -> str:
    """Return the temporary upload name for *code* keeping a safe audio *suffix*."""

    cleaned = (suffix or "").strip().lower()
    if cleaned and not cleaned.startswith("."):
        cleaned = f".{cleaned}"
    if not _SUFFIX_PATTERN.match(cleaned):
        cleaned = default
    return f"upload_{code}{cleaned}"
