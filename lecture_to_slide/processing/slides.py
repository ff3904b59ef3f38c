"""Slide models and parsing of the provider's slide JSON replies."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import EmptyGenerationError, SlideParseError


LOGGER = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)
_PREVIEW_LIMIT = 120


class Slide(BaseModel):
    """A single slide. Slides have no identity beyond their position."""

    title: str = ""
    bullets: List[str] = Field(default_factory=list)
    notes: str = ""
    layout: Optional[str] = None


class SlideDeck(BaseModel):
    """Ordered collection of slides."""

    slides: List[Slide] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.slides)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence from *text* if present."""

    trimmed = text.strip()
    match = _FENCE_PATTERN.match(trimmed)
    if match:
        return match.group(1).strip()
    return trimmed


def find_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span of *text*.

    Braces inside JSON string literals are ignored so that a title such as
    ``"Sets {a, b}"`` does not end the span early.
    """

    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _preview(text: str) -> str:
    collapsed = " ".join(text.split())
    return collapsed[:_PREVIEW_LIMIT] + ("…" if len(collapsed) > _PREVIEW_LIMIT else "")


def _bare_array(body: str) -> Optional[List[Any]]:
    # A leading "[" may be prose such as "[Slide deck below]".
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, list) else None


def parse_slide_deck(text: Optional[str]) -> SlideDeck:
    """Parse the provider reply *text* into a :class:`SlideDeck`.

    Raises :class:`EmptyGenerationError` for blank replies and
    :class:`SlideParseError` when no valid slide collection can be read.
    """

    if text is None or not text.strip():
        raise EmptyGenerationError("The generation provider returned no content")

    body = strip_code_fence(text)
    payload: Any = _bare_array(body) if body.startswith("[") else None
    if payload is None:
        if body.startswith("{"):
            candidate: Optional[str] = body
        else:
            candidate = find_json_object(body)
            if candidate is None:
                raise SlideParseError(f"No JSON object found in reply: {_preview(body)}")

        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError as error:
            raise SlideParseError(f"Invalid slide JSON ({error.msg} at position {error.pos})") from error

    if isinstance(payload, list):
        payload = {"slides": payload}
    if not isinstance(payload, dict) or not isinstance(payload.get("slides"), list):
        raise SlideParseError("Slide JSON must contain a 'slides' array")

    try:
        deck = SlideDeck.model_validate(payload)
    except ValidationError as error:
        raise SlideParseError(f"Slide JSON does not match the slide schema: {error.error_count()} error(s)") from error

    LOGGER.debug("Parsed %d slide(s) from provider reply", len(deck))
    return deck


__all__ = ["Slide", "SlideDeck", "find_json_object", "parse_slide_deck", "strip_code_fence"]
