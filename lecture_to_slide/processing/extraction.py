"""Locate generated artifacts inside provider responses.

Provider replies are trees of loosely typed content blocks. They are first
normalised into a handful of tagged variants and then searched with a
bounded recursive descent. Traversal follows block insertion order and the
first match wins, so repeated identifiers are harmless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union


LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 8

_TOOL_USE_TYPES = frozenset({"tool_use", "server_tool_use"})


@dataclass(frozen=True)
class TextBlock:
    text: str
    type: str = "text"


@dataclass(frozen=True)
class ToolUseBlock:
    name: str
    id: Optional[str] = None
    type: str = "tool_use"


@dataclass(frozen=True)
class FileBlock:
    """Any block that carries an opaque provider file identifier."""

    file_id: str
    type: str = "file"


@dataclass(frozen=True)
class ToolResultBlock:
    """Result of a tool or code-execution call, wrapping nested content."""

    type: str
    content: Tuple["Block", ...] = ()


@dataclass(frozen=True)
class UnknownBlock:
    type: str
    content: Tuple["Block", ...] = ()


Block = Union[TextBlock, ToolUseBlock, FileBlock, ToolResultBlock, UnknownBlock]


@dataclass
class ProviderResponse:
    """One provider turn reduced to what the session driver needs.

    ``raw_content`` keeps the provider's own content objects so the assistant
    turn can be replayed verbatim on the next request.
    """

    blocks: Tuple[Block, ...]
    stop_reason: Optional[str] = None
    container_id: Optional[str] = None
    raw_content: List[Any] = field(default_factory=list)


def _as_mapping(raw: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(raw, Mapping):
        return raw
    dump = getattr(raw, "model_dump", None)
    if callable(dump):
        dumped = dump()
        if isinstance(dumped, Mapping):
            return dumped
    return None


def _is_result_type(block_type: str) -> bool:
    return block_type.endswith("_result")


def _children(value: Any) -> Iterable[Any]:
    if value is None or isinstance(value, (str, bytes)):
        return ()
    if isinstance(value, Sequence):
        return value
    return (value,)


def normalize_block(raw: Any, *, depth: int = 0, max_depth: int = DEFAULT_MAX_DEPTH) -> Block:
    """Convert one raw provider block (SDK model or dict) into a tagged variant."""

    mapping = _as_mapping(raw)
    if mapping is None:
        return UnknownBlock(type=type(raw).__name__)

    block_type = str(mapping.get("type") or "")
    file_id = mapping.get("file_id")
    if isinstance(file_id, str) and file_id:
        return FileBlock(file_id=file_id, type=block_type or "file")
    if block_type == "text":
        return TextBlock(text=str(mapping.get("text") or ""))
    if block_type in _TOOL_USE_TYPES:
        return ToolUseBlock(name=str(mapping.get("name") or ""), id=mapping.get("id"), type=block_type)

    nested: Tuple[Block, ...] = ()
    if depth + 1 < max_depth:
        nested = tuple(
            normalize_block(child, depth=depth + 1, max_depth=max_depth)
            for child in _children(mapping.get("content"))
        )
    if _is_result_type(block_type):
        return ToolResultBlock(type=block_type, content=nested)
    return UnknownBlock(type=block_type or "unknown", content=nested)


def normalize_blocks(raw_blocks: Iterable[Any], *, max_depth: int = DEFAULT_MAX_DEPTH) -> Tuple[Block, ...]:
    return tuple(normalize_block(raw, max_depth=max_depth) for raw in raw_blocks or ())


def _walk_file_ids(
    blocks: Sequence[Block],
    *,
    inside_result: bool,
    depth: int,
    max_depth: int,
) -> Iterator[str]:
    if depth >= max_depth:
        return
    for block in blocks:
        if isinstance(block, FileBlock):
            if inside_result:
                yield block.file_id
        elif isinstance(block, ToolResultBlock):
            yield from _walk_file_ids(
                block.content, inside_result=True, depth=depth + 1, max_depth=max_depth
            )
        elif isinstance(block, UnknownBlock):
            yield from _walk_file_ids(
                block.content, inside_result=inside_result, depth=depth + 1, max_depth=max_depth
            )


def find_file_id(response: ProviderResponse, *, max_depth: int = DEFAULT_MAX_DEPTH) -> Optional[str]:
    """Return the first file identifier nested inside a tool result, if any."""

    for file_id in _walk_file_ids(response.blocks, inside_result=False, depth=0, max_depth=max_depth):
        LOGGER.debug("Found generated file id %s", file_id)
        return file_id
    return None


def collect_text(response: ProviderResponse) -> str:
    """Return the concatenated top-level text blocks of *response*."""

    parts = [block.text for block in response.blocks if isinstance(block, TextBlock) and block.text]
    return "\n".join(parts).strip()


def response_from_message(message: Any, *, max_depth: int = DEFAULT_MAX_DEPTH) -> ProviderResponse:
    """Build a :class:`ProviderResponse` from an SDK message object or a dict."""

    mapping = message if isinstance(message, Mapping) else None
    if mapping is not None:
        raw_content = list(mapping.get("content") or [])
        stop_reason = mapping.get("stop_reason")
        container = mapping.get("container")
    else:
        raw_content = list(getattr(message, "content", None) or [])
        stop_reason = getattr(message, "stop_reason", None)
        container = getattr(message, "container", None)

    container_id: Optional[str] = None
    if container is not None:
        container_mapping = _as_mapping(container)
        if container_mapping is not None:
            container_id = container_mapping.get("id")
        else:
            container_id = getattr(container, "id", None)

    return ProviderResponse(
        blocks=normalize_blocks(raw_content, max_depth=max_depth),
        stop_reason=stop_reason,
        container_id=container_id,
        raw_content=raw_content,
    )


__all__ = [
    "Block",
    "DEFAULT_MAX_DEPTH",
    "FileBlock",
    "ProviderResponse",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "UnknownBlock",
    "collect_text",
    "find_file_id",
    "normalize_block",
    "normalize_blocks",
    "response_from_message",
]
