"""Persistence and lookup of finished job artifacts."""

from __future__ import annotations

import contextlib
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..processing.slides import SlideDeck
from .events import emit_file_event
from .jobs import JobRecord
from .naming import build_presentation_name


LOGGER = logging.getLogger(__name__)

PPTX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"


@dataclass(frozen=True)
class DeliveredArtifact:
    """A ready artifact: exactly one of ``path`` or ``slide_deck`` is set."""

    code: str
    path: Optional[Path] = None
    slide_deck: Optional[SlideDeck] = None

    @property
    def filename(self) -> str:
        return build_presentation_name(self.code)

    @property
    def media_type(self) -> str:
        return PPTX_MEDIA_TYPE if self.path is not None else "application/json"


class ResultDelivery:
    """Writes generated presentations under ``output_root`` and finds them again."""

    def __init__(self, output_root: Path) -> None:
        self._output_root = output_root

    @property
    def output_root(self) -> Path:
        return self._output_root

    def output_path(self, code: str) -> Path:
        return self._output_root / build_presentation_name(code)

    def write(self, code: str, data: bytes) -> Path:
        """Store *data* as the presentation for *code* and return its path."""

        start = time.perf_counter()
        target = self.output_path(code)
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(f".{target.name}.partial")
        try:
            partial.write_bytes(data)
            os.replace(partial, target)
        except BaseException:
            with contextlib.suppress(OSError):
                partial.unlink(missing_ok=True)
            raise
        emit_file_event(
            "Stored presentation",
            payload={"path": target, "bytes": len(data)},
            context={"code": code},
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        return target

    def resolve(self, record: Optional[JobRecord]) -> Optional[DeliveredArtifact]:
        """Return the artifact for *record*, or ``None`` when it cannot be served.

        Unknown jobs, jobs that are not ready yet and ready jobs whose file has
        disappeared all resolve to ``None``.
        """

        if record is None or not record.ready:
            return None
        if record.slide_deck is not None:
            return DeliveredArtifact(code=record.code, slide_deck=record.slide_deck)
        if record.output_path is None:
            return None
        if not record.output_path.is_file():
            LOGGER.warning("Presentation for job %s is missing at %s", record.code, record.output_path)
            return None
        return DeliveredArtifact(code=record.code, path=record.output_path)


__all__ = ["DeliveredArtifact", "PPTX_MEDIA_TYPE", "ResultDelivery"]
