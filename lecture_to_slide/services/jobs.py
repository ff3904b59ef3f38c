"""In-memory job records keyed by six-digit join codes."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from ..processing.errors import ErrorKind
from ..processing.slides import SlideDeck
from .events import emit_job_event
from .progress import READY_PERCENT, SUBMITTED_PERCENT, clamp_percent


LOGGER = logging.getLogger(__name__)


class JobStatus(str, Enum):
    SUBMITTED = "submitted"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    READY = "ready"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.READY, JobStatus.ERROR)


_STATUS_RANK: Dict[JobStatus, int] = {
    JobStatus.SUBMITTED: 0,
    JobStatus.TRANSCRIBING: 1,
    JobStatus.GENERATING: 2,
    JobStatus.READY: 3,
}

Artifact = Union[Path, SlideDeck]


@dataclass
class JobRecord:
    """State of one generation request."""

    code: str
    status: JobStatus = JobStatus.SUBMITTED
    percent: int = 0
    notes: Optional[str] = None
    transcript: Optional[str] = None
    output_path: Optional[Path] = None
    slide_deck: Optional[SlideDeck] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def ready(self) -> bool:
        return self.status is JobStatus.READY

    def status_payload(self) -> Dict[str, Any]:
        """Return the polling payload for this record."""

        payload: Dict[str, Any] = {
            "ready": self.ready,
            "status": self.status.value,
            "percent": self.percent,
        }
        if self.error:
            payload["error"] = self.error
        return payload


class JobStore(Protocol):
    """Storage seam used by the pipeline and the HTTP layer."""

    def create(self, code: str, notes: Optional[str] = None) -> JobRecord:
        """Insert a fresh record for *code*, replacing any previous one."""

    def get(self, code: str) -> Optional[JobRecord]:
        """Return a snapshot of the record for *code* or ``None``."""

    def codes(self) -> List[str]:
        """Return the codes currently known to the store."""

    def set_status(self, code: str, status: JobStatus, percent: Optional[int] = None) -> None:
        """Advance *code* to *status*; regressions are ignored."""

    def set_transcript(self, code: str, transcript: str) -> None:
        """Attach the transcript text to *code*."""

    def set_result(self, code: str, artifact: Artifact) -> None:
        """Store the artifact for *code* and mark it ready."""

    def set_error(self, code: str, detail: str, kind: ErrorKind = ErrorKind.INTERNAL) -> None:
        """Mark *code* as failed with *detail*."""


class InMemoryJobStore:
    """Thread-safe dictionary backed :class:`JobStore`.

    Records live for the lifetime of the process. Every mutation is a no-op
    once a record reached a terminal status.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, JobRecord] = {}

    def __contains__(self, code: object) -> bool:
        with self._lock:
            return code in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def create(self, code: str, notes: Optional[str] = None) -> JobRecord:
        record = JobRecord(code=code, notes=notes, percent=SUBMITTED_PERCENT)
        with self._lock:
            replaced = code in self._records
            self._records[code] = record
            snapshot = dataclasses.replace(record)
        if replaced:
            LOGGER.warning("Join code %s collided with an existing job; replacing it", code)
        emit_job_event(code, "Job created", payload={"status": record.status, "percent": record.percent})
        return snapshot

    def get(self, code: str) -> Optional[JobRecord]:
        with self._lock:
            record = self._records.get(code)
            return dataclasses.replace(record) if record is not None else None

    def codes(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def _mutable(self, code: str, action: str) -> Optional[JobRecord]:
        record = self._records.get(code)
        if record is None:
            LOGGER.warning("Ignoring %s for unknown job %s", action, code)
            return None
        if record.status.is_terminal:
            LOGGER.debug("Ignoring %s for job %s in terminal status %s", action, code, record.status.value)
            return None
        return record

    def set_status(self, code: str, status: JobStatus, percent: Optional[int] = None) -> None:
        status = JobStatus(status)
        if status is JobStatus.ERROR:
            self.set_error(code, "Job failed")
            return
        if status is JobStatus.READY:
            raise ValueError("Use set_result() to mark a job ready")

        with self._lock:
            record = self._mutable(code, f"status '{status.value}'")
            if record is None:
                return
            if _STATUS_RANK[status] < _STATUS_RANK[record.status]:
                LOGGER.debug(
                    "Ignoring status regression for job %s: %s -> %s",
                    code,
                    record.status.value,
                    status.value,
                )
                return
            record.status = status
            if percent is not None:
                record.percent = max(record.percent, clamp_percent(percent))
            record.updated_at = time.time()
            current_percent = record.percent
        emit_job_event(code, "Job progressed", payload={"status": status, "percent": current_percent})

    def set_transcript(self, code: str, transcript: str) -> None:
        with self._lock:
            record = self._mutable(code, "transcript")
            if record is None:
                return
            record.transcript = transcript
            record.updated_at = time.time()

    def set_result(self, code: str, artifact: Artifact) -> None:
        with self._lock:
            record = self._mutable(code, "result")
            if record is None:
                return
            if isinstance(artifact, SlideDeck):
                record.slide_deck = artifact
            else:
                record.output_path = Path(artifact)
            record.status = JobStatus.READY
            record.percent = READY_PERCENT
            record.updated_at = time.time()
        emit_job_event(code, "Job ready", payload={"status": JobStatus.READY, "percent": READY_PERCENT})

    def set_error(self, code: str, detail: str, kind: ErrorKind = ErrorKind.INTERNAL) -> None:
        with self._lock:
            record = self._mutable(code, "error")
            if record is None:
                return
            record.status = JobStatus.ERROR
            record.error = detail
            record.error_kind = ErrorKind(kind)
            record.updated_at = time.time()
        emit_job_event(
            code,
            "Job failed",
            payload={"status": JobStatus.ERROR, "kind": ErrorKind(kind), "error": detail},
            level=logging.WARNING,
        )


__all__ = ["Artifact", "InMemoryJobStore", "JobRecord", "JobStatus", "JobStore"]
