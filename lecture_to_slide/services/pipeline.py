"""Background job pipeline: transcription followed by generation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Any, Optional, Set

from ..processing.errors import ErrorKind
from ..processing.generation import GenerationSession, build_artifact_strategy
from ..processing.providers import GenerationProvider, build_generation_provider
from ..processing.transcription import (
    NO_AUDIO_TEXT,
    TranscriptionAdapter,
    TranscriptionEngine,
    build_transcription_engine,
)
from .delivery import ResultDelivery
from .events import emit_job_event
from .jobs import Artifact, JobStatus, JobStore
from .progress import TRANSCRIBING_PERCENT


LOGGER = logging.getLogger(__name__)


class JobPipeline:
    """Runs each submitted job as its own asyncio task.

    Every task has an error boundary: whatever escapes the transcription and
    generation steps is written to the job record instead of propagating.
    """

    def __init__(
        self,
        store: JobStore,
        transcriber: TranscriptionAdapter,
        session: GenerationSession,
    ) -> None:
        self._store = store
        self._transcriber = transcriber
        self._session = session
        self._tasks: Set[asyncio.Task[None]] = set()

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def process(
        self,
        code: str,
        *,
        audio_path: Optional[Path] = None,
        encoding_hint: Optional[str] = None,
        notes: Optional[str] = None,
        transcript: Optional[str] = None,
    ) -> Optional[Artifact]:
        """Run the whole job for *code* in the current task."""

        self._store.set_status(code, JobStatus.TRANSCRIBING, TRANSCRIBING_PERCENT)
        if audio_path is not None:
            text = await self._transcriber.transcribe(audio_path, encoding_hint=encoding_hint, code=code)
        elif transcript and transcript.strip():
            text = transcript.strip()
        else:
            text = NO_AUDIO_TEXT
        self._store.set_transcript(code, text)
        return await self._session.run(code, text, notes)

    async def _guarded(self, code: str, **kwargs: Any) -> None:
        audio_path: Optional[Path] = kwargs.get("audio_path")
        try:
            await self.process(code, **kwargs)
        except asyncio.CancelledError:
            self._store.set_error(code, "Job cancelled before completion", ErrorKind.INTERNAL)
            raise
        except Exception as error:  # noqa: BLE001 - task error boundary
            LOGGER.exception("Background job %s crashed", code)
            self._store.set_error(code, f"Unexpected error: {error}", ErrorKind.INTERNAL)
        finally:
            if audio_path is not None:
                with contextlib.suppress(OSError):
                    audio_path.unlink(missing_ok=True)

    def submit(
        self,
        code: str,
        *,
        audio_path: Optional[Path] = None,
        encoding_hint: Optional[str] = None,
        notes: Optional[str] = None,
        transcript: Optional[str] = None,
    ) -> asyncio.Task[None]:
        """Start the job for *code* in the background and return its task."""

        task = asyncio.create_task(
            self._guarded(
                code,
                audio_path=audio_path,
                encoding_hint=encoding_hint,
                notes=notes,
                transcript=transcript,
            ),
            name=f"job-{code}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        emit_job_event(code, "Job scheduled", payload={"audio": audio_path is not None}, level=logging.DEBUG)
        return task

    async def shutdown(self) -> None:
        """Cancel outstanding jobs and wait for them to settle."""

        tasks = [task for task in self._tasks if not task.done()]
        if not tasks:
            return
        LOGGER.info("Cancelling %d outstanding job(s)", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


def build_pipeline(
    config: Any,
    store: JobStore,
    *,
    delivery: Optional[ResultDelivery] = None,
    transcription_engine: Optional[TranscriptionEngine] = None,
    provider: Optional[GenerationProvider] = None,
) -> JobPipeline:
    """Assemble a :class:`JobPipeline` from *config*, building real clients by default."""

    delivery = delivery or ResultDelivery(config.output_root)
    engine = transcription_engine or build_transcription_engine(config)
    transcriber = TranscriptionAdapter(engine, timeout_seconds=config.provider_timeout_seconds)
    session = GenerationSession(
        provider or build_generation_provider(config),
        build_artifact_strategy(config, delivery),
        store,
        max_turns=config.max_turns,
        timeout_seconds=config.provider_timeout_seconds,
        slide_count=config.slide_count,
    )
    return JobPipeline(store, transcriber, session)


__all__ = ["JobPipeline", "build_pipeline"]
