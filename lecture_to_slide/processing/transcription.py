"""Speech-to-text adapters for uploaded lecture audio."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import time
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

import openai
from openai import AsyncOpenAI

from .errors import TranscriptionError
from ..services.events import emit_file_event, emit_provider_event


LOGGER = logging.getLogger(__name__)

TRANSCRIPTION_FALLBACK_TEXT = "Transcription unavailable."
NO_AUDIO_TEXT = "No audio recorded."
DEFAULT_ENCODING_HINT = ".m4a"


class TranscriptionEngine(Protocol):
    """Protocol describing a transcription backend."""

    async def transcribe(self, audio_path: Path, *, encoding_hint: str = DEFAULT_ENCODING_HINT) -> str:
        """Return the transcript text for *audio_path*."""


def _normalize_hint(encoding_hint: Optional[str]) -> str:
    hint = (encoding_hint or DEFAULT_ENCODING_HINT).strip().lower()
    if not hint.startswith("."):
        hint = f".{hint}"
    return hint


class OpenAIWhisperTranscription:
    """Transcription engine backed by the OpenAI audio API."""

    def __init__(self, model: str = "whisper-1", *, client: Any = None) -> None:
        self._client = client
        self._model = model

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    async def transcribe(self, audio_path: Path, *, encoding_hint: str = DEFAULT_ENCODING_HINT) -> str:
        # The API infers the container from the file name, so the upload is
        # always named with the hinted suffix.
        filename = f"recording{_normalize_hint(encoding_hint)}"
        data = await asyncio.get_running_loop().run_in_executor(None, audio_path.read_bytes)
        LOGGER.debug("Sending %d bytes to OpenAI transcription as %s", len(data), filename)
        try:
            result = await self._get_client().audio.transcriptions.create(
                file=(filename, data),
                model=self._model,
            )
        except openai.APIError as error:
            raise TranscriptionError(f"OpenAI transcription failed: {error}") from error
        return str(getattr(result, "text", "") or "")


class FasterWhisperTranscription:
    """Local transcription engine backed by :mod:`faster_whisper`."""

    def __init__(
        self,
        model_size: str = "base",
        *,
        download_root: Optional[Path] = None,
        compute_type: str = "int8",
        beam_size: int = 5,
    ) -> None:
        try:
            from faster_whisper import WhisperModel
        except ImportError as exc:  # pragma: no cover - exercised at runtime, not tests
            raise RuntimeError("faster-whisper is not installed; install the 'local' extra") from exc

        self._beam_size = beam_size
        download_directory = str(download_root) if download_root is not None else None
        self._model = WhisperModel(
            model_size,
            device="cpu",
            compute_type=compute_type,
            download_root=download_directory,
        )
        LOGGER.debug(
            "Loaded faster_whisper model '%s' (compute_type=%s, download_root=%s)",
            model_size,
            compute_type,
            download_directory,
        )

    def _transcribe_sync(self, audio_path: Path) -> str:
        segments, info = self._model.transcribe(str(audio_path), beam_size=self._beam_size)
        lines = [segment.text.strip() for segment in segments if segment.text.strip()]
        LOGGER.debug(
            "faster_whisper produced %d segment(s) for %.1fs of audio",
            len(lines),
            float(getattr(info, "duration", 0.0) or 0.0),
        )
        return "\n".join(lines)

    async def transcribe(self, audio_path: Path, *, encoding_hint: str = DEFAULT_ENCODING_HINT) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(self._transcribe_sync, audio_path))
        except (RuntimeError, ValueError, OSError) as error:
            raise TranscriptionError(f"faster-whisper transcription failed: {error}") from error


@contextlib.contextmanager
def consume_audio_file(audio_path: Path) -> Iterator[Path]:
    """Yield *audio_path* and delete it when the scope exits, however it exits."""

    try:
        yield audio_path
    finally:
        try:
            audio_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as error:
            LOGGER.warning("Could not remove temporary audio %s: %s", audio_path, error)
        else:
            emit_file_event("Removed temporary audio", payload={"path": audio_path}, level=logging.DEBUG)


class TranscriptionAdapter:
    """Turns an uploaded audio file into text without ever raising.

    Provider rejections, timeouts and engine failures all collapse into
    :data:`TRANSCRIPTION_FALLBACK_TEXT` so that generation can still proceed.
    The audio file is consumed: it is removed once transcription finishes.
    """

    def __init__(self, engine: TranscriptionEngine, *, timeout_seconds: Optional[float] = None) -> None:
        self._engine = engine
        self._timeout = timeout_seconds if timeout_seconds else None

    async def transcribe(
        self,
        audio_path: Path,
        *,
        encoding_hint: Optional[str] = None,
        code: str = "",
    ) -> str:
        hint = _normalize_hint(encoding_hint or audio_path.suffix)
        start = time.perf_counter()
        with consume_audio_file(audio_path) as source:
            try:
                text = await asyncio.wait_for(
                    self._engine.transcribe(source, encoding_hint=hint),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                LOGGER.warning("Transcription of %s timed out after %ss", source, self._timeout)
                return TRANSCRIPTION_FALLBACK_TEXT
            except asyncio.CancelledError:
                raise
            except Exception as error:  # noqa: BLE001 - provider failures never reach the caller
                LOGGER.warning("Transcription of %s failed: %s", source, error)
                return TRANSCRIPTION_FALLBACK_TEXT

        duration_ms = (time.perf_counter() - start) * 1000.0
        cleaned = (text or "").strip()
        emit_provider_event(
            code,
            "Transcription finished",
            payload={"characters": len(cleaned), "encoding": hint},
            duration_ms=duration_ms,
        )
        return cleaned or TRANSCRIPTION_FALLBACK_TEXT


def build_transcription_engine(config: Any) -> TranscriptionEngine:
    """Return the engine selected by ``config.transcription_backend``."""

    backend = getattr(config, "transcription_backend", "openai")
    if backend == "faster-whisper":
        return FasterWhisperTranscription(getattr(config, "whisper_model", "base"))
    return OpenAIWhisperTranscription(getattr(config, "transcription_model", "whisper-1"))


__all__ = [
    "DEFAULT_ENCODING_HINT",
    "FasterWhisperTranscription",
    "NO_AUDIO_TEXT",
    "OpenAIWhisperTranscription",
    "TRANSCRIPTION_FALLBACK_TEXT",
    "TranscriptionAdapter",
    "TranscriptionEngine",
    "build_transcription_engine",
    "consume_audio_file",
]
