"""Exception hierarchy for transcription and generation failures."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classifies why a job ended in the ``error`` state."""

    PROVIDER = "provider"
    PARSE = "parse"
    NO_CONTENT = "no_content"
    NO_ARTIFACT = "no_artifact"
    INTERNAL = "internal"


class LectureToSlideError(RuntimeError):
    """Base class for errors raised by the processing pipeline."""


class TranscriptionError(LectureToSlideError):
    """Raised by transcription engines when the provider rejects a request."""


class GenerationError(LectureToSlideError):
    """Base class for errors that end a generation job."""

    kind: ErrorKind = ErrorKind.INTERNAL


class GenerationProviderError(GenerationError):
    """Raised when a call to the generation provider fails in transport."""

    kind = ErrorKind.PROVIDER


class SlideParseError(GenerationError):
    """Raised when the provider reply cannot be parsed into slides."""

    kind = ErrorKind.PARSE


class EmptyGenerationError(GenerationError):
    """Raised when the provider reply carries no usable text."""

    kind = ErrorKind.NO_CONTENT


class ArtifactMissingError(GenerationError):
    """Raised when the conversation ends without producing an artifact."""

    kind = ErrorKind.NO_ARTIFACT


__all__ = [
    "ArtifactMissingError",
    "EmptyGenerationError",
    "ErrorKind",
    "GenerationError",
    "GenerationProviderError",
    "LectureToSlideError",
    "SlideParseError",
    "TranscriptionError",
]
