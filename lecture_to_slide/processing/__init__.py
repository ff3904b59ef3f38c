"""Processing backends for lecture transcription and slide generation."""

from .errors import (
    ArtifactMissingError,
    EmptyGenerationError,
    ErrorKind,
    GenerationError,
    GenerationProviderError,
    SlideParseError,
    TranscriptionError,
)
from .extraction import ProviderResponse, collect_text, find_file_id, response_from_message
from .slides import Slide, SlideDeck, parse_slide_deck
from .transcription import (
    NO_AUDIO_TEXT,
    TRANSCRIPTION_FALLBACK_TEXT,
    TranscriptionAdapter,
    TranscriptionEngine,
)

__all__ = [
    "ArtifactMissingError",
    "EmptyGenerationError",
    "ErrorKind",
    "GenerationError",
    "GenerationProviderError",
    "NO_AUDIO_TEXT",
    "ProviderResponse",
    "Slide",
    "SlideDeck",
    "SlideParseError",
    "TRANSCRIPTION_FALLBACK_TEXT",
    "TranscriptionAdapter",
    "TranscriptionEngine",
    "TranscriptionError",
    "collect_text",
    "find_file_id",
    "parse_slide_deck",
    "response_from_message",
]
