"""Configuration loading utilities for the Lecture to Slide service."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Literal, Mapping, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".lecture_to_slide_write_check"
_ENV_PREFIX = "LECTURE_TO_SLIDE_"

GenerationMode = Literal["pptx", "slides"]
TranscriptionBackend = Literal["openai", "faster-whisper"]

GENERATION_MODES: Tuple[str, ...] = ("pptx", "slides")
TRANSCRIPTION_BACKENDS: Tuple[str, ...] = ("openai", "faster-whisper")

DEFAULTS: Dict[str, Any] = {
    "storage_root": "storage",
    "upload_dir": "uploads",
    "output_dir": "outputs",
    "generation_mode": "pptx",
    "generation_model": "claude-sonnet-4-5-20250929",
    "max_tokens": 8192,
    "max_turns": 15,
    "provider_timeout_seconds": 300.0,
    "slide_count": 5,
    "transcription_backend": "openai",
    "transcription_model": "whisper-1",
    "whisper_model": "base",
}


class ConfigError(ValueError):
    """Raised when the configuration contains unusable values."""


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins. When nothing can be prepared the
    original ``preferred`` path is returned so that the bootstrap step can
    report the problem.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _coerce_choice(value: Any, *, name: str, options: Tuple[str, ...]) -> str:
    normalized = str(value).strip().lower()
    if normalized not in options:
        raise ConfigError(f"{name} must be one of {', '.join(options)}; got '{value}'")
    return normalized


def _coerce_positive_int(value: Any, *, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as error:
        raise ConfigError(f"{name} must be an integer; got '{value}'") from error
    if number <= 0:
        raise ConfigError(f"{name} must be positive; got {number}")
    return number


def _coerce_timeout(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as error:
        raise ConfigError(f"provider_timeout_seconds must be a number; got '{value}'") from error
    return max(number, 0.0)


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings for the service.

    A ``provider_timeout_seconds`` of ``0`` disables the per-call timeout.
    """

    storage_root: Path
    upload_root: Path
    output_root: Path
    generation_mode: GenerationMode = "pptx"
    generation_model: str = DEFAULTS["generation_model"]
    max_tokens: int = DEFAULTS["max_tokens"]
    max_turns: int = DEFAULTS["max_turns"]
    provider_timeout_seconds: float = DEFAULTS["provider_timeout_seconds"]
    slide_count: int = DEFAULTS["slide_count"]
    transcription_backend: TranscriptionBackend = "openai"
    transcription_model: str = DEFAULTS["transcription_model"]
    whisper_model: str = DEFAULTS["whisper_model"]

    @property
    def is_binary_mode(self) -> bool:
        """``True`` when jobs produce a ``.pptx`` file instead of slide JSON."""

        return self.generation_mode == "pptx"

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], *, base_path: Path) -> "AppConfig":
        values: Dict[str, Any] = {**DEFAULTS, **mapping}

        preferred_storage = (base_path / values["storage_root"]).resolve()
        storage_fallback = Path.home() / ".lecture_to_slide" / "storage"
        storage_root, _ = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(storage_fallback,),
        )

        upload_root, _ = _select_writable_directory(
            storage_root / values["upload_dir"],
            label="upload",
        )
        output_root, _ = _select_writable_directory(
            storage_root / values["output_dir"],
            label="output",
        )

        return cls(
            storage_root=storage_root,
            upload_root=upload_root,
            output_root=output_root,
            generation_mode=_coerce_choice(  # type: ignore[arg-type]
                values["generation_mode"], name="generation_mode", options=GENERATION_MODES
            ),
            generation_model=str(values["generation_model"]),
            max_tokens=_coerce_positive_int(values["max_tokens"], name="max_tokens"),
            max_turns=_coerce_positive_int(values["max_turns"], name="max_turns"),
            provider_timeout_seconds=_coerce_timeout(values["provider_timeout_seconds"]),
            slide_count=_coerce_positive_int(values["slide_count"], name="slide_count"),
            transcription_backend=_coerce_choice(  # type: ignore[arg-type]
                values["transcription_backend"],
                name="transcription_backend",
                options=TRANSCRIPTION_BACKENDS,
            ),
            transcription_model=str(values["transcription_model"]),
            whisper_model=str(values["whisper_model"]),
        )


def _environment_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for key in DEFAULTS:
        raw = environ.get(f"{_ENV_PREFIX}{key.upper()}")
        if raw is None or not raw.strip():
            continue
        overrides[key] = raw.strip()
    return overrides


def load_config(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load the configuration from ``config/default.json`` plus environment overrides."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    raw_config: Dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as config_file:
            raw_config = json.load(config_file)
    else:
        LOGGER.warning("Configuration file %s not found; using defaults", config_path)

    raw_config.update(_environment_overrides(os.environ if environ is None else environ))
    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "ConfigError", "GenerationMode", "TranscriptionBackend", "load_config"]
