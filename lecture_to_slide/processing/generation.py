"""Generation session driver.

A session sends the transcript to the generation provider and keeps the
conversation going while the provider reports tool work in progress. Turns
are strictly sequential and bounded by ``max_turns``; each provider call
counts as one turn. The artifact is either a presentation file downloaded
from the provider or a slide deck parsed from its reply, depending on the
configured strategy.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, List, Optional, Protocol

from .errors import (
    ArtifactMissingError,
    EmptyGenerationError,
    GenerationError,
    GenerationProviderError,
)
from .extraction import ProviderResponse, collect_text, find_file_id
from .providers import GenerationProvider, Message
from .slides import parse_slide_deck
from ..services.delivery import ResultDelivery
from ..services.events import emit_provider_event
from ..services.jobs import Artifact, JobStatus, JobStore
from ..services.progress import GENERATING_PERCENT, tool_turn_percent


LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 15
CONTINUE_STOP_REASONS = frozenset({"tool_use", "pause_turn"})


def build_generation_prompt(
    transcript: str,
    notes: Optional[str],
    *,
    slide_count: int = 5,
    binary: bool = True,
) -> str:
    """Return the initial user instruction combining *transcript* and *notes*."""

    instructions = (notes or "").strip() or "No special instructions."
    if binary:
        request = (
            f"Create a {slide_count}-slide PowerPoint presentation from this lecture "
            "using the pptx skill. Include speaker notes and save the result as a .pptx file."
        )
    else:
        request = (
            f"Create a {slide_count}-slide presentation outline from this lecture. "
            "Answer with the slide JSON only."
        )
    return f"TRANSCRIPT: {transcript.strip()}\nNOTES: {instructions}\n\n{request}"


class ArtifactStrategy(Protocol):
    """How a session recognises and materialises its artifact."""

    binary: bool

    def extract(self, response: ProviderResponse) -> Optional[str]:
        """Return the artifact reference carried by *response*, if any."""

    def missing(self, reason: str) -> GenerationError:
        """Return the error raised when no reference was produced."""

    async def finalize(self, code: str, reference: str, provider: GenerationProvider) -> Artifact:
        """Turn *reference* into the stored artifact."""


class PresentationFileStrategy:
    """Artifact is a ``.pptx`` file produced by the code-execution skill."""

    binary = True

    def __init__(self, delivery: ResultDelivery) -> None:
        self._delivery = delivery

    def extract(self, response: ProviderResponse) -> Optional[str]:
        return find_file_id(response)

    def missing(self, reason: str) -> GenerationError:
        return ArtifactMissingError(reason)

    async def finalize(self, code: str, reference: str, provider: GenerationProvider) -> Artifact:
        data = await provider.download(reference)
        if not data:
            raise ArtifactMissingError(f"Generated file {reference} was empty")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._delivery.write, code, data)


class SlideJsonStrategy:
    """Artifact is the slide deck parsed from the provider's text reply."""

    binary = False

    def extract(self, response: ProviderResponse) -> Optional[str]:
        return collect_text(response) or None

    def missing(self, reason: str) -> GenerationError:
        return EmptyGenerationError(f"The generation provider returned no content; {reason}")

    async def finalize(self, code: str, reference: str, provider: GenerationProvider) -> Artifact:
        return parse_slide_deck(reference)


class GenerationSession:
    """Drives one job's conversation with the generation provider."""

    def __init__(
        self,
        provider: GenerationProvider,
        strategy: ArtifactStrategy,
        store: JobStore,
        *,
        max_turns: int = DEFAULT_MAX_TURNS,
        timeout_seconds: Optional[float] = None,
        slide_count: int = 5,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._provider = provider
        self._strategy = strategy
        self._store = store
        self._max_turns = max_turns
        self._timeout = timeout_seconds if timeout_seconds else None
        self._slide_count = slide_count

    @property
    def max_turns(self) -> int:
        return self._max_turns

    async def run(self, code: str, transcript: str, notes: Optional[str] = None) -> Optional[Artifact]:
        """Generate the artifact for *code* and record the outcome in the store.

        Generation failures never propagate: they are logged and stored as the
        job's error. Returns the artifact on success, ``None`` otherwise.
        """

        self._store.set_status(code, JobStatus.GENERATING, GENERATING_PERCENT)
        try:
            artifact = await self._generate(code, transcript, notes)
        except GenerationError as error:
            LOGGER.warning("Generation for job %s failed (%s): %s", code, error.kind.value, error)
            self._store.set_error(code, str(error), error.kind)
            return None
        self._store.set_result(code, artifact)
        return artifact

    async def _call(self, code: str, turn: int, messages: List[Message], container_id: Optional[str]) -> ProviderResponse:
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._provider.create(list(messages), container_id=container_id),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as error:
            raise GenerationProviderError(f"Turn {turn} timed out after {self._timeout}s") from error
        emit_provider_event(
            code,
            "Generation turn finished",
            payload={"turn": turn, "stop_reason": response.stop_reason, "container": response.container_id},
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        return response

    async def _generate(self, code: str, transcript: str, notes: Optional[str]) -> Artifact:
        prompt = build_generation_prompt(
            transcript,
            notes,
            slide_count=self._slide_count,
            binary=self._strategy.binary,
        )
        messages: List[Message] = [{"role": "user", "content": prompt}]
        container_id: Optional[str] = None

        turns = 1
        response = await self._call(code, turns, messages, container_id)
        reference: Optional[str] = None

        while turns < self._max_turns:
            reference = self._strategy.extract(response)
            if reference:
                break
            if response.stop_reason not in CONTINUE_STOP_REASONS:
                break
            messages.append({"role": "assistant", "content": response.raw_content})
            if response.container_id:
                container_id = response.container_id
            self._store.set_status(code, JobStatus.GENERATING, tool_turn_percent(turns))
            turns += 1
            response = await self._call(code, turns, messages, container_id)

        if not reference:
            reference = self._strategy.extract(response)
        if not reference:
            if response.stop_reason in CONTINUE_STOP_REASONS:
                reason = f"turn budget of {self._max_turns} exhausted without an artifact"
            else:
                reason = f"generation stopped ({response.stop_reason or 'unknown'}) without producing an artifact"
            raise self._strategy.missing(reason)

        LOGGER.info("Job %s produced an artifact after %d turn(s)", code, turns)
        try:
            return await asyncio.wait_for(
                self._strategy.finalize(code, reference, self._provider),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as error:
            raise GenerationProviderError(f"Fetching artifact {reference} timed out") from error


def build_artifact_strategy(config: Any, delivery: ResultDelivery) -> ArtifactStrategy:
    """Return the strategy matching ``config.generation_mode``."""

    if getattr(config, "generation_mode", "pptx") == "slides":
        return SlideJsonStrategy()
    return PresentationFileStrategy(delivery)


__all__ = [
    "ArtifactStrategy",
    "CONTINUE_STOP_REASONS",
    "DEFAULT_MAX_TURNS",
    "GenerationSession",
    "PresentationFileStrategy",
    "SlideJsonStrategy",
    "build_artifact_strategy",
    "build_generation_prompt",
]
