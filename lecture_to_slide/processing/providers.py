"""Adapters around the Anthropic SDK used by the generation session."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import anthropic
from anthropic import AsyncAnthropic

from .errors import GenerationProviderError
from .extraction import ProviderResponse, response_from_message


LOGGER = logging.getLogger(__name__)

Message = Dict[str, Any]

CODE_EXECUTION_BETA = "code-execution-2025-08-25"
SKILLS_BETA = "skills-2025-10-02"
FILES_API_BETA = "files-api-2025-04-14"
SKILL_BETAS: List[str] = [CODE_EXECUTION_BETA, SKILLS_BETA, FILES_API_BETA]

PPTX_SKILL: Dict[str, str] = {"type": "anthropic", "skill_id": "pptx", "version": "latest"}
CODE_EXECUTION_TOOL: Dict[str, str] = {"type": "code_execution_20250825", "name": "code_execution"}

SLIDE_JSON_SYSTEM_PROMPT = (
    "You turn lecture transcripts into presentation outlines. Reply with a single JSON "
    'object of the form {"slides": [{"title": str, "bullets": [str], "notes": str, '
    '"layout": str}]} and nothing else. Keep bullets short; put the spoken explanation '
    "in notes."
)


class GenerationProvider(Protocol):
    """A model endpoint that can run one conversation turn."""

    async def create(self, messages: List[Message], *, container_id: Optional[str] = None) -> ProviderResponse:
        """Send the full conversation and return the next assistant turn."""

    async def download(self, file_id: str) -> bytes:
        """Return the content of a file produced during the conversation."""


class AnthropicSkillProvider:
    """Claude with the code-execution tool and the ``pptx`` skill enabled.

    The provider answers with a container handle on the first turn; later
    turns must reuse it so that files written by earlier tool calls remain
    visible.
    """

    def __init__(self, model: str, *, max_tokens: int = 8192, client: Any = None) -> None:
        self._client = client if client is not None else AsyncAnthropic()
        self._model = model
        self._max_tokens = max_tokens

    def _container(self, container_id: Optional[str]) -> Dict[str, Any]:
        container: Dict[str, Any] = {"skills": [dict(PPTX_SKILL)]}
        if container_id:
            container["id"] = container_id
        return container

    async def create(self, messages: List[Message], *, container_id: Optional[str] = None) -> ProviderResponse:
        try:
            message = await self._client.beta.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                betas=SKILL_BETAS,
                container=self._container(container_id),
                tools=[dict(CODE_EXECUTION_TOOL)],
                messages=messages,
            )
        except anthropic.APIError as error:
            raise GenerationProviderError(f"Anthropic request failed: {error}") from error
        return response_from_message(message)

    async def download(self, file_id: str) -> bytes:
        try:
            response = await self._client.beta.files.download(file_id, betas=[FILES_API_BETA])
            return await response.read()
        except anthropic.APIError as error:
            raise GenerationProviderError(f"Downloading file {file_id} failed: {error}") from error


class AnthropicMessagesProvider:
    """Plain Claude messages asked to answer with slide JSON."""

    def __init__(
        self,
        model: str,
        *,
        max_tokens: int = 8192,
        system_prompt: str = SLIDE_JSON_SYSTEM_PROMPT,
        client: Any = None,
    ) -> None:
        self._client = client if client is not None else AsyncAnthropic()
        self._model = model
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt

    async def create(self, messages: List[Message], *, container_id: Optional[str] = None) -> ProviderResponse:
        try:
            message = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=self._system_prompt,
                messages=messages,
            )
        except anthropic.APIError as error:
            raise GenerationProviderError(f"Anthropic request failed: {error}") from error
        return response_from_message(message)

    async def download(self, file_id: str) -> bytes:
        raise GenerationProviderError("The slide JSON provider does not produce files")


def build_generation_provider(config: Any) -> GenerationProvider:
    """Return the provider matching ``config.generation_mode``."""

    if getattr(config, "generation_mode", "pptx") == "slides":
        return AnthropicMessagesProvider(config.generation_model, max_tokens=config.max_tokens)
    return AnthropicSkillProvider(config.generation_model, max_tokens=config.max_tokens)


__all__ = [
    "AnthropicMessagesProvider",
    "AnthropicSkillProvider",
    "GenerationProvider",
    "Message",
    "SKILL_BETAS",
    "build_generation_provider",
]
