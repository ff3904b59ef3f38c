from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lecture_to_slide.bootstrap import Bootstrapper
from lecture_to_slide.config import AppConfig
from lecture_to_slide.processing.extraction import ProviderResponse, response_from_message


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "upload_dir": "uploads",
            "output_dir": "outputs",
            "provider_timeout_seconds": 5,
        },
        base_path=tmp_path,
    )

    Bootstrapper(config).initialize()
    return config


def tool_use_message(container_id: Optional[str] = "container_1") -> Dict[str, Any]:
    """Provider turn that only reports tool work in progress."""

    return {
        "stop_reason": "tool_use",
        "container": {"id": container_id} if container_id else None,
        "content": [
            {"type": "text", "text": "Working on it"},
            {"type": "server_tool_use", "id": "srvtoolu_1", "name": "code_execution"},
        ],
    }


def file_message(file_id: str = "file_abc", container_id: Optional[str] = "container_1") -> Dict[str, Any]:
    """Provider turn carrying a generated file inside a code-execution result."""

    return {
        "stop_reason": "end_turn",
        "container": {"id": container_id} if container_id else None,
        "content": [
            {
                "type": "bash_code_execution_tool_result",
                "tool_use_id": "srvtoolu_1",
                "content": {
                    "type": "bash_code_execution_result",
                    "stdout": "saved",
                    "content": [{"type": "bash_code_execution_output", "file_id": file_id}],
                },
            },
            {"type": "text", "text": "Your presentation is ready."},
        ],
    }


def text_message(text: str, stop_reason: str = "end_turn") -> Dict[str, Any]:
    return {"stop_reason": stop_reason, "content": [{"type": "text", "text": text}]}


class FakeProvider:
    """Scripted generation provider that records every call."""

    def __init__(
        self,
        messages: List[Dict[str, Any]],
        *,
        repeat_last: bool = True,
        files: Optional[Dict[str, bytes]] = None,
    ) -> None:
        self._messages = list(messages)
        self._repeat_last = repeat_last
        self.files = dict(files or {})
        self.calls: List[Dict[str, Any]] = []
        self.downloads: List[str] = []

    async def create(self, messages, *, container_id=None) -> ProviderResponse:
        self.calls.append({"messages": list(messages), "container_id": container_id})
        index = len(self.calls) - 1
        if index >= len(self._messages):
            if not self._repeat_last:
                raise AssertionError("Provider called more often than scripted")
            index = len(self._messages) - 1
        return response_from_message(self._messages[index])

    async def download(self, file_id: str) -> bytes:
        self.downloads.append(file_id)
        return self.files.get(file_id, b"")


class FakeTranscriptionEngine:
    def __init__(self, text: str = "Today we discuss photosynthesis.", *, error: Optional[BaseException] = None) -> None:
        self._text = text
        self._error = error
        self.calls: List[Dict[str, Any]] = []

    async def transcribe(self, audio_path: Path, *, encoding_hint: str = ".m4a") -> str:
        self.calls.append({"path": audio_path, "exists": audio_path.exists(), "encoding_hint": encoding_hint})
        if self._error is not None:
            raise self._error
        return self._text
