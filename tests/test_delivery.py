from __future__ import annotations

import logging
from pathlib import Path

import pytest

from lecture_to_slide.processing.slides import Slide, SlideDeck
from lecture_to_slide.services import delivery as delivery_module
from lecture_to_slide.services.delivery import PPTX_MEDIA_TYPE, ResultDelivery
from lecture_to_slide.services.events import emit_job_event, sanitize_context_value
from lecture_to_slide.services.jobs import InMemoryJobStore, JobStatus
from lecture_to_slide.services.naming import (
    build_presentation_name,
    build_upload_name,
    is_join_code,
    new_join_code,
)
from lecture_to_slide.services.progress import clamp_percent, tool_turn_percent


def test_new_join_code_is_six_digits() -> None:
    for _ in range(50):
        code = new_join_code()
        assert is_join_code(code)
        assert 100000 <= int(code) <= 999999


def test_new_join_code_avoids_taken_codes(monkeypatch) -> None:
    draws = iter([111111 - 100000, 111111 - 100000, 222222 - 100000])
    monkeypatch.setattr("lecture_to_slide.services.naming.secrets.randbelow", lambda _limit: next(draws))

    assert new_join_code({"111111"}) == "222222"


@pytest.mark.parametrize("value", ["12345", "1234567", "abcdef", "", "12 456"])
def test_is_join_code_rejects_malformed(value: str) -> None:
    assert not is_join_code(value)


def test_file_names() -> None:
    assert build_presentation_name("123456") == "presentation_123456.pptx"
    assert build_upload_name("123456", "WAV") == "upload_123456.wav"
    assert build_upload_name("123456", "../../etc") == "upload_123456.m4a"
    assert build_upload_name("123456", None) == "upload_123456.m4a"


def test_progress_checkpoints() -> None:
    assert tool_turn_percent(1) == 70
    assert tool_turn_percent(3) == 74
    assert tool_turn_percent(40) == 95
    assert clamp_percent(140) == 100
    assert clamp_percent(-3) == 0
    assert clamp_percent(None) == 0


def test_write_then_resolve_presentation(tmp_path: Path) -> None:
    delivery = ResultDelivery(tmp_path / "outputs")
    store = InMemoryJobStore()
    store.create("123456")

    path = delivery.write("123456", b"pptx")
    store.set_result("123456", path)
    artifact = delivery.resolve(store.get("123456"))

    assert path == tmp_path / "outputs" / "presentation_123456.pptx"
    assert artifact is not None
    assert artifact.path == path
    assert artifact.filename == "presentation_123456.pptx"
    assert artifact.media_type == PPTX_MEDIA_TYPE
    assert [item.name for item in (tmp_path / "outputs").iterdir()] == ["presentation_123456.pptx"]


def test_resolve_returns_none_for_unready_or_missing(tmp_path: Path) -> None:
    delivery = ResultDelivery(tmp_path)
    store = InMemoryJobStore()
    store.create("111111")
    store.set_status("111111", JobStatus.GENERATING, 40)
    store.create("222222")
    store.set_result("222222", tmp_path / "presentation_222222.pptx")

    assert delivery.resolve(None) is None
    assert delivery.resolve(store.get("111111")) is None
    assert delivery.resolve(store.get("222222")) is None


def test_resolve_slide_deck(tmp_path: Path) -> None:
    store = InMemoryJobStore()
    store.create("333333")
    store.set_result("333333", SlideDeck(slides=[Slide(title="Intro")]))

    artifact = ResultDelivery(tmp_path).resolve(store.get("333333"))

    assert artifact.slide_deck.slides[0].title == "Intro"
    assert artifact.media_type == "application/json"


def test_job_events_are_logged_with_context(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="lecture_to_slide.events"):
        emit_job_event("123456", "Job progressed", payload={"status": JobStatus.GENERATING, "percent": 40})

    record = caplog.records[-1]
    assert record.event_type == "JOB_STATE"
    assert record.event_context == {"code": "123456"}
    assert record.event_payload == {"status": "generating", "percent": 40}
    assert "[JOB_STATE] Job progressed" in record.getMessage()


def test_sanitize_context_value_handles_paths_and_empty_values() -> None:
    assert sanitize_context_value(Path("/tmp/x")) == "/tmp/x"
    assert sanitize_context_value("   ") is None
    assert sanitize_context_value({"a": "", "b": 1}) == {"b": 1}


def test_failed_write_leaves_no_partial_file(tmp_path: Path, monkeypatch) -> None:
    delivery = ResultDelivery(tmp_path / "outputs")

    def failing_replace(source, target):
        raise OSError("disk full")

    monkeypatch.setattr(delivery_module.os, "replace", failing_replace)

    with pytest.raises(OSError):
        delivery.write("123456", b"pptx")

    assert list((tmp_path / "outputs").iterdir()) == []
