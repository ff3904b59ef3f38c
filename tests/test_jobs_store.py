from __future__ import annotations

from pathlib import Path

import pytest

from lecture_to_slide.processing.errors import ErrorKind
from lecture_to_slide.processing.slides import Slide, SlideDeck
from lecture_to_slide.services.jobs import InMemoryJobStore, JobStatus


def test_create_starts_submitted_with_initial_percent() -> None:
    store = InMemoryJobStore()

    record = store.create("123456", "Focus on chapter 2")

    assert record.status is JobStatus.SUBMITTED
    assert record.percent == 5
    assert record.notes == "Focus on chapter 2"
    assert "123456" in store
    assert len(store) == 1
    assert store.get("123456").status_payload() == {
        "ready": False,
        "status": "submitted",
        "percent": 5,
    }


def test_unknown_code_returns_none_and_updates_are_ignored() -> None:
    store = InMemoryJobStore()

    store.set_status("000000", JobStatus.GENERATING, 40)
    store.set_error("000000", "boom")

    assert store.get("000000") is None
    assert store.codes() == []


def test_status_never_moves_backwards() -> None:
    store = InMemoryJobStore()
    store.create("111111")

    store.set_status("111111", JobStatus.GENERATING, 40)
    store.set_status("111111", JobStatus.TRANSCRIBING, 10)

    record = store.get("111111")
    assert record.status is JobStatus.GENERATING
    assert record.percent == 40


def test_percent_is_monotonic_within_a_status() -> None:
    store = InMemoryJobStore()
    store.create("111112")

    store.set_status("111112", JobStatus.GENERATING, 72)
    store.set_status("111112", JobStatus.GENERATING, 40)

    assert store.get("111112").percent == 72


def test_error_overrides_non_terminal_status() -> None:
    store = InMemoryJobStore()
    store.create("222222")
    store.set_status("222222", JobStatus.TRANSCRIBING, 10)

    store.set_error("222222", "Anthropic request failed", ErrorKind.PROVIDER)

    record = store.get("222222")
    assert record.status is JobStatus.ERROR
    assert record.error_kind is ErrorKind.PROVIDER
    assert record.status_payload() == {
        "ready": False,
        "status": "error",
        "percent": 10,
        "error": "Anthropic request failed",
    }


def test_terminal_records_are_immutable(tmp_path: Path) -> None:
    store = InMemoryJobStore()
    store.create("333333")
    artifact = tmp_path / "presentation_333333.pptx"
    store.set_result("333333", artifact)

    store.set_error("333333", "late failure")
    store.set_status("333333", JobStatus.GENERATING, 50)
    store.set_result("333333", SlideDeck(slides=[Slide(title="Other")]))

    record = store.get("333333")
    assert record.ready
    assert record.percent == 100
    assert record.output_path == artifact
    assert record.slide_deck is None
    assert record.error is None


def test_error_is_terminal_too() -> None:
    store = InMemoryJobStore()
    store.create("444444")
    store.set_error("444444", "first")

    store.set_error("444444", "second")
    store.set_result("444444", SlideDeck())

    record = store.get("444444")
    assert record.status is JobStatus.ERROR
    assert record.error == "first"


def test_ready_requires_an_artifact() -> None:
    store = InMemoryJobStore()
    store.create("555555")

    with pytest.raises(ValueError):
        store.set_status("555555", JobStatus.READY)


def test_snapshots_are_isolated() -> None:
    store = InMemoryJobStore()
    store.create("666666")

    snapshot = store.get("666666")
    snapshot.status = JobStatus.READY

    assert store.get("666666").status is JobStatus.SUBMITTED


def test_collision_replaces_previous_record() -> None:
    store = InMemoryJobStore()
    store.create("777777", "old")
    store.set_error("777777", "failed")

    record = store.create("777777", "new")

    assert record.status is JobStatus.SUBMITTED
    assert store.get("777777").notes == "new"
