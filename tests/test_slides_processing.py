from __future__ import annotations

import pytest

from lecture_to_slide.processing.errors import EmptyGenerationError, ErrorKind, SlideParseError
from lecture_to_slide.processing.slides import find_json_object, parse_slide_deck, strip_code_fence


_DECK = '{"slides":[{"title":"A","bullets":["x","y"],"notes":"n"}]}'


def _assert_single_slide(deck) -> None:
    assert len(deck) == 1
    slide = deck.slides[0]
    assert slide.title == "A"
    assert slide.bullets == ["x", "y"]
    assert slide.notes == "n"
    assert slide.layout is None


def test_parses_plain_json() -> None:
    _assert_single_slide(parse_slide_deck(_DECK))


def test_parses_fenced_json() -> None:
    _assert_single_slide(parse_slide_deck(f"```json\n{_DECK}\n```"))


def test_parses_json_surrounded_by_prose() -> None:
    reply = f"Here is your outline:\n{_DECK}\nLet me know if you want changes {{or not}}."

    _assert_single_slide(parse_slide_deck(reply))


def test_bare_array_is_accepted() -> None:
    deck = parse_slide_deck('[{"title":"Only"}]')

    assert [slide.title for slide in deck.slides] == ["Only"]
    assert deck.slides[0].bullets == []


def test_bracketed_prose_before_object_is_skipped() -> None:
    _assert_single_slide(parse_slide_deck(f"[Slide deck below]\n{_DECK}"))


def test_bracketed_prose_without_object_is_parse_error() -> None:
    with pytest.raises(SlideParseError):
        parse_slide_deck("[No slides today]")


def test_braces_inside_strings_do_not_end_the_object() -> None:
    text = 'Sure: {"slides":[{"title":"Sets {a, b}","bullets":["\\"}\\" is a brace"]}]} trailing'

    span = find_json_object(text)
    deck = parse_slide_deck(text)

    assert span is not None and span.endswith("]}]}")
    assert deck.slides[0].title == "Sets {a, b}"
    assert deck.slides[0].bullets == ['"}" is a brace']


def test_strip_code_fence_leaves_unfenced_text() -> None:
    assert strip_code_fence("  plain  ") == "plain"


@pytest.mark.parametrize(
    "reply",
    [
        "I could not produce slides this time.",
        '{"slides": [{"title": "A",}]}',
        '{"pages": []}',
        '{"slides": [{"title": ["not", "a", "string"]}]}',
        "{unbalanced",
    ],
)
def test_malformed_replies_raise_parse_error(reply: str) -> None:
    with pytest.raises(SlideParseError) as excinfo:
        parse_slide_deck(reply)

    assert excinfo.value.kind is ErrorKind.PARSE


@pytest.mark.parametrize("reply", [None, "", "   \n"])
def test_blank_replies_raise_empty_generation_error(reply) -> None:
    with pytest.raises(EmptyGenerationError) as excinfo:
        parse_slide_deck(reply)

    assert excinfo.value.kind is ErrorKind.NO_CONTENT
