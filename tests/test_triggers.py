"""Tests for trigger word evaluation."""

from __future__ import annotations

import pytest

from meme_engine.domain.meme import INVALID_COMMAND_CODE, MemeValidationError
from meme_engine.domain.triggers import (
    Matched,
    NoMatch,
    evaluate_trigger,
    find_matching_words,
    normalize_words,
    parse_gen_command,
    parse_word_list,
)

STATIC_WORDS = ("alpha", "beta")


@pytest.mark.parametrize("message", ["test", "TEST", "a TeSt here"])
def test_scope_words_match_case_insensitively(message: str) -> None:
    """A scope word matches regardless of case on either side."""
    outcome = evaluate_trigger(message, "Test", ())
    assert isinstance(outcome, Matched)
    assert outcome.matched_words == ("test",)


def test_scope_match_renders_full_message() -> None:
    """The payload is the original message, not the matched word."""
    message = "well qqq, that is Surprising"
    outcome = evaluate_trigger(message, "qqq,www", STATIC_WORDS)
    assert outcome == Matched(payload=message, matched_words=("qqq",))


def test_scope_words_without_match_are_silent() -> None:
    """A non-matching scope list ends with NoMatch even if static words match."""
    outcome = evaluate_trigger("alpha beta", "qqq,www", STATIC_WORDS)
    assert isinstance(outcome, NoMatch)


def test_blank_scope_words_fall_back_to_static_list() -> None:
    """Scope lists without real words do not shadow the static list."""
    outcome = evaluate_trigger("say ALPHA", " , ,", STATIC_WORDS)
    assert outcome == Matched(payload="say ALPHA", matched_words=("alpha",))


def test_static_words_without_match() -> None:
    """The static list yields NoMatch when nothing matches."""
    assert isinstance(evaluate_trigger("gamma", None, STATIC_WORDS), NoMatch)


def test_gen_command_extracts_payload() -> None:
    """Without any trigger words the /gen command is required."""
    outcome = evaluate_trigger("/gen hello world", None, ())
    assert outcome == Matched(payload="hello world")


def test_gen_command_keeps_multiline_payload() -> None:
    """Line breaks after the command are kept for layout."""
    assert parse_gen_command("/gen first\nsecond") == "first\nsecond"


def test_gen_command_allows_empty_payload() -> None:
    """A bare command renders an empty caption."""
    assert evaluate_trigger("/gen", "", ()) == Matched(payload="")


@pytest.mark.parametrize("message", ["hello", "/generate hello", "say /gen hello"])
def test_malformed_command_raises(message: str) -> None:
    """Anything that is not a /gen command is malformed input."""
    with pytest.raises(MemeValidationError) as exc_info:
        evaluate_trigger(message, None, ())
    assert exc_info.value.code == INVALID_COMMAND_CODE


def test_normalize_words() -> None:
    """Normalization trims, lowercases and drops empty words."""
    assert normalize_words("  Test,, lol, ") == "test,lol"
    assert normalize_words("One, Two,three") == "one,two,three"


def test_parse_word_list_skips_empty_items() -> None:
    """Empty items between commas are ignored."""
    assert parse_word_list("A,,b,") == ("a", "b")
    assert parse_word_list("") == ()


def test_find_matching_words_keeps_list_order() -> None:
    """Matched words are reported in the order of the word list."""
    assert find_matching_words(("www", "qqq", "zzz"), "QQQ and www") == (
        "www",
        "qqq",
    )


def test_embedded_gen_command_is_not_a_command() -> None:
    """Only a leading /gen marks a render request."""
    with pytest.raises(MemeValidationError):
        parse_gen_command("say /gen hello")
    assert parse_gen_command("/gen   hello") == "hello"
