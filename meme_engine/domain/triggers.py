"""Trigger word parsing and evaluation."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Sequence, Tuple

from meme_engine.domain.meme import INVALID_COMMAND_CODE, MemeValidationError

GEN_COMMAND_PATTERN = re.compile(r"/gen(?:\s+(?P<payload>.*))?", re.DOTALL)
WORD_SEPARATOR = ","


@dataclass(frozen=True)
class NoMatch:
    """Nothing to render for this message."""


@dataclass(frozen=True)
class Matched:
    """Message matched; payload is the literal text to render."""

    payload: str
    matched_words: Tuple[str, ...] = ()


TriggerOutcome = NoMatch | Matched


def normalize_words(raw_words: str) -> str:
    """Normalize a comma-separated word list: 'test,, lol,' -> 'test,lol'."""
    normalized = raw_words.strip().lower().replace(", ", WORD_SEPARATOR)
    return WORD_SEPARATOR.join(
        word for word in normalized.split(WORD_SEPARATOR) if word
    )


def parse_word_list(raw_words: str) -> Tuple[str, ...]:
    """Split a comma-separated word list into non-empty lowercase words."""
    return tuple(
        word for word in raw_words.lower().split(WORD_SEPARATOR) if word
    )


def find_matching_words(words: Sequence[str], message: str) -> Tuple[str, ...]:
    """Return the words contained in the message, case-insensitively."""
    lowered_message = message.lower()
    return tuple(
        word.lower()
        for word in words
        if word and word.lower() in lowered_message
    )


def parse_gen_command(message: str) -> str:
    """Extract the payload of a '/gen <text>' command."""
    match = GEN_COMMAND_PATTERN.fullmatch(message)
    if not match:
        raise MemeValidationError(
            INVALID_COMMAND_CODE, f"expected '/gen <text>', got {message!r}"
        )
    return match.group("payload") or ""


def evaluate_trigger(
    message: str,
    scope_words: str | None,
    static_words: Sequence[str],
) -> TriggerOutcome:
    """Decide whether a message is rendered and what text to render.

    A non-empty scope word list takes priority over the static list. When
    both are empty, only an explicit '/gen <text>' command is accepted and
    anything else raises MemeValidationError.
    """
    scope_list = parse_word_list(normalize_words(scope_words or ""))
    if scope_list:
        matched = find_matching_words(scope_list, message)
        if not matched:
            return NoMatch()
        return Matched(payload=message, matched_words=matched)

    if static_words:
        matched = find_matching_words(static_words, message)
        if not matched:
            return NoMatch()
        return Matched(payload=message, matched_words=matched)

    return Matched(payload=parse_gen_command(message))
