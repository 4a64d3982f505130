"""Normalization of raw model output into well-formed statements.

A *statement* is a trimmed sentence that starts with an uppercase letter,
ends in ``.``, ``!`` or ``?``, is at most ``MAX_STATEMENT_LENGTH``
characters long and contains none of the corruption markers (``undefined``
/ ``null``) that small models emit when a generation goes off the rails.
Text opening with a digit ("2020 saw...", or any statement about a topic
such as "5G networks") is rejected.

Two cleaners are provided:
- ``clean_point`` for candidates extracted from a structured (list) output.
- ``clean_single_point`` for the continuation of a single starter prompt;
  it keeps only the first sentence fragment and prefixes the topic.

Both are pure functions of ``(text, topic)`` and return ``None`` to reject.
"""

from __future__ import annotations

import re
from typing import Optional

MIN_RAW_LENGTH = 5
MIN_CLEAN_LENGTH = 10
MIN_SINGLE_FRAGMENT_LENGTH = 8
MAX_STATEMENT_LENGTH = 200
CORRUPTION_MARKERS = ("undefined", "null")

_MARKER_RE = re.compile(r"^\s*(?:[•*\-]+|\d+\s*[.)])\s*")
_FILLER_RE = re.compile(
    r"^(?:is that|that|because|by|through|and|but|or|so|also)\s+", re.IGNORECASE
)
_PRONOUN_RE = re.compile(r"^(?:it|this|they)\s+", re.IGNORECASE)
_FIRST_FRAGMENT_RE = re.compile(r"[.!?\n]")
_LEADING_JUNK = " \t\r\n\"'`([{:;,"
_TERMINATORS = (".", "!", "?")


def _squash(text: str) -> str:
    return " ".join(text.split())


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def _terminate(text: str) -> str:
    return text if text.endswith(_TERMINATORS) else text + "."


def has_corruption_marker(text: str) -> bool:
    return any(marker in text for marker in CORRUPTION_MARKERS)


def is_statement(text: Optional[str]) -> bool:
    """Well-formedness predicate every returned point must satisfy."""
    if not text or text != text.strip():
        return False
    first = text[0]
    return (
        first.isupper()
        and text.endswith(_TERMINATORS)
        and len(text) <= MAX_STATEMENT_LENGTH
        and not has_corruption_marker(text)
    )


def clean_point(text: Optional[str], topic: str) -> Optional[str]:
    """Turn one extracted candidate into a statement, or reject it.

    Steps: reject very short input; strip list markers and leading filler
    connectives ("that", "because", "also", ...); replace a leading
    "it"/"this"/"they" with the topic; reject short remainders; capitalize;
    add a period when no terminal punctuation is present; reject corrupt or
    overlong results.
    """
    if not text or len(text) < MIN_RAW_LENGTH:
        return None

    text = _MARKER_RE.sub("", text, count=1)
    text = _FILLER_RE.sub("", text.strip(), count=1)
    text = _PRONOUN_RE.sub(lambda _m: f"{topic} ", text, count=1)
    text = _squash(text).lstrip(_LEADING_JUNK)

    if len(text) < MIN_CLEAN_LENGTH:
        return None

    text = _terminate(_capitalize(text))

    if has_corruption_marker(text) or len(text) > MAX_STATEMENT_LENGTH:
        return None
    return text if is_statement(text) else None


def clean_single_point(text: Optional[str], topic: str) -> Optional[str]:
    """Clean the continuation of a single-starter prompt.

    Only the first sentence fragment is kept; it must be longer than
    ``MIN_SINGLE_FRAGMENT_LENGTH`` characters after trimming. The topic is
    prefixed so the statement stands on its own.
    """
    if not text:
        return None
    fragment = _FIRST_FRAGMENT_RE.split(text.strip(), maxsplit=1)[0]
    fragment = _squash(fragment).lstrip(_LEADING_JUNK)
    if len(fragment) <= MIN_SINGLE_FRAGMENT_LENGTH:
        return None

    statement = _terminate(_capitalize(_squash(f"{topic} {fragment}")))
    return statement if is_statement(statement) else None


def fallback_statement(template: str, topic: str) -> Optional[str]:
    """Render a fallback template; ``None`` if the topic makes it malformed."""
    statement = _terminate(_capitalize(_squash(template.format(topic=topic))))
    return statement if is_statement(statement) else None
