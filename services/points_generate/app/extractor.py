"""Point extraction from free-form generated text.

Strategies run in order and a later one only runs while fewer than
``expected_count`` statements have been accepted:

1. Numbered list items: ``<int>. <text>`` up to the next list marker or
   newline, marker stripped.
2. Bullet list items: text after ``•``, ``-`` or ``*`` bullets.
3. Sentence split: fragments between terminators or newlines that are
   longer than ``MIN_SENTENCE_LENGTH`` characters.

Every candidate goes through ``clean_point``; only accepted statements count.
Sentence fragments whose first ``DEDUP_PREFIX_LENGTH`` characters already
occur in an accepted statement are near duplicates (usually a list item
restated in prose) and are skipped; list items are taken as listed.
Extraction stops as soon as ``expected_count`` statements are collected.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, List

from .cleaner import clean_point

MIN_SENTENCE_LENGTH = 15
DEDUP_PREFIX_LENGTH = 20

_BLANK_LINES_RE = re.compile(r"\n+")
_NUMBERED_RE = re.compile(
    r"(?<![\d.])\d+\.(?!\d)[ \t]*(.+?)(?=[ \t]+\d+\.(?!\d)|\n|$)"
)
_BULLET_SPLIT_RE = re.compile(r"(?:^|\n)[ \t]*[•*\-][ \t]+|•")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+|\n+")


def numbered_candidates(text: str) -> List[str]:
    return [m.group(1).strip() for m in _NUMBERED_RE.finditer(text)]


def bullet_candidates(text: str) -> List[str]:
    pieces = _BULLET_SPLIT_RE.split(text)
    if len(pieces) < 2:
        return []
    # pieces[0] is whatever preceded the first bullet
    return [p.split("\n", 1)[0].strip() for p in pieces[1:] if p.strip()]


def sentence_candidates(text: str) -> List[str]:
    fragments = (f.strip() for f in _SENTENCE_SPLIT_RE.split(text))
    return [f for f in fragments if len(f) > MIN_SENTENCE_LENGTH]


# (candidates, skip near duplicates)
STRATEGIES: tuple[tuple[Callable[[str], Iterable[str]], bool], ...] = (
    (numbered_candidates, False),
    (bullet_candidates, False),
    (sentence_candidates, True),
)


def is_near_duplicate(point: str, accepted: Iterable[str]) -> bool:
    prefix = point[:DEDUP_PREFIX_LENGTH]
    return any(prefix in existing for existing in accepted)


def extract_points(text: str, topic: str, expected_count: int) -> List[str]:
    """Extract up to ``expected_count`` clean statements from ``text``."""
    points: List[str] = []
    text = _BLANK_LINES_RE.sub("\n", text or "").strip()
    if not text or expected_count <= 0:
        return points

    for strategy, dedup in STRATEGIES:
        if len(points) >= expected_count:
            break
        for candidate in strategy(text):
            cleaned = clean_point(candidate, topic)
            if cleaned is None or (dedup and is_near_duplicate(cleaned, points)):
                continue
            points.append(cleaned)
            if len(points) >= expected_count:
                break
    return points
