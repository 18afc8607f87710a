"""Word, page, and reading-time metrics shared by every stage."""

from __future__ import annotations

from hashlib import sha256
import math
import re

WORDS_PER_MINUTE = 200
WORDS_PER_PAGE = 250

_WORD_RE = re.compile(r"\S+")


def count_words(text: str) -> int:
    """Return the whitespace-delimited word count of `text`."""

    return len(text.split())


def reading_time_minutes(word_count: int) -> int:
    """Return `ceil(words / 200)`, never below one minute for non-empty text."""

    if word_count <= 0:
        return 0
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))


def estimate_pages(word_count: int) -> int:
    """Estimate a page count at 250 words per page."""

    if word_count <= 0:
        return 0
    return math.ceil(word_count / WORDS_PER_PAGE)


def content_hash(text: str) -> str:
    """Return the sha256 hex digest of UTF-8 text."""

    return sha256(text.encode("utf-8")).hexdigest()


def word_spans(text: str) -> list[tuple[int, int]]:
    """Return `(start, end)` character offsets of every word in order."""

    return [match.span() for match in _WORD_RE.finditer(text)]
