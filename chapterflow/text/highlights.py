"""Heuristic highlight-quote extraction for stored chapters."""

from __future__ import annotations

import re

from .sentences import SentenceBoundaryFinder

MAX_HIGHLIGHTS = 5
MAX_QUOTED_SPANS = 3

HIGHLIGHT_MARKERS = (
    "the key is",
    "it is important",
    "remember that",
    "the main point",
    "in conclusion",
    "to summarize",
    "most importantly",
    "this means",
)

_QUOTED_SPAN_RE = re.compile(r'"([^"\n]{20,200})"')


def extract_highlight_quotes(
    content: str,
    finder: SentenceBoundaryFinder | None = None,
) -> tuple[str, ...]:
    """Return up to five quotes: quoted spans first, then marker-phrase sentences.

    Quoted spans are 20 to 200 characters between double quotes (at most three).
    Marker sentences are 50 to 300 characters and contain one of
    `HIGHLIGHT_MARKERS`. Duplicates are dropped, first occurrence wins.
    """

    quotes: list[str] = []
    seen: set[str] = set()

    def _add(candidate: str) -> None:
        normalized = " ".join(candidate.split())
        if normalized and normalized not in seen and len(quotes) < MAX_HIGHLIGHTS:
            seen.add(normalized)
            quotes.append(normalized)

    for match in _QUOTED_SPAN_RE.finditer(content):
        if len(quotes) >= MAX_QUOTED_SPANS:
            break
        _add(match.group(1).strip())

    sentence_finder = finder or SentenceBoundaryFinder()
    for sentence in sentence_finder.split_sentences(content):
        if len(quotes) >= MAX_HIGHLIGHTS:
            break
        if not 50 <= len(sentence.text) <= 300:
            continue
        lowered = sentence.text.lower()
        if any(marker in lowered for marker in HIGHLIGHT_MARKERS):
            _add(sentence.text)

    return tuple(quotes)
