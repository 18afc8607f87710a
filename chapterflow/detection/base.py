"""Shared contract and helpers for chapter detection strategies."""

from __future__ import annotations

from typing import Protocol

from ..models.datatypes import DetectedChapter, DetectionResult
from ..text.metrics import count_words


class DetectionStrategy(Protocol):
    """Protocol for one independent chapter detection strategy."""

    name: str

    def detect(self, text: str, title: str, genre: str | None = None) -> DetectionResult | None:
        """Return candidate chapters, or `None` when the strategy does not apply."""


def slice_chapter(
    text: str,
    *,
    start: int,
    end: int,
    title: str,
    method: str,
    confidence: float,
    boundary_strength: float = 0.5,
) -> DetectedChapter:
    """Build a chapter from a text slice, stripping content and counting words."""

    content = text[start:end].strip()
    return DetectedChapter(
        title=title,
        content=content,
        word_count=count_words(content),
        start_index=start,
        end_index=end,
        detection_method=method,
        confidence=confidence,
        boundary_strength=boundary_strength,
    )


def chunk_by_words(
    text: str,
    word_offsets: list[tuple[int, int]],
    sizes: list[int],
) -> list[tuple[int, int]]:
    """Turn consecutive word-count sizes into contiguous `(start, end)` offsets."""

    spans: list[tuple[int, int]] = []
    first_word = 0
    for index, size in enumerate(sizes):
        start = word_offsets[first_word][0] if index > 0 else 0
        first_word += size
        end = word_offsets[first_word][0] if first_word < len(word_offsets) else len(text)
        spans.append((start, end))
    return spans
