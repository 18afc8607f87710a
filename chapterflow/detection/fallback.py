"""Uniform word-count chunker that guarantees a non-empty detection result."""

from __future__ import annotations

from ..models.datatypes import DetectionResult
from ..text.metrics import word_spans
from .base import chunk_by_words, slice_chapter

FALLBACK_METHOD = "fallback_chunking"


class FallbackChunker:
    """Cut text into fixed-size word chunks when no strategy is usable."""

    name = FALLBACK_METHOD

    def __init__(self, chunk_words: int = 2000) -> None:
        """Initialize the chunker with a chunk size in words."""

        if chunk_words < 1:
            raise ValueError("`chunk_words` must be a positive integer.")
        self.chunk_words = chunk_words

    def detect(self, text: str, title: str, genre: str | None = None) -> DetectionResult:
        """Return consecutive chunks; only the last chunk may be shorter."""

        offsets = word_spans(text)
        full_chunks, remainder = divmod(len(offsets), self.chunk_words)
        sizes = [self.chunk_words] * full_chunks + ([remainder] if remainder else [])
        chapters = tuple(
            slice_chapter(
                text,
                start=start,
                end=end,
                title=f"{title} - Part {index}",
                method=FALLBACK_METHOD,
                confidence=0.4,
            )
            for index, (start, end) in enumerate(chunk_by_words(text, offsets, sizes), start=1)
        )
        return DetectionResult(method=FALLBACK_METHOD, confidence=0.3, chapters=chapters)
