"""Post-selection boundary optimization.

Each non-final chapter's cut is moved to the nearest sentence end within a
window around the original position. Contiguous results move the shared cut so
the following chapter starts where the previous one now ends; marker-based
results only pull the end back so a heading always opens its own chapter.
"""

from __future__ import annotations

from dataclasses import replace

from ..models.datatypes import DetectedChapter, DetectionResult
from ..text.metrics import count_words
from ..text.sentences import SentenceBoundaryFinder

DEFAULT_WINDOW_CHARS = 200


class BoundaryOptimizer:
    """Align chapter cut points to nearby sentence ends."""

    def __init__(
        self,
        window_chars: int = DEFAULT_WINDOW_CHARS,
        finder: SentenceBoundaryFinder | None = None,
    ) -> None:
        """Initialize the optimizer with its search window."""

        self.window_chars = window_chars
        self.finder = finder or SentenceBoundaryFinder()

    def optimize(self, text: str, result: DetectionResult) -> DetectionResult:
        """Return `result` with cut points moved to sentence ends where possible."""

        if len(result.chapters) < 2:
            return result
        starts = [chapter.start_index for chapter in result.chapters]
        ends = [chapter.end_index for chapter in result.chapters]

        for index in range(len(result.chapters) - 1):
            cut = ends[index]
            low = max(starts[index] + 1, cut - self.window_chars)
            high = min(cut + self.window_chars, ends[index + 1] - 1)
            if result.marker_based:
                high = min(high, starts[index + 1])
            candidates = self.finder.boundaries(text, low, high)
            if not candidates:
                continue
            position = min(candidates, key=lambda candidate: (abs(candidate - cut), candidate))
            ends[index] = position
            if not result.marker_based:
                starts[index + 1] = position

        chapters = tuple(
            self._resize(text, chapter, starts[index], ends[index])
            for index, chapter in enumerate(result.chapters)
        )
        return replace(result, chapters=chapters)

    @staticmethod
    def _resize(text: str, chapter: DetectedChapter, start: int, end: int) -> DetectedChapter:
        """Rebuild chapter content and word count for new offsets."""

        if start == chapter.start_index and end == chapter.end_index:
            return chapter
        content = text[start:end].strip()
        if not content:
            return chapter
        return replace(
            chapter,
            content=content,
            word_count=count_words(content),
            start_index=start,
            end_index=end,
        )
