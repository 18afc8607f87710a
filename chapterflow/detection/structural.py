"""Layout-based chapter detection from multi-blank-line breaks."""

from __future__ import annotations

import re

from ..models.datatypes import DetectedChapter, DetectionResult
from ..text.metrics import count_words
from .base import slice_chapter

MIN_CHAPTER_CHARS = 1000
STRENGTH_THRESHOLD = 0.5

_BREAK_RE = re.compile(r"\n{3,}")
_ENDS_SENTENCE_RE = re.compile(r"[.!?]$")
_STARTS_CAPITAL_RE = re.compile(r"^[A-Z]")


def break_strength(before: str, after: str) -> float:
    """Score a segment break from neighbour sizes and punctuation context."""

    strength = 0.3
    before_stripped = before.strip()
    after_stripped = after.strip()
    if count_words(before_stripped) > 100 and count_words(after_stripped) > 100:
        strength += 0.4
    if _ENDS_SENTENCE_RE.search(before_stripped) and _STARTS_CAPITAL_RE.match(after_stripped):
        strength += 0.3
    return min(strength, 1.0)


class StructuralStrategy:
    """Detect chapters at strong multi-blank-line breaks."""

    name = "structural"

    def detect(self, text: str, title: str, genre: str | None = None) -> DetectionResult | None:
        """Return chapters between surviving breaks, or `None` without strong breaks."""

        breaks = list(_BREAK_RE.finditer(text))
        if not breaks:
            return None

        segment_starts = [0] + [match.end() for match in breaks]
        segment_ends = [match.start() for match in breaks] + [len(text)]
        kept: list[tuple[int, float]] = []
        for index, match in enumerate(breaks):
            before = text[segment_starts[index] : segment_ends[index]]
            after = text[segment_starts[index + 1] : segment_ends[index + 1]]
            strength = break_strength(before, after)
            if strength > STRENGTH_THRESHOLD:
                kept.append((match.end(), strength))
        if not kept:
            return None

        cuts = [0] + [offset for offset, _ in kept] + [len(text)]
        strengths = [kept[0][1]] + [strength for _, strength in kept]
        chapters: list[DetectedChapter] = []
        for index in range(len(cuts) - 1):
            start, end = cuts[index], cuts[index + 1]
            content = text[start:end].strip()
            if len(content) <= MIN_CHAPTER_CHARS:
                continue
            chapters.append(
                slice_chapter(
                    text,
                    start=start,
                    end=end,
                    title=self._title(content, len(chapters) + 1),
                    method=self.name,
                    confidence=strengths[index],
                    boundary_strength=strengths[index],
                )
            )
        if not chapters:
            return None

        mean_strength = sum(chapter.confidence for chapter in chapters) / len(chapters)
        return DetectionResult(
            method=self.name,
            confidence=min(0.7, max(0.3, mean_strength)),
            chapters=tuple(chapters),
        )

    @staticmethod
    def _title(content: str, chapter_number: int) -> str:
        """Use the first line as a title when it has heading length."""

        first_line = next((line.strip() for line in content.split("\n") if line.strip()), "")
        if 10 <= len(first_line) <= 80:
            return first_line
        return f"Chapter {chapter_number}"
