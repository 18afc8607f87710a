"""Length-class chapter detection without marker detection.

The document is classified by total word count and lexical cues, then cut into
evenly sized chapters inside the class's length envelope.
"""

from __future__ import annotations

from dataclasses import dataclass
import math

from ..models.datatypes import DetectionResult
from ..text.metrics import word_spans
from .base import chunk_by_words, slice_chapter

ADAPTIVE_CONFIDENCE = 0.8


@dataclass(frozen=True, slots=True)
class LengthEnvelope:
    """Target, minimum, and maximum chapter lengths in words."""

    target_words: int
    min_words: int
    max_words: int


DOCUMENT_CLASSES: dict[str, LengthEnvelope] = {
    "short_form": LengthEnvelope(1500, 800, 2500),
    "medium_form": LengthEnvelope(2500, 1500, 4000),
    "long_form": LengthEnvelope(3500, 2000, 6000),
    "academic": LengthEnvelope(4000, 2500, 8000),
    "narrative": LengthEnvelope(3000, 1800, 5000),
}

_ACADEMIC_CUES = ("bibliography", "references")


def classify_document(word_count: int, text: str, genre: str | None = None) -> str:
    """Return the document length class used to pick a chapter envelope."""

    if word_count < 20_000:
        return "short_form"
    if word_count < 80_000:
        return "medium_form"
    if word_count < 200_000:
        return "long_form"
    lowered = text.lower()
    if (genre and "academic" in genre.lower()) or any(cue in lowered for cue in _ACADEMIC_CUES):
        return "academic"
    return "narrative"


def even_chapter_sizes(word_count: int, envelope: LengthEnvelope) -> list[int]:
    """Split `word_count` into near-equal sizes whose average fits the envelope."""

    if word_count <= 0:
        return []
    count = max(1, round(word_count / envelope.target_words))
    if word_count / count > envelope.max_words:
        count = math.ceil(word_count / envelope.max_words)
    elif word_count / count < envelope.min_words:
        count = max(1, word_count // envelope.min_words)
    base, remainder = divmod(word_count, count)
    return [base + 1 if index < remainder else base for index in range(count)]


class AdaptiveStrategy:
    """Cut a document into evenly sized chapters picked by document class."""

    name = "adaptive"

    def detect(self, text: str, title: str, genre: str | None = None) -> DetectionResult | None:
        """Return evenly sized chapters for the document's length class."""

        offsets = word_spans(text)
        if not offsets:
            return None
        document_class = classify_document(len(offsets), text, genre)
        method = f"adaptive_{document_class}"
        sizes = even_chapter_sizes(len(offsets), DOCUMENT_CLASSES[document_class])
        chapters = tuple(
            slice_chapter(
                text,
                start=start,
                end=end,
                title=f"{title} - Part {index}",
                method=method,
                confidence=ADAPTIVE_CONFIDENCE,
            )
            for index, (start, end) in enumerate(chunk_by_words(text, offsets, sizes), start=1)
        )
        return DetectionResult(method=method, confidence=ADAPTIVE_CONFIDENCE, chapters=chapters)
