"""Sentence-transition chapter detection for marker-free text.

Responsibilities:
- Score each sentence transition for topic, time, and place shift markers.
- Accumulate words and close chapters near a target length at strong
  transitions, never exceeding the ceiling.
- Merge or rebalance a short trailing remainder.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

from ..models.datatypes import DetectedChapter, DetectionResult
from ..text.metrics import count_words
from ..text.sentences import SentenceBoundaryFinder, SentenceSpan
from .base import slice_chapter

TOPIC_MARKERS = ("meanwhile", "later", "the next", "suddenly", "then", "now", "after")
TIME_MARKERS = ("morning", "evening", "day", "night", "week", "month", "year")
PLACE_MARKERS = ("at", "in", "outside", "inside", "nearby", "across")

_MARKER_WEIGHTS: tuple[tuple[re.Pattern[str], float], ...] = tuple(
    (re.compile(rf"\b{re.escape(marker)}\b"), weight)
    for markers, weight in (
        (TOPIC_MARKERS, 0.2),
        (TIME_MARKERS, 0.15),
        (PLACE_MARKERS, 0.1),
    )
    for marker in markers
)

TRANSITION_HEAD_WORDS = 12
MIN_TOTAL_WORDS = 300
FINAL_CHAPTER_CONFIDENCE = 0.7


def transition_score(sentence: str) -> float:
    """Score how strongly a sentence opens a new scene or topic."""

    head = " ".join(sentence.lower().split()[:TRANSITION_HEAD_WORDS])
    score = 0.3
    for pattern, weight in _MARKER_WEIGHTS:
        if pattern.search(head):
            score += weight
    return min(score, 1.0)


@dataclass(frozen=True, slots=True)
class SemanticEnvelope:
    """Target, minimum, and ceiling chapter lengths in words."""

    target_words: int = 2500
    min_words: int = 1200
    max_words: int = 4000


class SemanticStrategy:
    """Detect chapters at high-scoring sentence transitions."""

    name = "semantic"

    def __init__(
        self,
        envelope: SemanticEnvelope | None = None,
        finder: SentenceBoundaryFinder | None = None,
    ) -> None:
        """Initialize the strategy with its length envelope and sentence splitter."""

        self.envelope = envelope or SemanticEnvelope()
        self.finder = finder or SentenceBoundaryFinder()

    def detect(self, text: str, title: str, genre: str | None = None) -> DetectionResult | None:
        """Return transition-aligned chapters, or `None` for short documents."""

        if count_words(text) <= MIN_TOTAL_WORDS:
            return None
        sentences = self.finder.split_sentences(text)
        if not sentences:
            return None

        starts, strengths = self._group(sentences)
        chapters: list[DetectedChapter] = []
        for index, first in enumerate(starts):
            start = sentences[first].start
            end = sentences[starts[index + 1]].start if index + 1 < len(starts) else len(text)
            confidence = strengths[index] if index < len(strengths) else FINAL_CHAPTER_CONFIDENCE
            chapters.append(
                slice_chapter(
                    text,
                    start=start,
                    end=end,
                    title=self._title(title, sentences[first], index + 1),
                    method=self.name,
                    confidence=confidence,
                    boundary_strength=confidence,
                )
            )

        mean_confidence = sum(chapter.confidence for chapter in chapters) / len(chapters)
        return DetectionResult(
            method=self.name,
            confidence=min(0.8, max(0.6, mean_confidence)),
            chapters=tuple(chapters),
        )

    def _group(self, sentences: list[SentenceSpan]) -> tuple[list[int], list[float]]:
        """Return chapter-opening sentence indexes and each closed chapter's strength."""

        envelope = self.envelope
        starts = [0]
        strengths: list[float] = []
        current_words = 0
        for index, sentence in enumerate(sentences):
            if index > starts[-1]:
                score = transition_score(sentence.text)
                forced = current_words + sentence.word_count > envelope.max_words
                natural = current_words >= envelope.min_words and (
                    (current_words >= envelope.target_words and score >= 0.6) or score > 0.8
                )
                if forced or natural:
                    starts.append(index)
                    strengths.append(score)
                    current_words = 0
            current_words += sentence.word_count

        if len(starts) > 1 and current_words < envelope.min_words:
            previous_words = sum(
                sentence.word_count for sentence in sentences[starts[-2] : starts[-1]]
            )
            if previous_words + current_words <= envelope.max_words:
                starts.pop()
                strengths.pop()
            else:
                split_index = self._midpoint_index(sentences, starts[-2])
                starts[-1] = split_index
                strengths[-1] = transition_score(sentences[split_index].text)
        return starts, strengths

    @staticmethod
    def _midpoint_index(sentences: list[SentenceSpan], first: int) -> int:
        """Return the sentence index that splits `sentences[first:]` nearest its word midpoint."""

        total = sum(sentence.word_count for sentence in sentences[first:])
        half = total / 2
        best_index = first + 1
        best_distance = float("inf")
        running = 0
        for index in range(first, len(sentences) - 1):
            running += sentences[index].word_count
            distance = abs(running - half)
            if distance < best_distance:
                best_distance = distance
                best_index = index + 1
        return best_index

    @staticmethod
    def _title(book_title: str, first_sentence: SentenceSpan, chapter_number: int) -> str:
        """Title a chapter after its opening sentence when that sentence is short."""

        opening = " ".join(first_sentence.text.split())
        if opening and len(opening) <= 60:
            return f"{book_title} - {opening}"
        return f"{book_title} - Chapter {chapter_number}"
