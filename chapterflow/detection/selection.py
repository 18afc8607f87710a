"""Scoring and selection across detection strategy results.

Responsibilities:
- Score each result from confidence, chapter count, size consistency, and method.
- Pick the highest score deterministically, earlier strategies winning ties.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace

from ..models.datatypes import DetectionResult


@dataclass(frozen=True, slots=True)
class SelectionWeights:
    """Tunable weights of the strategy selection score."""

    confidence: float = 0.4
    count_bonus: float = 0.3
    min_chapters: int = 3
    max_chapters: int = 50
    over_count_penalty: float = 0.2
    consistency: float = 0.2
    method_bonus: float = 0.1
    bonus_methods: tuple[str, ...] = ("pattern", "semantic")


def size_consistency(word_counts: Sequence[int]) -> float:
    """Return `1 - variance / mean**2`, floored at zero; 0.0 for no chapters."""

    if not word_counts:
        return 0.0
    mean = sum(word_counts) / len(word_counts)
    if mean <= 0:
        return 0.0
    variance = sum((count - mean) ** 2 for count in word_counts) / len(word_counts)
    return max(0.0, 1.0 - variance / (mean * mean))


def score_result(result: DetectionResult, weights: SelectionWeights) -> float:
    """Return the selection score of one strategy result."""

    chapter_count = len(result.chapters)
    score = weights.confidence * result.confidence
    if weights.min_chapters <= chapter_count <= weights.max_chapters:
        score += weights.count_bonus
    elif chapter_count > weights.max_chapters:
        score -= weights.over_count_penalty
    score += weights.consistency * size_consistency(
        [chapter.word_count for chapter in result.chapters]
    )
    if result.method in weights.bonus_methods:
        score += weights.method_bonus
    return score


def rank_results(
    results: Sequence[DetectionResult | None],
    weights: SelectionWeights,
) -> list[DetectionResult]:
    """Return usable results with their scores set, in the original order."""

    return [
        replace(result, score=score_result(result, weights))
        for result in results
        if result is not None and result.chapters
    ]


def select_best(
    results: Sequence[DetectionResult | None],
    weights: SelectionWeights,
) -> DetectionResult | None:
    """Return the highest-scoring usable result; the first one wins ties."""

    best: DetectionResult | None = None
    for result in rank_results(results, weights):
        if best is None or result.score > best.score:
            best = result
    return best
