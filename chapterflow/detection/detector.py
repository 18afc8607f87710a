"""Multi-strategy chapter boundary detector.

Responsibilities:
- Run every detection strategy over the cleaned text.
- Select the best result by score, falling back to uniform chunks.
- Align the winning result's cut points to sentence ends.

Key types:
- `ChapterDetector`: composition root for strategies, selection, and optimization.
"""

from __future__ import annotations

from collections.abc import Sequence

from ..models.datatypes import DetectionResult
from .adaptive import AdaptiveStrategy
from .base import DetectionStrategy
from .boundaries import BoundaryOptimizer
from .fallback import FallbackChunker
from .pattern import PatternStrategy
from .selection import SelectionWeights, rank_results, score_result, select_best
from .semantic import SemanticStrategy
from .structural import StructuralStrategy

ALGORITHM_VERSION = "multi-strategy-v3"


def default_strategies() -> tuple[DetectionStrategy, ...]:
    """Return the built-in strategies in tie-break order."""

    return (PatternStrategy(), StructuralStrategy(), SemanticStrategy(), AdaptiveStrategy())


class ChapterDetector:
    """Pick the best chapter segmentation among independent strategies."""

    algorithm_version = ALGORITHM_VERSION

    def __init__(
        self,
        weights: SelectionWeights | None = None,
        strategies: Sequence[DetectionStrategy] | None = None,
        fallback: FallbackChunker | None = None,
        optimizer: BoundaryOptimizer | None = None,
    ) -> None:
        """Initialize the detector with selection weights and collaborators."""

        self.weights = weights or SelectionWeights()
        self.strategies = tuple(strategies) if strategies is not None else default_strategies()
        self.fallback = fallback or FallbackChunker()
        self.optimizer = optimizer or BoundaryOptimizer()

    def evaluate(self, text: str, title: str, genre: str | None = None) -> list[DetectionResult]:
        """Return every usable strategy result with its selection score."""

        results = [strategy.detect(text, title, genre) for strategy in self.strategies]
        return rank_results(results, self.weights)

    def detect(self, text: str, title: str, genre: str | None = None) -> DetectionResult:
        """Return the optimized best result; never empty for non-blank text."""

        results = [strategy.detect(text, title, genre) for strategy in self.strategies]
        best = select_best(results, self.weights)
        if best is None:
            fallback = self.fallback.detect(text, title, genre)
            best = DetectionResult(
                method=fallback.method,
                confidence=fallback.confidence,
                chapters=fallback.chapters,
                score=score_result(fallback, self.weights),
            )
        return self.optimizer.optimize(text, best)
