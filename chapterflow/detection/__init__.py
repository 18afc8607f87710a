"""Chapter boundary detection strategies, selection, and optimization."""

from .adaptive import AdaptiveStrategy, classify_document
from .base import DetectionStrategy
from .boundaries import BoundaryOptimizer
from .detector import ALGORITHM_VERSION, ChapterDetector, default_strategies
from .fallback import FallbackChunker
from .pattern import PatternStrategy
from .selection import SelectionWeights, score_result, select_best, size_consistency
from .semantic import SemanticStrategy, transition_score
from .structural import StructuralStrategy

__all__ = [
    "ALGORITHM_VERSION",
    "AdaptiveStrategy",
    "BoundaryOptimizer",
    "ChapterDetector",
    "DetectionStrategy",
    "FallbackChunker",
    "PatternStrategy",
    "SelectionWeights",
    "SemanticStrategy",
    "StructuralStrategy",
    "classify_document",
    "default_strategies",
    "score_result",
    "select_best",
    "size_consistency",
    "transition_score",
]
