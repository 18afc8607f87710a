"""Unit tests for chapter detection strategies, selection, and boundary optimization."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import pytest

from chapterflow.detection import (
    AdaptiveStrategy,
    BoundaryOptimizer,
    ChapterDetector,
    FallbackChunker,
    PatternStrategy,
    SelectionWeights,
    SemanticStrategy,
    StructuralStrategy,
    classify_document,
    score_result,
    select_best,
    size_consistency,
    transition_score,
)
from chapterflow.detection.adaptive import DOCUMENT_CLASSES, even_chapter_sizes
from chapterflow.detection.semantic import SemanticEnvelope
from chapterflow.detection.structural import break_strength
from chapterflow.models.datatypes import DetectedChapter, DetectionResult

BODY = "The traveler studied old maps and wrote careful notes about every road. " * 9
FILLER = "The river carried small boats toward the quiet harbor."
STRONG_TRANSITION = "Meanwhile later that morning the crew walked across the old bridge."


def _chapter(
    word_count: int, *, start: int = 0, end: int = 0, content: str = "x"
) -> DetectedChapter:
    """Build a detected chapter with only the fields scoring looks at."""

    return DetectedChapter(
        title="t",
        content=content,
        word_count=word_count,
        start_index=start,
        end_index=end,
        detection_method="test",
        confidence=0.5,
    )


def _result(method: str, confidence: float, word_counts: Sequence[int]) -> DetectionResult:
    """Build a strategy result with chapters of the given sizes."""

    return DetectionResult(
        method=method,
        confidence=confidence,
        chapters=tuple(_chapter(count) for count in word_counts),
    )


def test_pattern_strategy_normalizes_chapter_headings(
    build_book: Callable[[Sequence[str]], str],
) -> None:
    """`Chapter N: Title` headings should produce marker-based chapters."""

    result = PatternStrategy().detect(build_book(["Origins", "Departure"]), "Atlas")

    assert result is not None
    assert result.method == "pattern"
    assert result.marker_based is True
    assert result.confidence == 0.95
    assert [chapter.title for chapter in result.chapters] == [
        "Chapter 1: Origins",
        "Chapter 2: Departure",
    ]
    assert [chapter.word_count for chapter in result.chapters] == [111, 111]
    assert result.chapters[0].content.startswith("Chapter 1: Origins\nThe traveler")


def test_pattern_strategy_falls_through_to_all_caps_headings() -> None:
    """Without numbered headings, standalone uppercase lines should be used."""

    text = f"THE HARBOR\n\n{BODY}\n\nTHE MOUNTAIN\n\n{BODY}"

    result = PatternStrategy().detect(text, "Atlas")

    assert result is not None
    assert result.confidence == 0.60
    assert [chapter.title for chapter in result.chapters] == ["THE HARBOR", "THE MOUNTAIN"]
    assert result.chapters[0].boundary_strength == 1.0


def test_pattern_strategy_reads_numbered_headings() -> None:
    """`N. Title` lines should be labelled as chapters with tier confidence."""

    text = f"1. The Long Road Home\n{BODY}\n2. Across the Salt Flats\n{BODY}"

    result = PatternStrategy().detect(text, "Atlas")

    assert result is not None
    assert result.confidence == 0.75
    assert [chapter.title for chapter in result.chapters] == [
        "Chapter 1: The Long Road Home",
        "Chapter 2: Across the Salt Flats",
    ]
    assert result.chapters[0].boundary_strength == pytest.approx(0.7)


def test_pattern_strategy_drops_short_sections_and_needs_two_markers() -> None:
    """Sections under 500 characters are false positives; one marker is not enough."""

    text = f"Chapter 1: Start\n{BODY}\nChapter 2: Aside\nA short note.\nChapter 3: End\n{BODY}"

    result = PatternStrategy().detect(text, "Atlas")

    assert result is not None
    assert [chapter.title for chapter in result.chapters] == [
        "Chapter 1: Start",
        "Chapter 3: End",
    ]
    assert PatternStrategy().detect(f"Chapter 1: Only\n{BODY}", "Atlas") is None


def test_structural_break_strength_scores_context() -> None:
    """Breaks between long, punctuated segments should score highest."""

    long_before = "word " * 101 + "end."
    long_after = "Next " + "word " * 101

    assert break_strength(long_before, long_after) == 1.0
    assert break_strength("short", "text") == pytest.approx(0.3)
    assert break_strength("Ends here.", "Begins there") == pytest.approx(0.6)


def test_structural_strategy_cuts_at_strong_breaks() -> None:
    """Multi-blank-line breaks between long segments should become chapter cuts."""

    segment = (BODY * 2).strip()
    text = f"{segment}\n\n\n{segment}"

    result = StructuralStrategy().detect(text, "Atlas")

    assert result is not None
    assert result.method == "structural"
    assert result.confidence == 0.7
    assert [chapter.word_count for chapter in result.chapters] == [216, 216]
    assert [chapter.title for chapter in result.chapters] == ["Chapter 1", "Chapter 2"]
    assert StructuralStrategy().detect(segment, "Atlas") is None


def test_transition_score_weights_markers_in_sentence_head() -> None:
    """Markers in the first twelve words raise the score; later ones do not."""

    assert transition_score(FILLER) == pytest.approx(0.3)
    assert transition_score("Later that morning the crew walked across the old bridge.") == (
        pytest.approx(0.75)
    )
    assert transition_score(STRONG_TRANSITION) == pytest.approx(0.95)
    assert transition_score(
        "One two three four five six seven eight nine ten eleven twelve later"
    ) == pytest.approx(0.3)
    assert transition_score(
        "Meanwhile later then now after that morning evening night at in across"
    ) == 1.0


def test_semantic_strategy_ignores_short_documents() -> None:
    """Documents of 300 words or fewer are left to other strategies."""

    assert SemanticStrategy().detect(" ".join([FILLER] * 33), "Atlas") is None


def test_semantic_strategy_merges_short_trailing_remainder() -> None:
    """A short final group should merge into the previous chapter when it fits."""

    text = " ".join(
        [FILLER] * 20 + [STRONG_TRANSITION] + [FILLER] * 14 + [STRONG_TRANSITION] + [FILLER] * 2
    )
    strategy = SemanticStrategy(SemanticEnvelope(target_words=1000, min_words=100, max_words=400))

    result = strategy.detect(text, "Atlas")

    assert result is not None
    assert [chapter.word_count for chapter in result.chapters] == [180, 166]
    assert [chapter.title for chapter in result.chapters] == [
        f"Atlas - {FILLER}",
        "Atlas - Chapter 2",
    ]
    assert [chapter.confidence for chapter in result.chapters] == [pytest.approx(0.95), 0.7]
    assert result.confidence == 0.8


def test_semantic_strategy_rebalances_remainder_that_cannot_merge() -> None:
    """A short final group too large to merge should split the last two groups evenly."""

    strategy = SemanticStrategy(SemanticEnvelope(target_words=100, min_words=50, max_words=120))

    result = strategy.detect(" ".join([FILLER] * 40), "Atlas")

    assert result is not None
    assert [chapter.word_count for chapter in result.chapters] == [117, 117, 63, 63]
    assert max(chapter.word_count for chapter in result.chapters) <= 120


def test_semantic_strategy_splits_long_marker_free_text(semantic_text: str) -> None:
    """A 50k-word marker-free text should split at each scene change."""

    result = SemanticStrategy().detect(semantic_text, "Atlas")

    assert result is not None
    assert len(result.chapters) == 19
    assert {chapter.word_count for chapter in result.chapters} == {2602}
    assert result.confidence == pytest.approx((18 * 0.75 + 0.7) / 19)


@pytest.mark.parametrize(
    ("word_count", "text", "genre", "expected"),
    [
        (19_999, "", None, "short_form"),
        (20_000, "", None, "medium_form"),
        (80_000, "", None, "long_form"),
        (200_000, "a novel", None, "narrative"),
        (200_000, "see the References section", None, "academic"),
        (250_000, "", "Academic monograph", "academic"),
    ],
)
def test_classify_document_uses_length_then_academic_cues(
    word_count: int, text: str, genre: str | None, expected: str
) -> None:
    """Document classes should follow word-count thresholds and academic cues."""

    assert classify_document(word_count, text, genre) == expected


def test_even_chapter_sizes_stay_inside_envelope() -> None:
    """Chapter sizes should be near-equal and respect the class envelope."""

    medium = DOCUMENT_CLASSES["medium_form"]
    long_form = DOCUMENT_CLASSES["long_form"]
    short = DOCUMENT_CLASSES["short_form"]

    assert even_chapter_sizes(0, medium) == []
    assert even_chapter_sizes(4500, medium) == [2250, 2250]
    assert even_chapter_sizes(10, short) == [10]
    sizes = even_chapter_sizes(100_001, long_form)
    assert sum(sizes) == 100_001
    assert max(sizes) - min(sizes) <= 1
    assert long_form.min_words <= min(sizes) <= max(sizes) <= long_form.max_words


def test_adaptive_strategy_names_parts_after_document_title() -> None:
    """Adaptive chapters should carry the class in the method and numbered part titles."""

    result = AdaptiveStrategy().detect("alpha beta gamma", "Atlas")

    assert result is not None
    assert result.method == "adaptive_short_form"
    assert [(chapter.title, chapter.content) for chapter in result.chapters] == [
        ("Atlas - Part 1", "alpha beta gamma")
    ]
    assert AdaptiveStrategy().detect("   ", "Atlas") is None


def test_fallback_chunker_cuts_fixed_word_chunks() -> None:
    """Fallback chunks should hold exactly `chunk_words` words except the last."""

    result = FallbackChunker(chunk_words=2).detect("a b c d e", "Atlas")

    assert result.method == "fallback_chunking"
    assert result.confidence == 0.3
    assert [chapter.content for chapter in result.chapters] == ["a b", "c d", "e"]
    assert [chapter.title for chapter in result.chapters] == [
        "Atlas - Part 1",
        "Atlas - Part 2",
        "Atlas - Part 3",
    ]
    with pytest.raises(ValueError):
        FallbackChunker(chunk_words=0)


def test_size_consistency_edge_cases() -> None:
    """Consistency is 1 for equal sizes and floors at 0 for wild variance."""

    assert size_consistency([]) == 0.0
    assert size_consistency([0, 0]) == 0.0
    assert size_consistency([100, 100]) == 1.0
    assert size_consistency([50, 150]) == pytest.approx(0.75)
    assert size_consistency([0, 0, 0, 100]) == 0.0


def test_score_result_applies_count_window_and_method_bonus() -> None:
    """Scores should reward chapter counts in range and penalize too many chapters."""

    weights = SelectionWeights()

    assert score_result(_result("adaptive_medium_form", 0.5, [100] * 4), weights) == (
        pytest.approx(0.7)
    )
    assert score_result(_result("pattern", 0.5, [100] * 4), weights) == pytest.approx(0.8)
    assert score_result(_result("structural", 0.5, [100] * 2), weights) == pytest.approx(0.4)
    assert score_result(_result("structural", 0.5, [100] * 51), weights) == pytest.approx(0.2)


def test_select_best_skips_unusable_results_and_keeps_first_on_ties() -> None:
    """`None` and empty results are skipped; equal scores keep the earlier strategy."""

    weights = SelectionWeights()
    first = _result("structural", 0.6, [100] * 3)
    second = _result("adaptive_short_form", 0.6, [100] * 3)

    best = select_best([None, _result("semantic", 0.9, []), first, second], weights)

    assert best is not None
    assert best.method == "structural"
    assert best.score == pytest.approx(0.4 * 0.6 + 0.3 + 0.2)
    assert select_best([None], weights) is None


def test_boundary_optimizer_moves_shared_cut_for_contiguous_results() -> None:
    """Contiguous chapters should share the cut moved to the nearest sentence end."""

    text = "Alpha beta gamma. Delta epsilon zeta. Eta theta iota."
    result = DetectionResult(
        method="adaptive_short_form",
        confidence=0.8,
        chapters=(
            _chapter(4, start=0, end=24, content=text[0:24]),
            _chapter(5, start=24, end=len(text), content=text[24:].strip()),
        ),
    )

    optimized = BoundaryOptimizer().optimize(text, result)

    assert [(chapter.start_index, chapter.end_index) for chapter in optimized.chapters] == [
        (0, 17),
        (17, len(text)),
    ]
    assert [chapter.content for chapter in optimized.chapters] == [
        "Alpha beta gamma.",
        "Delta epsilon zeta. Eta theta iota.",
    ]
    assert [chapter.word_count for chapter in optimized.chapters] == [3, 6]


def test_boundary_optimizer_keeps_marker_starts_fixed() -> None:
    """Marker-based results only pull the previous end back to a sentence end."""

    text = "Alpha beta gamma. Delta epsilon zeta. Eta theta iota."
    second = _chapter(5, start=24, end=len(text), content=text[24:].strip())
    result = DetectionResult(
        method="pattern",
        confidence=0.95,
        chapters=(_chapter(4, start=0, end=24, content=text[0:24]), second),
        marker_based=True,
    )

    optimized = BoundaryOptimizer().optimize(text, result)

    assert optimized.chapters[0].end_index == 17
    assert optimized.chapters[1] == second
    unchanged = BoundaryOptimizer(window_chars=5).optimize(text, result)
    assert unchanged.chapters == result.chapters


def test_detector_prefers_pattern_result_for_headed_text(
    build_book: Callable[[Sequence[str]], str],
) -> None:
    """Headed text should select the pattern strategy and keep heading titles."""

    text = build_book(["Origins", "Departure"])
    detector = ChapterDetector()

    scores = {result.method: result.score for result in detector.evaluate(text, "Atlas")}
    result = detector.detect(text, "Atlas")

    assert scores == {
        "pattern": pytest.approx(0.68),
        "adaptive_short_form": pytest.approx(0.52),
    }
    assert result.method == "pattern"
    assert [chapter.title for chapter in result.chapters] == [
        "Chapter 1: Origins",
        "Chapter 2: Departure",
    ]
    assert [chapter.word_count for chapter in result.chapters] == [111, 111]


def test_detector_prefers_semantic_result_for_long_marker_free_text(semantic_text: str) -> None:
    """A long marker-free text should select scene-aligned semantic chapters."""

    result = ChapterDetector().detect(semantic_text, "Atlas")

    assert result.method == "semantic"
    assert result.score == pytest.approx(0.4 * result.confidence + 0.3 + 0.2 + 0.1)
    assert len(result.chapters) == 19
    assert {chapter.word_count for chapter in result.chapters} == {2602}
    assert {chapter.title for chapter in result.chapters} == {
        "Atlas - Later that morning the crew walked across the old bridge."
    }


def test_detector_falls_back_to_uniform_chunks() -> None:
    """When no strategy yields chapters, the fallback chunker must."""

    text = "word " * 4500

    result = ChapterDetector(strategies=()).detect(text, "Atlas")

    assert result.method == "fallback_chunking"
    assert [chapter.word_count for chapter in result.chapters] == [2000, 2000, 500]
    consistency = size_consistency([2000, 2000, 500])
    assert result.score == pytest.approx(0.4 * 0.3 + 0.3 + 0.2 * consistency)


def test_detector_is_deterministic(build_book: Callable[[Sequence[str]], str]) -> None:
    """Detecting the same text twice should return identical results."""

    text = build_book(["Origins", "Departure", "Harbor"])
    detector = ChapterDetector()

    assert detector.detect(text, "Atlas") == detector.detect(text, "Atlas")
