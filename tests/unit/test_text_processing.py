"""Unit tests for text cleaning, metrics, sentence boundaries, and highlights."""

from __future__ import annotations

from chapterflow.text.cleaners import TextCleaner
from chapterflow.text.highlights import extract_highlight_quotes
from chapterflow.text.metrics import (
    content_hash,
    count_words,
    estimate_pages,
    reading_time_minutes,
    word_spans,
)
from chapterflow.text.sentences import SentenceBoundaryFinder, split_sentences


def test_text_cleaner_removes_page_artifacts_and_normalizes_whitespace() -> None:
    """Cleaning should drop page numbers, page-of lines, and running headers."""

    raw = (
        "Chapter 1: Origins\n"
        "The   road\tbegan “here”.  \n"
        "12\n"
        "Page 3 of 40\n"
        "Chapter 1 Page 4\n"
        "It wandered ‘east’.\f"
        "Next page text.\n\n\n\n\n\nAfter a long gap."
    )

    cleaned = TextCleaner().clean(raw)

    assert cleaned == (
        "Chapter 1: Origins\n"
        'The road began "here".\n'
        "It wandered 'east'.\n\n"
        "Next page text.\n\n\n"
        "After a long gap."
    )


def test_text_cleaner_is_deterministic() -> None:
    """Cleaning the same input twice should produce identical text."""

    raw = "  Alpha  \n\n\n\n\nBeta\n7\n"
    cleaner = TextCleaner()

    assert cleaner.clean(raw) == cleaner.clean(raw) == "Alpha\n\n\nBeta"


def test_word_metrics_and_reading_time() -> None:
    """Word counts, reading time, and page estimates should follow fixed rates."""

    assert count_words("  one two\nthree\tfour ") == 4
    assert reading_time_minutes(0) == 0
    assert reading_time_minutes(1) == 1
    assert reading_time_minutes(401) == 3
    assert estimate_pages(0) == 0
    assert estimate_pages(251) == 2
    assert word_spans("ab  cd") == [(0, 2), (4, 6)]


def test_content_hash_is_sha256_of_utf8() -> None:
    """Content hashes should be stable hex digests."""

    assert content_hash("abc") == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )
    assert content_hash("čaj") != content_hash("caj")


def test_split_sentences_respects_abbreviations_and_decimals() -> None:
    """Sentence splitting should not cut on abbreviations, decimals, or acronyms."""

    text = "Dr. Smith paid 3.50 dollars. He met the U.S. envoy! Was it late? Yes"

    sentences = [span.text for span in split_sentences(text)]

    assert sentences == [
        "Dr. Smith paid 3.50 dollars.",
        "He met the U.S. envoy!",
        "Was it late?",
        "Yes",
    ]


def test_sentence_spans_carry_offsets_and_word_counts() -> None:
    """Each span should map back to its slice of the source text."""

    text = "  First one here.  Second one.\n"

    spans = SentenceBoundaryFinder().split_sentences(text)

    assert [(text[span.start : span.end], span.word_count) for span in spans] == [
        ("First one here.", 3),
        ("Second one.", 2),
    ]


def test_boundaries_return_sentence_ends_inside_window() -> None:
    """Boundary lookup should return sentence ends between `low` and `high`."""

    text = 'He said "stop." Then left. Mr. Lee stayed.'
    finder = SentenceBoundaryFinder()

    assert finder.boundaries(text, 0, len(text)) == [15, 26, len(text)]
    assert finder.boundaries(text, 16, 30) == [26]
    assert finder.boundaries(text, 30, 10) == []


def test_extract_highlight_quotes_prefers_quoted_spans_then_marker_sentences() -> None:
    """Highlights should list quoted spans first, then marker sentences, deduplicated."""

    content = (
        'She wrote "every map is a promise about the road ahead" on the wall. '
        "The key is that the traveler never trusted a single road or a single guide. "
        "Short line. "
        'Later she repeated "every map is a promise about the road ahead" again. '
        "Most importantly, the notes were kept in order so nothing was ever lost."
    )

    quotes = extract_highlight_quotes(content)

    assert quotes == (
        "every map is a promise about the road ahead",
        "The key is that the traveler never trusted a single road or a single guide.",
        "Most importantly, the notes were kept in order so nothing was ever lost.",
    )


def test_extract_highlight_quotes_caps_results() -> None:
    """No more than five highlights should be returned."""

    sentence = "It is important to remember every road number {index} before leaving town."
    content = " ".join(sentence.format(index=index) for index in range(10))

    assert len(extract_highlight_quotes(content)) == 5
