"""Text processing utilities for cleanup, sentences, metrics, and highlights."""

from .cleaners import TextCleaner
from .highlights import extract_highlight_quotes
from .metrics import (
    content_hash,
    count_words,
    estimate_pages,
    reading_time_minutes,
    word_spans,
)
from .sentences import SentenceBoundaryFinder, SentenceSpan, split_sentences

__all__ = [
    "SentenceBoundaryFinder",
    "SentenceSpan",
    "TextCleaner",
    "content_hash",
    "count_words",
    "estimate_pages",
    "extract_highlight_quotes",
    "reading_time_minutes",
    "split_sentences",
    "word_spans",
]
