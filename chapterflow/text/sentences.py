"""Sentence boundary detection for chapter segmentation.

Responsibilities:
- Split text into sentence spans with character offsets and word counts.
- Locate sentence-end cut points inside a window for boundary optimization.
- Avoid false boundaries on decimals, common abbreviations, and acronyms.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

from .metrics import count_words


@dataclass(frozen=True, slots=True)
class SentenceSpan:
    """One sentence with its offsets into the source text."""

    start: int
    end: int
    text: str
    word_count: int


class SentenceBoundaryFinder:
    """Find sentence ends with decimal/abbreviation/acronym safeguards."""

    _TERMINATORS = ".!?"
    _TRAILING_SENTENCE_CLOSERS = "\"')]}»”"
    _COMMON_ABBREVIATIONS = frozenset(
        {
            "mr.",
            "mrs.",
            "ms.",
            "dr.",
            "prof.",
            "sr.",
            "jr.",
            "st.",
            "etc.",
            "e.g.",
            "i.e.",
            "vs.",
            "no.",
            "fig.",
            "al.",
        }
    )
    _ACRONYM_PATTERN = re.compile(r"(?:[A-Za-z]\.){2,}$")
    _TERMINATOR_RE = re.compile(r"[.!?]")

    def split_sentences(self, text: str) -> list[SentenceSpan]:
        """Split text into ordered sentence spans; trailing text forms a last sentence."""

        spans: list[SentenceSpan] = []
        cursor = 0
        for match in self._TERMINATOR_RE.finditer(text):
            index = match.start()
            if index < cursor:
                continue
            end = self._sentence_end(text, index)
            if end is None:
                continue
            self._append_span(spans, text, cursor, end)
            cursor = end
        self._append_span(spans, text, cursor, len(text))
        return spans

    def boundaries(self, text: str, low: int, high: int) -> list[int]:
        """Return sentence-end offsets `p` with `low <= p <= high`, ascending."""

        low = max(0, low)
        high = min(len(text), high)
        if high < low:
            return []
        found: set[int] = set()
        scan_start = max(0, low - len(self._TRAILING_SENTENCE_CLOSERS) - 1)
        for index in range(scan_start, high):
            if text[index] not in self._TERMINATORS:
                continue
            end = self._sentence_end(text, index)
            if end is not None and low <= end <= high:
                found.add(end)
        return sorted(found)

    def _append_span(self, spans: list[SentenceSpan], text: str, start: int, end: int) -> None:
        """Append the stripped slice `text[start:end]` when it is not blank."""

        while start < end and text[start].isspace():
            start += 1
        stripped_end = end
        while stripped_end > start and text[stripped_end - 1].isspace():
            stripped_end -= 1
        if stripped_end <= start:
            return
        sentence = text[start:stripped_end]
        spans.append(
            SentenceSpan(
                start=start,
                end=stripped_end,
                text=sentence,
                word_count=count_words(sentence),
            )
        )

    def _sentence_end(self, text: str, punctuation_index: int) -> int | None:
        """Return the offset just past a sentence-ending terminator and its closers."""

        if not self._is_sentence_boundary(text, punctuation_index):
            return None
        end = punctuation_index + 1
        text_length = len(text)
        while end < text_length and text[end] in self._TERMINATORS:
            end += 1
        while end < text_length and text[end] in self._TRAILING_SENTENCE_CLOSERS:
            end += 1
        if end < text_length and not text[end].isspace():
            return None
        return end

    def _is_sentence_boundary(self, text: str, punctuation_index: int) -> bool:
        """Return whether punctuation at index terminates a sentence."""

        punctuation = text[punctuation_index]
        if punctuation != ".":
            return True
        if self._is_decimal_period(text, punctuation_index):
            return False
        if self._is_abbreviation_period(text, punctuation_index):
            return False
        return True

    def _is_decimal_period(self, text: str, punctuation_index: int) -> bool:
        """Return whether a period is part of a decimal number."""

        if punctuation_index <= 0 or punctuation_index + 1 >= len(text):
            return False
        return text[punctuation_index - 1].isdigit() and text[punctuation_index + 1].isdigit()

    def _is_abbreviation_period(self, text: str, punctuation_index: int) -> bool:
        """Return whether a period belongs to a likely abbreviation token."""

        start = punctuation_index
        while start > 0 and (text[start - 1].isalpha() or text[start - 1] == "."):
            start -= 1
        token = text[start : punctuation_index + 1].lower()
        if token in self._COMMON_ABBREVIATIONS:
            return True

        acronym_start = max(0, punctuation_index - 8)
        acronym_window = text[acronym_start : punctuation_index + 1]
        return bool(self._ACRONYM_PATTERN.search(acronym_window))


def split_sentences(text: str) -> list[SentenceSpan]:
    """Split text into sentence spans with the default boundary finder."""

    return SentenceBoundaryFinder().split_sentences(text)
