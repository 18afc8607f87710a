"""Deterministic text cleaning rules for extracted PDF text.

Responsibilities:
- Provide composable cleanup rules for PDF-derived text artifacts.
- Keep preprocessing predictable so identical bytes always yield identical text.
"""

from __future__ import annotations

import re
from typing import Protocol


class CleanerRule(Protocol):
    """Protocol for text cleaning rules."""

    def apply(self, text: str) -> str:
        """Apply a single cleaning transformation."""


class RemovePageNumbers:
    """Remove lines that hold nothing but a page number."""

    _PATTERN = re.compile(r"(?m)^[ \t]*\d+[ \t]*$\n?")

    def apply(self, text: str) -> str:
        """Apply page-number cleanup rule."""

        return self._PATTERN.sub("", text)


class RemovePageOfPageLines:
    """Remove `Page X of Y` boilerplate lines."""

    _PATTERN = re.compile(r"(?im)^[ \t]*page[ \t]+\d+[ \t]+of[ \t]+\d+[ \t]*$\n?")

    def apply(self, text: str) -> str:
        """Apply page-of-page cleanup rule."""

        return self._PATTERN.sub("", text)


class RemoveRunningHeaders:
    """Remove `Chapter X Page Y` running headers repeated on every page."""

    _PATTERN = re.compile(r"(?im)^[ \t]*chapter[ \t]+\d+[ \t]+page[ \t]+\d+[ \t]*$\n?")

    def apply(self, text: str) -> str:
        """Apply running-header cleanup rule."""

        return self._PATTERN.sub("", text)


class FormFeedsToParagraphs:
    """Turn page-break form feeds into paragraph breaks."""

    def apply(self, text: str) -> str:
        """Replace form feeds with a blank line."""

        return text.replace("\f", "\n\n")


class NormalizeQuotes:
    """Normalize mixed quote characters."""

    def apply(self, text: str) -> str:
        """Convert selected Unicode quotes to ASCII equivalents."""

        return (
            text.replace("“", '"')
            .replace("”", '"')
            .replace("‘", "'")
            .replace("’", "'")
        )


class CollapseWhitespace:
    """Normalize horizontal whitespace runs and strip line edges."""

    def apply(self, text: str) -> str:
        """Collapse spaces/tabs to one space and trim every line."""

        text = re.sub(r"[ \t\r\v]+", " ", text)
        return re.sub(r"(?m)^ | $", "", text)


class CollapseBlankLines:
    """Cap blank-line runs at two blank lines."""

    def apply(self, text: str) -> str:
        """Collapse four or more newlines into three."""

        return re.sub(r"\n{4,}", "\n\n\n", text)


class TextCleaner:
    """Apply a sequence of deterministic cleaner rules."""

    def __init__(self, rules: list[CleanerRule] | None = None) -> None:
        """Initialize with custom rules or the default extraction cleanup sequence."""

        self.rules = rules or [
            RemovePageNumbers(),
            RemovePageOfPageLines(),
            RemoveRunningHeaders(),
            FormFeedsToParagraphs(),
            NormalizeQuotes(),
            CollapseWhitespace(),
            CollapseBlankLines(),
        ]

    def clean(self, text: str) -> str:
        """Apply all configured rules in order and trim the result."""

        current = text
        for rule in self.rules:
            current = rule.apply(current)
        return current.strip()
