"""Heading-marker chapter detection.

Responsibilities:
- Scan lines against an ordered list of heading pattern tiers.
- Use only the most specific tier that matches at least two lines.
- Build chapters between consecutive markers, discarding short false positives.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

from ..models.datatypes import DetectionResult
from .base import slice_chapter

_NUMBER_TOKEN = (
    r"\d+|[IVXLCDM]+|One|Two|Three|Four|Five|Six|Seven|Eight|Nine|Ten|Eleven|Twelve"
    r"|Thirteen|Fourteen|Fifteen|Sixteen|Seventeen|Eighteen|Nineteen|Twenty"
)


@dataclass(frozen=True, slots=True)
class PatternTier:
    """One heading pattern with its label and confidence."""

    label: str
    regex: re.Pattern[str]
    confidence: float


PATTERN_TIERS: tuple[PatternTier, ...] = (
    PatternTier(
        label="Chapter",
        regex=re.compile(rf"^chapter\s+({_NUMBER_TOKEN})(?:\s*[:.\-]\s*(.*))?$", re.IGNORECASE),
        confidence=0.95,
    ),
    PatternTier(
        label="Part",
        regex=re.compile(
            r"^part\s+(\d+|[IVXLCDM]+|One|Two|Three|Four|Five)(?:\s*[:.\-]\s*(.*))?$",
            re.IGNORECASE,
        ),
        confidence=0.90,
    ),
    PatternTier(
        label="Chapter",
        regex=re.compile(r"^(\d+)[.)]\s+(.{10,80})$"),
        confidence=0.75,
    ),
    PatternTier(
        label="",
        regex=re.compile(r"^[A-Z][A-Z\s]{2,49}$"),
        confidence=0.60,
    ),
)

MIN_CHAPTER_CHARS = 500

_ALL_CAPS_RE = re.compile(r"^[A-Z\s]+$")
_NUMBERED_RE = re.compile(r"^\d+[.)]")


@dataclass(frozen=True, slots=True)
class _Line:
    offset: int
    text: str


@dataclass(frozen=True, slots=True)
class _Marker:
    offset: int
    title: str
    strength: float


class PatternStrategy:
    """Detect chapters from explicit heading markers."""

    name = "pattern"

    def __init__(self, tiers: tuple[PatternTier, ...] = PATTERN_TIERS) -> None:
        """Initialize the strategy with ordered pattern tiers, most specific first."""

        self.tiers = tiers

    def detect(self, text: str, title: str, genre: str | None = None) -> DetectionResult | None:
        """Return marker-based chapters from the best matching tier."""

        lines = self._lines(text)
        for tier in self.tiers:
            markers = self._markers(lines, tier)
            if len(markers) < 2:
                continue
            chapters = []
            for index, marker in enumerate(markers):
                end = markers[index + 1].offset if index + 1 < len(markers) else len(text)
                chapter = slice_chapter(
                    text,
                    start=marker.offset,
                    end=end,
                    title=marker.title,
                    method=self.name,
                    confidence=tier.confidence,
                    boundary_strength=marker.strength,
                )
                if len(chapter.content) > MIN_CHAPTER_CHARS:
                    chapters.append(chapter)
            if not chapters:
                return None
            return DetectionResult(
                method=self.name,
                confidence=tier.confidence,
                chapters=tuple(chapters),
                marker_based=True,
            )
        return None

    def _lines(self, text: str) -> list[_Line]:
        """Split text into lines with the offset of each line's first character."""

        lines: list[_Line] = []
        offset = 0
        for raw_line in text.splitlines(keepends=True):
            lines.append(_Line(offset=offset, text=raw_line.rstrip("\r\n")))
            offset += len(raw_line)
        return lines

    def _markers(self, lines: list[_Line], tier: PatternTier) -> list[_Marker]:
        """Return every line matching one tier, in text order."""

        markers: list[_Marker] = []
        for index, line in enumerate(lines):
            stripped = line.text.strip()
            if len(stripped) < 3 or len(stripped) > 150:
                continue
            match = tier.regex.match(stripped)
            if match is None:
                continue
            leading = len(line.text) - len(line.text.lstrip())
            markers.append(
                _Marker(
                    offset=line.offset + leading,
                    title=self._title(tier, match, stripped),
                    strength=self._boundary_strength(lines, index),
                )
            )
        return markers

    @staticmethod
    def _title(tier: PatternTier, match: re.Match[str], line: str) -> str:
        """Normalize a heading into `Label N: Title`, or keep the raw line."""

        if not tier.label or match.lastindex is None:
            return line
        number = match.group(1)
        heading = (match.group(2) or "").strip() if match.lastindex >= 2 else ""
        if heading:
            return f"{tier.label} {number}: {heading}"
        return f"{tier.label} {number}"

    @staticmethod
    def _boundary_strength(lines: list[_Line], index: int) -> float:
        """Score how clearly a heading line stands apart from body text."""

        strength = 0.5
        previous = lines[index - 1].text.strip() if index > 0 else ""
        following = lines[index + 1].text.strip() if index + 1 < len(lines) else ""
        line = lines[index].text.strip()
        if not previous and not following:
            strength += 0.3
        if _ALL_CAPS_RE.match(line):
            strength += 0.2
        if _NUMBERED_RE.match(line):
            strength += 0.2
        return min(strength, 1.0)
