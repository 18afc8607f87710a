"""Chapter summarization on top of the OpenAI chat client.

Responsibilities:
- Reuse cached summaries keyed by chapter content, model, and book title.
- Request JSON summaries and fall back to a deterministic sentence on malformed output.
- Leave provider failures to the caller so one chapter cannot sink a batch.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Protocol

from ..cache.content_cache import ContentCache
from ..cache.keys import ai_enhancement_key
from ..models.datatypes import Chapter
from ..telemetry.logger import PipelineLogger
from ..text.metrics import content_hash, count_words
from .prompts import PromptLibrary

FALLBACK_MODEL = "fallback"
MAX_SUMMARY_CHARS = 1000
_EXPECTED_SUMMARY_WORDS = (50, 350)


class ChatClient(Protocol):
    """Subset of the chat client used for summaries."""

    def chat_completion_text(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.0,
        max_tokens: int | None = None,
        response_format: dict[str, str] | None = None,
    ) -> str:
        """Return the assistant text for one chat request."""


@dataclass(frozen=True, slots=True)
class SummaryResult:
    """Summary text with provenance.

    Attributes:
        summary: Summary text, at most 1000 characters.
        model: Model that produced the summary, or `fallback`.
        fallback: Whether the deterministic fallback sentence was used.
        cached: Whether the summary came from the enhancement cache.
    """

    summary: str
    model: str
    fallback: bool = False
    cached: bool = False


def fallback_summary(chapter: Chapter, book_title: str) -> str:
    """Return the deterministic summary used when provider output is unusable."""

    return (
        f"Chapter {chapter.chapter_number} from {book_title}. This chapter contains "
        f"approximately {chapter.word_count} words and covers key topics from the book."
    )


def parse_summary_payload(raw_text: str) -> str | None:
    """Return the `summary` field of a JSON reply, or `None` when unusable."""

    try:
        payload = json.loads(raw_text)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    summary = payload.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        return None
    return summary.strip()[:MAX_SUMMARY_CHARS]


class ChapterSummarizer:
    """Produce one summary per chapter with caching and a safe fallback."""

    def __init__(
        self,
        client: ChatClient,
        model: str = "gpt-4o-mini",
        cache: ContentCache | None = None,
        logger: PipelineLogger | None = None,
    ) -> None:
        self.client = client
        self.model = model
        self.cache = cache
        self.logger = logger
        self.prompts = PromptLibrary()

    def summarize(self, chapter: Chapter, book_title: str) -> SummaryResult:
        """Summarize one chapter.

        Raises:
            OpenAIProviderError: When the provider call fails after client retries.
        """

        cache_key = ai_enhancement_key(content_hash(chapter.content), self.model, book_title)
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None and isinstance(cached.get("summary"), str):
                return SummaryResult(
                    summary=cached["summary"],
                    model=str(cached.get("model", self.model)),
                    cached=True,
                )

        raw_text = self.client.chat_completion_text(
            model=self.model,
            system_prompt=self.prompts.summary_system_prompt(),
            user_prompt=self.prompts.chapter_summary_prompt(
                book_title=book_title,
                chapter_number=chapter.chapter_number,
                chapter_title=chapter.title,
                content=chapter.content,
            ),
            temperature=0.1,
            max_tokens=400,
            response_format={"type": "json_object"},
        )
        summary = parse_summary_payload(raw_text)
        if summary is None:
            self._log("summary_fallback", chapter=chapter.chapter_number)
            return SummaryResult(
                summary=fallback_summary(chapter, book_title),
                model=FALLBACK_MODEL,
                fallback=True,
            )

        words = count_words(summary)
        low, high = _EXPECTED_SUMMARY_WORDS
        if words < low or words > high:
            self._log(
                "summary_length_unusual",
                level="WARNING",
                chapter=chapter.chapter_number,
                words=words,
            )
        if self.cache is not None:
            self.cache.put(cache_key, {"summary": summary, "model": self.model})
        return SummaryResult(summary=summary, model=self.model)

    def _log(self, event: str, level: str = "INFO", **context: object) -> None:
        if self.logger is not None:
            self.logger.log_event("enhance_chapters", event, level=level, **context)
