"""Unit tests for summary prompts, summary parsing, and the chapter summarizer."""

from __future__ import annotations

import io

import pytest

from chapterflow.cache.content_cache import ContentCache
from chapterflow.llm.openai_client import OpenAIProviderError
from chapterflow.llm.prompts import PromptLibrary
from chapterflow.llm.summarizer import ChapterSummarizer, parse_summary_payload
from chapterflow.models.datatypes import Chapter, EnhancementStatus
from chapterflow.storage.db import Database
from chapterflow.telemetry.logger import PipelineLogger


def _chapter(number: int = 3, content: str = "The road bent east. " * 40) -> Chapter:
    """Build a stored chapter to summarize."""

    return Chapter(
        id=number,
        document_id="doc-1",
        chapter_number=number,
        part_number=1,
        title=f"Chapter {number}: Harbor",
        content=content,
        word_count=420,
        reading_time_minutes=3,
        highlight_quotes=(),
        enhancement_status=EnhancementStatus.PENDING,
        metadata={},
    )


def test_chapter_summary_prompt_truncates_long_content() -> None:
    """Content beyond 4000 characters should be cut and marked."""

    prompts = PromptLibrary()

    long_prompt = prompts.chapter_summary_prompt("Atlas", 2, "Departure", "a" * 4001)
    exact_prompt = prompts.chapter_summary_prompt("Atlas", 2, "Departure", "b" * 4000)

    assert "a" * 4000 + "...[truncated]" in long_prompt
    assert "a" * 4001 not in long_prompt
    assert "...[truncated]" not in exact_prompt
    assert 'BOOK: "Atlas"' in long_prompt
    assert 'CHAPTER: 2 - "Departure"' in long_prompt
    assert "valid JSON only" in prompts.summary_system_prompt()


@pytest.mark.parametrize(
    ("raw_text", "expected"),
    [
        ('{"summary": "  The crew crosses the bridge.  "}', "The crew crosses the bridge."),
        ('{"summary": ""}', None),
        ('{"summary": 42}', None),
        ("[1, 2]", None),
        ("not json", None),
    ],
)
def test_parse_summary_payload(raw_text: str, expected: str | None) -> None:
    """Only a non-blank string `summary` field is accepted."""

    assert parse_summary_payload(raw_text) == expected


def test_parse_summary_payload_caps_length() -> None:
    """Summaries are truncated to 1000 characters."""

    parsed = parse_summary_payload('{"summary": "' + "x" * 1500 + '"}')

    assert parsed == "x" * 1000


def test_summarizer_requests_json_summary(chat_client) -> None:
    """The summarizer should send a JSON-mode request and return the parsed summary."""

    result = ChapterSummarizer(chat_client, model="gpt-4o-mini").summarize(_chapter(), "Atlas")

    assert result.summary == "Chapter 3 follows the traveler along old roads."
    assert result.model == "gpt-4o-mini"
    assert result.fallback is False
    assert result.cached is False
    request = chat_client.calls[0]
    assert request["model"] == "gpt-4o-mini"
    assert request["temperature"] == 0.1
    assert request["max_tokens"] == 400
    assert request["response_format"] == {"type": "json_object"}


def test_summarizer_reuses_cached_summaries(chat_client, database: Database) -> None:
    """Identical content, model, and book title should hit the enhancement cache."""

    summarizer = ChapterSummarizer(chat_client, cache=ContentCache(database))

    first = summarizer.summarize(_chapter(), "Atlas")
    second = summarizer.summarize(_chapter(), "Atlas")
    other_book = summarizer.summarize(_chapter(), "Atlas II")

    assert second.cached is True
    assert second.summary == first.summary
    assert other_book.cached is False
    assert len(chat_client.calls) == 2


def test_summarizer_falls_back_on_malformed_reply(chat_client, database: Database) -> None:
    """Malformed replies should produce the deterministic fallback and not be cached."""

    chat_client.raw_reply = "Sure! Here is a summary without JSON."
    cache = ContentCache(database)
    buffer = io.StringIO()

    result = ChapterSummarizer(
        chat_client, cache=cache, logger=PipelineLogger(sink=buffer)
    ).summarize(_chapter(), "Atlas")

    assert result.fallback is True
    assert result.model == "fallback"
    assert result.summary == (
        "Chapter 3 from Atlas. This chapter contains approximately 420 words "
        "and covers key topics from the book."
    )
    assert cache.stats().total_entries == 0
    assert "event=summary_fallback" in buffer.getvalue()


def test_summarizer_logs_unusual_summary_length(chat_client) -> None:
    """Very short summaries are kept but logged as unusual."""

    buffer = io.StringIO()

    result = ChapterSummarizer(chat_client, logger=PipelineLogger(sink=buffer)).summarize(
        _chapter(), "Atlas"
    )

    assert result.fallback is False
    assert "level=WARNING stage=enhance_chapters event=summary_length_unusual" in (
        buffer.getvalue()
    )


def test_summarizer_propagates_provider_errors(chat_client) -> None:
    """Provider failures are left to the enhancement stage."""

    chat_client.failing_chapters = {3}

    with pytest.raises(OpenAIProviderError) as exc_info:
        ChapterSummarizer(chat_client).summarize(_chapter(), "Atlas")

    assert exc_info.value.failure_kind == "server_error"
