"""Prompt template library for the enhancement stage.

Responsibilities:
- Centralize prompt construction for chapter summaries.
- Keep prompts deterministic for a given chapter and book title.
"""

from __future__ import annotations

SUMMARY_CONTENT_CHAR_LIMIT = 4000
_TRUNCATION_MARKER = "...[truncated]"


class PromptLibrary:
    """Build prompt strings for supported LLM tasks."""

    def summary_system_prompt(self) -> str:
        """Return the system prompt for JSON-only chapter summaries."""

        return (
            "You are an expert book summarizer. Generate concise 100-300 word summaries "
            "that capture key points and insights. Always respond with valid JSON only."
        )

    def chapter_summary_prompt(
        self,
        book_title: str,
        chapter_number: int,
        chapter_title: str,
        content: str,
    ) -> str:
        """Return the user prompt for one chapter summary."""

        excerpt = content[:SUMMARY_CONTENT_CHAR_LIMIT]
        if len(content) > SUMMARY_CONTENT_CHAR_LIMIT:
            excerpt += _TRUNCATION_MARKER
        return (
            "Summarize this chapter in 100-300 words. Focus on key points and insights.\n\n"
            f'BOOK: "{book_title}"\n'
            f'CHAPTER: {chapter_number} - "{chapter_title}"\n\n'
            "CONTENT:\n"
            f"{excerpt}\n\n"
            "Respond with JSON:\n"
            "{\n"
            '  "summary": "Your concise chapter summary here..."\n'
            "}"
        )
