"""LLM provider client, call budget, prompts, and chapter summaries."""

from .openai_client import OpenAIChatClient, OpenAIProviderError
from .prompts import PromptLibrary
from .rate_limiter import CallBudget
from .summarizer import ChapterSummarizer, SummaryResult, fallback_summary

__all__ = [
    "CallBudget",
    "ChapterSummarizer",
    "OpenAIChatClient",
    "OpenAIProviderError",
    "PromptLibrary",
    "SummaryResult",
    "fallback_summary",
]
