"""Shared pytest fixtures for the chapterflow test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from datetime import datetime, timedelta, timezone
import json
from pathlib import Path
import re
import threading

import pytest

from chapterflow.config import PipelineConfig
from chapterflow.errors import BlobNotFoundError
from chapterflow.llm.openai_client import OpenAIProviderError
from chapterflow.models.datatypes import Document, ExtractedText
from chapterflow.pipeline.context import PipelineContext
from chapterflow.storage.blob_store import sanitize_blob_name
from chapterflow.storage.db import Database

PATTERN_BODY = "The traveler studied old maps and wrote careful notes about every road. " * 9
FILLER_SENTENCE = "The river carried small boats toward the quiet harbor."
SCENE_SENTENCE = "Later that morning the crew walked across the old bridge."
SOURCE_BYTES = b"%PDF-1.4 synthetic source bytes"

_CHAPTER_NUMBER_RE = re.compile(r"CHAPTER: (\d+) -")


def build_pattern_text(titles: Sequence[str]) -> str:
    """Return text with one `Chapter N: Title` heading per title and ~110 words per chapter."""

    return "\n".join(
        f"Chapter {number}: {title}\n{PATTERN_BODY}"
        for number, title in enumerate(titles, start=1)
    )


def build_semantic_text(blocks: int = 19, fillers_per_block: int = 288) -> str:
    """Return marker-free text with one scene-change sentence every 2602 words."""

    paragraphs: list[str] = []
    for _ in range(blocks):
        sentences = [SCENE_SENTENCE] + [FILLER_SENTENCE] * fillers_per_block
        for index in range(0, len(sentences), 8):
            paragraphs.append(" ".join(sentences[index : index + 8]))
    return "\n\n".join(paragraphs)


class FakeClock:
    """Settable UTC clock shared by repository, queue, and worker."""

    def __init__(self, start: datetime | None = None) -> None:
        """Initialize the clock at a fixed instant."""

        self.now = start or datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        """Return the current fake time."""

        return self.now

    def advance(self, seconds: float) -> None:
        """Move the clock forward."""

        self.now += timedelta(seconds=seconds)


class MemoryBlobStore:
    """In-memory blob store keyed like the filesystem store."""

    def __init__(self) -> None:
        """Initialize empty storage."""

        self.blobs: dict[tuple[str, str], bytes] = {}

    def upload(self, owner_id: str, name: str, data: bytes) -> None:
        """Store bytes under sanitized owner and blob names."""

        self.blobs[(sanitize_blob_name(owner_id), sanitize_blob_name(name))] = data

    def download(self, owner_id: str, name: str) -> bytes:
        """Return stored bytes or raise `BlobNotFoundError`."""

        key = (sanitize_blob_name(owner_id), sanitize_blob_name(name))
        if key not in self.blobs:
            raise BlobNotFoundError(stage="extract_text", detail=f"Missing blob `{name}`.")
        return self.blobs[key]


class StaticExtractor:
    """Extractor test double returning configured text and counting calls."""

    def __init__(self, text: str, page_count: int | None = 3) -> None:
        """Initialize with the text every extraction returns."""

        self.text = text
        self.page_count = page_count
        self.calls = 0

    def extract(self, data: bytes) -> ExtractedText:
        """Return the configured text regardless of input bytes."""

        _ = data
        self.calls += 1
        return ExtractedText(text=self.text, page_count=self.page_count, method="static")


class FakeChatClient:
    """Chat client test double returning JSON summaries per chapter."""

    def __init__(self) -> None:
        """Initialize call recording and failure switches."""

        self.calls: list[dict[str, object]] = []
        self.failing_chapters: set[int] = set()
        self.raw_reply: str | None = None
        self._lock = threading.Lock()

    def chat_completion_text(self, **kwargs: object) -> str:
        """Record the request and return a summary, or fail for selected chapters."""

        with self._lock:
            self.calls.append(dict(kwargs))
        match = _CHAPTER_NUMBER_RE.search(str(kwargs.get("user_prompt", "")))
        chapter_number = int(match.group(1)) if match else 0
        if chapter_number in self.failing_chapters:
            raise OpenAIProviderError(
                "OpenAI server error (HTTP 500).", failure_kind="server_error"
            )
        if self.raw_reply is not None:
            return self.raw_reply
        return json.dumps(
            {"summary": f"Chapter {chapter_number} follows the traveler along old roads."}
        )


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a settable clock."""

    return FakeClock()


@pytest.fixture
def database() -> Iterator[Database]:
    """Provide an in-memory database with the full schema."""

    db = Database(":memory:")
    yield db
    db.close()


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    """Provide an empty in-memory blob store."""

    return MemoryBlobStore()


@pytest.fixture
def pattern_text() -> str:
    """Provide a two-chapter book with explicit chapter headings."""

    return build_pattern_text(["Origins", "Departure"])


@pytest.fixture
def extractor(pattern_text: str) -> StaticExtractor:
    """Provide an extractor returning the two-chapter book."""

    return StaticExtractor(pattern_text)


@pytest.fixture
def chat_client() -> FakeChatClient:
    """Provide a deterministic chat client."""

    return FakeChatClient()


@pytest.fixture
def make_context(
    tmp_path: Path,
    blob_store: MemoryBlobStore,
    extractor: StaticExtractor,
    chat_client: FakeChatClient,
    fake_clock: FakeClock,
) -> Iterator[Callable[..., PipelineContext]]:
    """Provide a factory for pipeline contexts over a temporary SQLite file."""

    contexts: list[PipelineContext] = []

    def _make(*, with_chat_client: bool = True, **overrides: object) -> PipelineContext:
        """Build a context; keyword overrides become `PipelineConfig` fields."""

        config = PipelineConfig(
            database_path=tmp_path / "chapterflow.sqlite3",
            blob_root=tmp_path / "blobs",
            **overrides,
        )
        context = PipelineContext.create(
            config,
            blob_store=blob_store,
            extractor=extractor,
            chat_client=chat_client if with_chat_client else None,
            clock=fake_clock,
            env={},
        )
        contexts.append(context)
        return context

    yield _make
    for context in contexts:
        context.close()


@pytest.fixture
def register_document(
    blob_store: MemoryBlobStore,
) -> Callable[..., Document]:
    """Provide a helper that uploads source bytes and registers a document."""

    def _register(
        context: PipelineContext,
        *,
        owner_id: str = "reader-1",
        title: str = "Atlas of Roads",
        file_name: str = "atlas of roads.pdf",
        data: bytes = SOURCE_BYTES,
        genre: str | None = None,
    ) -> Document:
        """Upload bytes and create the document row."""

        blob_store.upload(owner_id, file_name, data)
        return context.repository.create_document(
            owner_id=owner_id,
            title=title,
            file_name=file_name,
            file_size=len(data),
            genre=genre,
        )

    return _register


@pytest.fixture
def build_book() -> Callable[[Sequence[str]], str]:
    """Provide the heading-marked book builder."""

    return build_pattern_text


@pytest.fixture(scope="session")
def semantic_text() -> str:
    """Provide a ~49k-word book without chapter headings."""

    return build_semantic_text()
