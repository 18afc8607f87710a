"""Full-workflow snapshots stored in the content cache.

A snapshot holds everything needed to rebuild a processed document without
running any stage: chapters (with summaries once enhancement finished) and the
book-level totals.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ..cache.content_cache import ContentCache
from ..cache.keys import CacheKey, full_workflow_key
from ..detection.detector import ALGORITHM_VERSION
from ..models.datatypes import Chapter, ChapterDraft, Document, EnhancementStatus
from ..storage.blob_store import sanitize_blob_name
from ..storage.repository import DocumentRepository


def workflow_key(document: Document, algorithm: str = ALGORITHM_VERSION) -> CacheKey:
    """Return the full-workflow cache key of a document."""

    return full_workflow_key(
        document.owner_id,
        sanitize_blob_name(document.file_name),
        document.file_size,
        document.title,
        algorithm,
    )


def build_snapshot(document: Document, chapters: Sequence[Chapter]) -> dict[str, Any]:
    """Serialize a processed document into a cache payload."""

    return {
        "page_count": document.page_count,
        "total_word_count": document.total_word_count,
        "reading_time_minutes": document.reading_time_minutes,
        "enhancement_status": document.enhancement_status.value,
        "chapters": [
            {
                "chapter_number": chapter.chapter_number,
                "part_number": chapter.part_number,
                "title": chapter.title,
                "content": chapter.content,
                "word_count": chapter.word_count,
                "reading_time_minutes": chapter.reading_time_minutes,
                "highlight_quotes": list(chapter.highlight_quotes),
                "metadata": chapter.metadata,
                "summary": chapter.summary,
                "summary_model": chapter.summary_model,
                "enhancement_status": chapter.enhancement_status.value,
            }
            for chapter in chapters
        ],
    }


def restore_drafts(document_id: str, snapshot: dict[str, Any]) -> list[ChapterDraft]:
    """Rebuild chapter drafts for `document_id` from a snapshot payload."""

    drafts: list[ChapterDraft] = []
    for item in snapshot.get("chapters", []):
        summary = item.get("summary")
        status = EnhancementStatus(item.get("enhancement_status", "pending"))
        if summary is None and status is EnhancementStatus.PROCESSING:
            status = EnhancementStatus.PENDING
        drafts.append(
            ChapterDraft(
                document_id=document_id,
                chapter_number=int(item["chapter_number"]),
                part_number=int(item.get("part_number", 1)),
                title=str(item["title"]),
                content=str(item["content"]),
                word_count=int(item["word_count"]),
                reading_time_minutes=int(item["reading_time_minutes"]),
                highlight_quotes=tuple(item.get("highlight_quotes", [])),
                metadata=dict(item.get("metadata", {})),
                summary=summary,
                summary_model=item.get("summary_model"),
                enhancement_status=status,
            )
        )
    return drafts


class WorkflowSnapshots:
    """Read and write full-workflow snapshots for documents."""

    def __init__(self, cache: ContentCache, repository: DocumentRepository) -> None:
        self.cache = cache
        self.repository = repository

    def save(self, document_id: str) -> bool:
        """Write the current state of a document; return whether it was stored."""

        document = self.repository.get_document(document_id)
        if document is None:
            return False
        chapters = self.repository.list_chapters(document_id)
        if not chapters:
            return False
        return self.cache.put(
            workflow_key(document),
            build_snapshot(document, chapters),
            file_size=document.file_size,
        )

    def load(self, document: Document) -> dict[str, Any] | None:
        """Return the cached snapshot of a document, counting a hit."""

        snapshot = self.cache.get(workflow_key(document))
        if snapshot is None or not snapshot.get("chapters"):
            return None
        return snapshot
