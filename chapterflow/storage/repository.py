"""Document, chapter, and progress persistence.

Responsibilities:
- Own all reads and writes of the `documents`, `chapters`, and
  `progress_records` tables.
- Convert SQLite rows into typed records from `chapterflow.models`.

Key types:
- `DocumentRepository`: structured CRUD used by stages, orchestrator, and the
  status reporter.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
import json
import sqlite3
from uuid import uuid4

from ..models.datatypes import (
    Chapter,
    ChapterDraft,
    Document,
    DocumentStatus,
    EnhancementStatus,
    ProgressRecord,
)
from ..models.stages import Stage
from ..timeutils import parse_iso, to_iso, utc_now
from .db import Database

_CHAPTER_INSERT_SQL = """
INSERT INTO chapters (
    document_id, chapter_number, part_number, title, content, summary, summary_model,
    word_count, reading_time_minutes, highlight_quotes, enhancement_status, metadata,
    created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


def _document_from_row(row: sqlite3.Row) -> Document:
    """Build a `Document` from a `documents` row."""

    return Document(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        file_name=row["file_name"],
        file_size=int(row["file_size"]),
        author=row["author"],
        genre=row["genre"],
        status=DocumentStatus(row["status"]),
        page_count=row["page_count"],
        total_word_count=int(row["total_word_count"]),
        reading_time_minutes=int(row["reading_time_minutes"]),
        enhancement_status=EnhancementStatus(row["enhancement_status"]),
        processing_started_at=parse_iso(row["processing_started_at"]),
        text_extraction_completed_at=parse_iso(row["text_extraction_completed_at"]),
        chapter_detection_completed_at=parse_iso(row["chapter_detection_completed_at"]),
        processing_completed_at=parse_iso(row["processing_completed_at"]),
        created_at=parse_iso(row["created_at"]),
        updated_at=parse_iso(row["updated_at"]),
    )


def _chapter_from_row(row: sqlite3.Row) -> Chapter:
    """Build a `Chapter` from a `chapters` row."""

    return Chapter(
        id=int(row["id"]),
        document_id=row["document_id"],
        chapter_number=int(row["chapter_number"]),
        part_number=int(row["part_number"]),
        title=row["title"],
        content=row["content"],
        word_count=int(row["word_count"]),
        reading_time_minutes=int(row["reading_time_minutes"]),
        highlight_quotes=tuple(json.loads(row["highlight_quotes"])),
        enhancement_status=EnhancementStatus(row["enhancement_status"]),
        metadata=json.loads(row["metadata"]),
        summary=row["summary"],
        summary_model=row["summary_model"],
    )


def _progress_from_row(row: sqlite3.Row) -> ProgressRecord:
    """Build a `ProgressRecord` from a `progress_records` row."""

    return ProgressRecord(
        document_id=row["document_id"],
        stage=Stage(row["stage"]),
        progress=int(row["progress"]),
        overall_progress=int(row["overall_progress"]),
        message=row["message"],
        is_error=bool(row["is_error"]),
        created_at=parse_iso(row["created_at"]),
    )


class DocumentRepository:
    """Structured CRUD over documents, chapters, and progress records."""

    def __init__(
        self,
        database: Database,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Bind the repository to a database and timestamp source."""

        self._db = database
        self._clock = clock

    def _now(self) -> str:
        return to_iso(self._clock())

    def create_document(
        self,
        *,
        owner_id: str,
        title: str,
        file_name: str,
        file_size: int,
        author: str | None = None,
        genre: str | None = None,
        document_id: str | None = None,
    ) -> Document:
        """Register an uploaded document in `pending` state."""

        identifier = document_id or uuid4().hex
        now = self._now()
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents (
                    id, owner_id, title, author, genre, file_name, file_size,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (identifier, owner_id, title, author, genre, file_name, int(file_size), now, now),
            )
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (identifier,)).fetchone()
        return _document_from_row(row)

    def get_document(self, document_id: str) -> Document | None:
        """Return a document by id, or `None` when it does not exist."""

        row = self._db.fetch_one("SELECT * FROM documents WHERE id = ?", (document_id,))
        return _document_from_row(row) if row is not None else None

    def list_documents(self, owner_id: str | None = None) -> list[Document]:
        """Return documents, optionally for one owner, newest first."""

        if owner_id is None:
            rows = self._db.fetch_all("SELECT * FROM documents ORDER BY created_at DESC")
        else:
            rows = self._db.fetch_all(
                "SELECT * FROM documents WHERE owner_id = ? ORDER BY created_at DESC",
                (owner_id,),
            )
        return [_document_from_row(row) for row in rows]

    def reset_document(self, document_id: str) -> None:
        """Clear aggregate processing state before a fresh run."""

        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE documents SET
                    status = 'pending', page_count = NULL, total_word_count = 0,
                    reading_time_minutes = 0, enhancement_status = 'pending',
                    processing_started_at = NULL, text_extraction_completed_at = NULL,
                    chapter_detection_completed_at = NULL, processing_completed_at = NULL,
                    updated_at = ?
                WHERE id = ?
                """,
                (self._now(), document_id),
            )

    def mark_processing(self, document_id: str) -> None:
        """Move a document into `processing`, stamping the start time once."""

        now = self._now()
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE documents SET
                    status = 'processing',
                    processing_started_at = COALESCE(processing_started_at, ?),
                    updated_at = ?
                WHERE id = ?
                """,
                (now, now, document_id),
            )

    def record_extraction(self, document_id: str, page_count: int) -> None:
        """Stamp text extraction completion and the page estimate."""

        now = self._now()
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE documents SET page_count = ?, text_extraction_completed_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (int(page_count), now, now, document_id),
            )

    def record_detection(self, document_id: str) -> None:
        """Stamp chapter detection completion."""

        now = self._now()
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE documents SET chapter_detection_completed_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (now, now, document_id),
            )

    def complete_document(
        self,
        document_id: str,
        *,
        total_word_count: int,
        reading_time_minutes: int,
        enhancement_status: EnhancementStatus,
    ) -> None:
        """Write book-level totals and mark processing complete."""

        now = self._now()
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE documents SET
                    status = 'completed', total_word_count = ?, reading_time_minutes = ?,
                    enhancement_status = ?, processing_completed_at = ?,
                    chapter_detection_completed_at = COALESCE(chapter_detection_completed_at, ?),
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    int(total_word_count),
                    int(reading_time_minutes),
                    enhancement_status.value,
                    now,
                    now,
                    now,
                    document_id,
                ),
            )

    def mark_failed(self, document_id: str) -> None:
        """Move a document into the terminal `failed` state."""

        with self._db.transaction() as conn:
            conn.execute(
                "UPDATE documents SET status = 'failed', updated_at = ? WHERE id = ?",
                (self._now(), document_id),
            )

    def set_enhancement_status(self, document_id: str, status: EnhancementStatus) -> None:
        """Update the document-level aggregate enhancement status."""

        with self._db.transaction() as conn:
            conn.execute(
                "UPDATE documents SET enhancement_status = ?, updated_at = ? WHERE id = ?",
                (status.value, self._now(), document_id),
            )

    def delete_chapters(self, document_id: str) -> int:
        """Delete every chapter of a document and return the deleted row count."""

        with self._db.transaction() as conn:
            cursor = conn.execute("DELETE FROM chapters WHERE document_id = ?", (document_id,))
            return cursor.rowcount

    def _chapter_params(self, draft: ChapterDraft, now: str) -> tuple[object, ...]:
        return (
            draft.document_id,
            draft.chapter_number,
            draft.part_number,
            draft.title,
            draft.content,
            draft.summary,
            draft.summary_model,
            draft.word_count,
            draft.reading_time_minutes,
            json.dumps(list(draft.highlight_quotes), ensure_ascii=False),
            draft.enhancement_status.value,
            json.dumps(draft.metadata, sort_keys=True, ensure_ascii=False),
            now,
            now,
        )

    def insert_chapters(self, drafts: Sequence[ChapterDraft]) -> int:
        """Insert a batch of chapters atomically; the whole batch fails together."""

        now = self._now()
        with self._db.transaction() as conn:
            conn.executemany(
                _CHAPTER_INSERT_SQL,
                [self._chapter_params(draft, now) for draft in drafts],
            )
        return len(drafts)

    def insert_chapter(self, draft: ChapterDraft) -> None:
        """Insert one chapter row."""

        with self._db.transaction() as conn:
            conn.execute(_CHAPTER_INSERT_SQL, self._chapter_params(draft, self._now()))

    def renumber_chapters(self, document_id: str) -> None:
        """Rewrite chapter numbers of a document as a contiguous sequence from 1."""

        with self._db.transaction() as conn:
            rows = conn.execute(
                """
                SELECT id FROM chapters WHERE document_id = ?
                ORDER BY chapter_number, part_number, id
                """,
                (document_id,),
            ).fetchall()
            conn.execute(
                "UPDATE chapters SET chapter_number = -chapter_number WHERE document_id = ?",
                (document_id,),
            )
            for number, row in enumerate(rows, start=1):
                conn.execute(
                    "UPDATE chapters SET chapter_number = ?, part_number = 1 WHERE id = ?",
                    (number, row["id"]),
                )

    def list_chapters(self, document_id: str) -> list[Chapter]:
        """Return every chapter of a document in reading order."""

        rows = self._db.fetch_all(
            """
            SELECT * FROM chapters WHERE document_id = ?
            ORDER BY chapter_number, part_number
            """,
            (document_id,),
        )
        return [_chapter_from_row(row) for row in rows]

    def chapters_missing_summary(
        self, document_id: str, chapter_numbers: Iterable[int]
    ) -> list[Chapter]:
        """Return the requested chapters that still have no summary."""

        numbers = sorted({int(number) for number in chapter_numbers})
        if not numbers:
            return []
        placeholders = ", ".join("?" for _ in numbers)
        rows = self._db.fetch_all(
            f"""
            SELECT * FROM chapters
            WHERE document_id = ? AND summary IS NULL AND chapter_number IN ({placeholders})
            ORDER BY chapter_number, part_number
            """,
            (document_id, *numbers),
        )
        return [_chapter_from_row(row) for row in rows]

    def set_chapter_enhancement_status(
        self, chapter_ids: Iterable[int], status: EnhancementStatus
    ) -> None:
        """Update the enhancement status of specific chapters."""

        now = self._now()
        with self._db.transaction() as conn:
            conn.executemany(
                "UPDATE chapters SET enhancement_status = ?, updated_at = ? WHERE id = ?",
                [(status.value, now, int(chapter_id)) for chapter_id in chapter_ids],
            )

    def save_summary(self, chapter_id: int, summary: str, model: str) -> None:
        """Store a chapter summary and mark the chapter enhancement complete."""

        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE chapters SET summary = ?, summary_model = ?,
                    enhancement_status = 'completed', updated_at = ?
                WHERE id = ?
                """,
                (summary, model, self._now(), chapter_id),
            )

    def enhancement_counts(self, document_id: str) -> dict[EnhancementStatus, int]:
        """Return chapter counts per enhancement status for a document."""

        rows = self._db.fetch_all(
            """
            SELECT enhancement_status, COUNT(*) AS total FROM chapters
            WHERE document_id = ? GROUP BY enhancement_status
            """,
            (document_id,),
        )
        return {EnhancementStatus(row["enhancement_status"]): int(row["total"]) for row in rows}

    def append_progress(self, record: ProgressRecord) -> None:
        """Append one progress record."""

        created_at = to_iso(record.created_at) if record.created_at else self._now()
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO progress_records (
                    document_id, stage, progress, overall_progress, message, is_error,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.document_id,
                    record.stage.value,
                    int(record.progress),
                    int(record.overall_progress),
                    record.message,
                    1 if record.is_error else 0,
                    created_at,
                ),
            )

    def latest_progress(self, document_id: str) -> ProgressRecord | None:
        """Return the most recent progress record of a document."""

        row = self._db.fetch_one(
            """
            SELECT * FROM progress_records WHERE document_id = ?
            ORDER BY id DESC LIMIT 1
            """,
            (document_id,),
        )
        return _progress_from_row(row) if row is not None else None

    def progress_history(self, document_id: str) -> list[ProgressRecord]:
        """Return every progress record of a document, oldest first."""

        rows = self._db.fetch_all(
            "SELECT * FROM progress_records WHERE document_id = ? ORDER BY id",
            (document_id,),
        )
        return [_progress_from_row(row) for row in rows]
