"""Chapter validation, persistence, and enhancement scheduling.

Responsibilities:
- Validate detected chapters and normalize titles, confidence, and offsets.
- Replace a document's chapters in fixed-size batches with a per-row fallback.
- Write book-level totals and schedule enhancement batches.

Key types:
- `ChapterStoreStage`: queue stage for `store_chapters` jobs.
"""

from __future__ import annotations

from collections.abc import Sequence
import sqlite3

from ..errors import DocumentInputError
from ..models.datatypes import (
    ChapterDraft,
    DetectedChapter,
    DetectionResult,
    EnhancementStatus,
    Job,
)
from ..models.stages import JobType, Stage
from ..storage.repository import DocumentRepository
from ..telemetry.logger import PipelineLogger
from ..telemetry.progress import ProgressSink
from ..text.highlights import extract_highlight_quotes
from ..text.metrics import count_words, reading_time_minutes
from .base import NextJob, StageResult
from .extraction import load_document
from .snapshots import WorkflowSnapshots

STAGE_NAME = "store_chapters"
MAX_TITLE_CHARS = 200
MIN_CONTENT_CHARS = 100
MIN_CHAPTER_WORDS = 50
BASE_ENHANCEMENT_PRIORITY = 5
LOWEST_PRIORITY = 10


def _normalize_title(title: str) -> str:
    title = " ".join(title.split())
    if len(title) > MAX_TITLE_CHARS:
        return title[: MAX_TITLE_CHARS - 3].rstrip() + "..."
    return title


def validate_chapter(
    chapter: DetectedChapter,
    *,
    document_id: str,
    chapter_number: int,
    enhancement_status: EnhancementStatus = EnhancementStatus.PENDING,
) -> ChapterDraft | None:
    """Return a normalized draft for a detected chapter, or `None` when it is unusable."""

    title = _normalize_title(chapter.title or "")
    content = (chapter.content or "").strip()
    if not title or len(content) < MIN_CONTENT_CHARS:
        return None
    words = count_words(content)
    if words < MIN_CHAPTER_WORDS:
        return None

    start = max(0, int(chapter.start_index))
    end = max(start, int(chapter.end_index))
    return ChapterDraft(
        document_id=document_id,
        chapter_number=chapter_number,
        title=title,
        content=content,
        word_count=words,
        reading_time_minutes=reading_time_minutes(words),
        highlight_quotes=extract_highlight_quotes(content),
        metadata={
            "detection_method": chapter.detection_method,
            "confidence": min(1.0, max(0.0, float(chapter.confidence))),
            "boundary_strength": min(1.0, max(0.0, float(chapter.boundary_strength))),
            "start_index": start,
            "end_index": end,
        },
        enhancement_status=enhancement_status,
    )


def plan_enhancement_batches(
    chapter_numbers: Sequence[int], batch_size: int
) -> tuple[NextJob, ...]:
    """Group chapters into enhancement jobs, later batches at lower urgency."""

    numbers = list(chapter_numbers)
    batches = [numbers[index : index + batch_size] for index in range(0, len(numbers), batch_size)]
    return tuple(
        NextJob(
            JobType.ENHANCE_CHAPTERS,
            {
                "chapter_numbers": batch,
                "batch_index": batch_index,
                "batch_count": len(batches),
            },
            priority=min(BASE_ENHANCEMENT_PRIORITY + batch_index, LOWEST_PRIORITY),
        )
        for batch_index, batch in enumerate(batches)
    )


class ChapterStoreStage:
    """Persist validated chapters and complete the document."""

    job_type = JobType.STORE_CHAPTERS

    def __init__(
        self,
        *,
        repository: DocumentRepository,
        progress: ProgressSink,
        insert_batch_size: int = 10,
        enhancement_batch_size: int = 5,
        enhancement_enabled: bool = True,
        snapshots: WorkflowSnapshots | None = None,
        logger: PipelineLogger | None = None,
    ) -> None:
        self.repository = repository
        self.progress = progress
        self.insert_batch_size = insert_batch_size
        self.enhancement_batch_size = enhancement_batch_size
        self.enhancement_enabled = enhancement_enabled
        self.snapshots = snapshots
        self.logger = logger or PipelineLogger()

    def run(self, job: Job) -> StageResult:
        """Store the job's detected chapters and schedule enhancement."""

        document = load_document(self.repository, job.document_id, STAGE_NAME)
        detection = DetectionResult.from_payload(job.payload["detection"])
        initial_status = (
            EnhancementStatus.PENDING if self.enhancement_enabled else EnhancementStatus.SKIPPED
        )

        drafts: list[ChapterDraft] = []
        for chapter in detection.chapters:
            draft = validate_chapter(
                chapter,
                document_id=document.id,
                chapter_number=len(drafts) + 1,
                enhancement_status=initial_status,
            )
            if draft is not None:
                drafts.append(draft)
        if not drafts:
            raise DocumentInputError(
                stage=STAGE_NAME,
                detail="No valid chapters remained after validation.",
                hint="The document may be too short or contain too little text.",
            )

        self.progress.report(
            document.id, Stage.STORING_CHAPTERS, 0, f"Storing {len(drafts)} chapters"
        )
        self.repository.delete_chapters(document.id)
        failed_rows = self._insert(document.id, drafts)
        if failed_rows:
            self.repository.renumber_chapters(document.id)

        chapters = self.repository.list_chapters(document.id)
        if not chapters:
            raise DocumentInputError(
                stage=STAGE_NAME,
                detail="Every chapter insert failed.",
                hint="Check the database for constraint problems and resubmit.",
            )
        total_words = sum(chapter.word_count for chapter in chapters)
        total_minutes = sum(chapter.reading_time_minutes for chapter in chapters)
        self.repository.complete_document(
            document.id,
            total_word_count=total_words,
            reading_time_minutes=total_minutes,
            enhancement_status=initial_status,
        )
        if self.snapshots is not None:
            self.snapshots.save(document.id)

        self.progress.report(
            document.id, Stage.STORING_CHAPTERS, 100, f"Stored {len(chapters)} chapters"
        )
        next_jobs: tuple[NextJob, ...] = ()
        if self.enhancement_enabled:
            next_jobs = plan_enhancement_batches(
                [chapter.chapter_number for chapter in chapters], self.enhancement_batch_size
            )
            self.progress.report(
                document.id,
                Stage.ENHANCING_CHAPTERS,
                0,
                f"Queued {len(next_jobs)} enhancement batches",
            )
        else:
            self.progress.report(
                document.id, Stage.COMPLETED, 100, "Processing completed successfully"
            )
        return StageResult(
            output={
                "chapter_count": len(chapters),
                "failed_rows": failed_rows,
                "total_word_count": total_words,
                "reading_time_minutes": total_minutes,
                "enhancement_batches": len(next_jobs),
            },
            next_jobs=next_jobs,
        )

    def _insert(self, document_id: str, drafts: Sequence[ChapterDraft]) -> int:
        """Insert drafts in batches; return the number of rows that failed."""

        failed = 0
        batch_count = -(-len(drafts) // self.insert_batch_size)
        for batch_index, start in enumerate(range(0, len(drafts), self.insert_batch_size)):
            batch = drafts[start : start + self.insert_batch_size]
            try:
                self.repository.insert_chapters(batch)
            except sqlite3.Error as exc:
                self.logger.log_event(
                    STAGE_NAME,
                    "batch_insert_failed",
                    level="WARNING",
                    document_id=document_id,
                    batch=batch_index,
                    error_type=type(exc).__name__,
                )
                failed += self._insert_one_by_one(document_id, batch)
            self.progress.report(
                document_id,
                Stage.STORING_CHAPTERS,
                round(90 * (batch_index + 1) / batch_count),
                f"Stored chapter batch {batch_index + 1} of {batch_count}",
            )
        return failed

    def _insert_one_by_one(self, document_id: str, batch: Sequence[ChapterDraft]) -> int:
        failed = 0
        for draft in batch:
            try:
                self.repository.insert_chapter(draft)
            except sqlite3.Error as exc:
                failed += 1
                self.logger.log_event(
                    STAGE_NAME,
                    "chapter_insert_failed",
                    level="WARNING",
                    document_id=document_id,
                    chapter=draft.chapter_number,
                    error_type=type(exc).__name__,
                )
        return failed
