"""Workflow submission entry point.

Responsibilities:
- Reset a document for idempotent (re)processing.
- Restore completed workflows from the full-workflow cache.
- Enqueue the first stage and estimate completion time.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from ..config import PipelineConfig
from ..errors import DocumentInputError, QueueUnavailableError
from ..jobs.job_queue import JobQueue
from ..models.datatypes import Document, EnhancementStatus, SubmissionResult
from ..models.stages import JobType, Stage
from ..stages.chapter_store import plan_enhancement_batches
from ..stages.enhancement import aggregate_enhancement_status
from ..stages.snapshots import WorkflowSnapshots, restore_drafts
from ..storage.repository import DocumentRepository
from ..telemetry.logger import PipelineLogger
from ..telemetry.progress import ProgressSink
from ..timeutils import utc_now

InlineRunner = Callable[[str, JobType, Mapping[str, Any], int], None]

_BYTES_PER_MB = 1024 * 1024
_PAGES_PER_MB = 10
_MIN_ESTIMATE_MINUTES = 2.0
_MAX_ESTIMATE_MINUTES = 30.0


def estimate_processing_minutes(
    file_size: int, *, priority: int = 5, enhancement_enabled: bool = True
) -> float:
    """Estimate wall-clock minutes for a fresh workflow of a file of `file_size` bytes."""

    size_mb = max(0, int(file_size)) / _BYTES_PER_MB
    estimated_pages = size_mb * _PAGES_PER_MB
    minutes = 2.0 + size_mb / 2.0 + estimated_pages / 50.0
    if enhancement_enabled:
        minutes += size_mb * 0.5
    if priority <= 3:
        minutes *= 0.7
    elif priority >= 8:
        minutes *= 1.5
    return min(_MAX_ESTIMATE_MINUTES, max(_MIN_ESTIMATE_MINUTES, minutes))


class PipelineOrchestrator:
    """Submit documents into the queue-driven pipeline."""

    def __init__(
        self,
        *,
        repository: DocumentRepository,
        queue: JobQueue,
        progress: ProgressSink,
        config: PipelineConfig,
        snapshots: WorkflowSnapshots | None = None,
        inline_runner: InlineRunner | None = None,
        enhancement_available: bool = True,
        logger: PipelineLogger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.queue = queue
        self.progress = progress
        self.config = config
        self.snapshots = snapshots
        self.inline_runner = inline_runner
        self.enhancement_available = enhancement_available
        self.logger = logger or PipelineLogger()
        self.clock = clock

    def submit(self, document_id: str, priority: int | None = None) -> SubmissionResult:
        """Start (or restart) processing of a registered document.

        Any earlier chapters and jobs of the document are discarded first, so
        resubmission is idempotent; caches still short-circuit unchanged inputs.
        """

        document = self.repository.get_document(document_id)
        if document is None:
            raise DocumentInputError(
                stage="submit",
                detail=f"Document `{document_id}` does not exist.",
                hint="Upload the PDF with `chapterflow submit` first.",
            )
        effective_priority = self.config.default_priority if priority is None else int(priority)
        if not 1 <= effective_priority <= 10:
            raise ValueError("`priority` must be between 1 and 10.")

        try:
            self.queue.clear_document(document_id)
        except QueueUnavailableError as exc:
            self.logger.log_event(
                "submit", "queue_unavailable", level="WARNING", detail=exc.detail
            )
        self.repository.delete_chapters(document_id)
        self.repository.reset_document(document_id)

        workflow_id = uuid4().hex
        now = self.clock()
        self.logger.log_event(
            "submit", "accepted", document_id=document_id, workflow_id=workflow_id
        )
        self.progress.report(document_id, Stage.UPLOADING, 100, "Document queued for processing")

        if self.snapshots is not None and self.config.enable_workflow_cache:
            snapshot = self.snapshots.load(document)
            if snapshot is not None:
                self.logger.log_event("submit", "cache_hit", document_id=document_id)
                self._restore(document, snapshot, effective_priority)
                return SubmissionResult(
                    document_id=document_id,
                    workflow_id=workflow_id,
                    cached=True,
                    estimated_completion_at=now,
                )

        self._enqueue(
            document_id, JobType.EXTRACT_TEXT, {"workflow_id": workflow_id}, effective_priority
        )
        minutes = estimate_processing_minutes(
            document.file_size,
            priority=effective_priority,
            enhancement_enabled=self.enhancement_available,
        )
        return SubmissionResult(
            document_id=document_id,
            workflow_id=workflow_id,
            cached=False,
            estimated_completion_at=now + timedelta(minutes=minutes),
        )

    def _restore(self, document: Document, snapshot: dict[str, Any], priority: int) -> None:
        """Rebuild chapters and totals from a full-workflow snapshot."""

        self.repository.mark_processing(document.id)
        self.repository.insert_chapters(restore_drafts(document.id, snapshot))
        page_count = snapshot.get("page_count")
        if page_count:
            self.repository.record_extraction(document.id, int(page_count))

        chapters = self.repository.list_chapters(document.id)
        unsummarized = [chapter for chapter in chapters if chapter.summary is None]
        schedule = bool(unsummarized) and self.enhancement_available
        if unsummarized:
            self.repository.set_chapter_enhancement_status(
                [chapter.id for chapter in unsummarized],
                EnhancementStatus.PENDING if schedule else EnhancementStatus.SKIPPED,
            )
        enhancement_status = (
            EnhancementStatus.PENDING
            if schedule
            else aggregate_enhancement_status(self.repository.enhancement_counts(document.id))
        )
        self.repository.complete_document(
            document.id,
            total_word_count=int(snapshot.get("total_word_count", 0)),
            reading_time_minutes=int(snapshot.get("reading_time_minutes", 0)),
            enhancement_status=enhancement_status,
        )
        self.progress.report(
            document.id,
            Stage.COMPLETED,
            100,
            "Processing completed successfully (restored from cache)",
        )
        if schedule:
            for next_job in plan_enhancement_batches(
                [chapter.chapter_number for chapter in unsummarized],
                self.config.enhancement_batch_size,
            ):
                self._enqueue(
                    document.id,
                    next_job.job_type,
                    next_job.payload,
                    priority if next_job.priority is None else next_job.priority,
                )

    def _enqueue(
        self, document_id: str, job_type: JobType, payload: Mapping[str, Any], priority: int
    ) -> None:
        try:
            self.queue.enqueue(
                document_id,
                job_type,
                payload,
                priority=priority,
                max_retries=self.config.max_job_retries,
            )
        except QueueUnavailableError as exc:
            if self.inline_runner is None:
                raise
            self.logger.log_event(
                job_type.value,
                "inline_fallback",
                level="WARNING",
                document_id=document_id,
                detail=exc.detail,
            )
            self.inline_runner(document_id, job_type, payload, priority)
