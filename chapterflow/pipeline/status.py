"""Read-only workflow status reporting.

Responsibilities:
- Combine the latest progress record, job rows, and document totals into one
  `ProcessingStatus`.
- Derive a per-stage breakdown by correlating the current run's progress
  records with its jobs.
- Extrapolate a completion estimate for documents still processing.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta

from ..jobs.job_queue import JobQueue
from ..models.datatypes import (
    Document,
    DocumentStatus,
    EnhancementStatus,
    Job,
    JobStatus,
    ProcessingMetrics,
    ProcessingStatus,
    ProgressRecord,
    StageProgress,
)
from ..models.stages import STAGE_FOR_JOB, STAGE_ORDER, Stage
from ..storage.repository import DocumentRepository
from ..timeutils import utc_now

DEFAULT_MESSAGES: dict[DocumentStatus, str] = {
    DocumentStatus.PENDING: "Waiting to start processing",
    DocumentStatus.PROCESSING: "Processing document",
    DocumentStatus.COMPLETED: "Processing completed successfully",
    DocumentStatus.FAILED: "Processing failed",
}

_MIN_REMAINING = timedelta(minutes=1)
_MAX_REMAINING = timedelta(minutes=30)


def estimate_completion(
    started_at: datetime | None, overall: int, now: datetime
) -> datetime | None:
    """Extrapolate completion from elapsed time and overall progress."""

    if started_at is None or overall <= 0 or overall >= 100:
        return None
    elapsed = now - started_at
    remaining = elapsed / overall * (100 - overall)
    remaining = min(_MAX_REMAINING, max(_MIN_REMAINING, remaining))
    return now + remaining


def current_run(records: Sequence[ProgressRecord]) -> Sequence[ProgressRecord]:
    """Return the records written since the latest submission.

    Every submission opens with an uploading record; history before it belongs
    to earlier runs.
    """

    for index in range(len(records) - 1, -1, -1):
        if records[index].stage is Stage.UPLOADING:
            return records[index:]
    return records


def _stage_breakdown(
    stage: Stage,
    records: Sequence[ProgressRecord],
    jobs: Sequence[Job],
    finished: bool = False,
) -> StageProgress:
    """Summarize one stage from its progress records and jobs.

    Stages of a `finished` workflow that left neither jobs nor records were
    skipped, e.g. by a workflow-cache restore or disabled enhancement.
    """

    stage_records = [record for record in records if record.stage is stage]
    stage_jobs = [job for job in jobs if STAGE_FOR_JOB[job.job_type] is stage]
    latest = stage_records[-1] if stage_records else None
    statuses = {job.status for job in stage_jobs}

    if JobStatus.RUNNING in statuses:
        status = "running"
    elif JobStatus.FAILED in statuses:
        status = "failed"
    elif JobStatus.PENDING in statuses or JobStatus.RETRYING in statuses:
        status = "pending"
    elif stage_jobs:
        status = "completed"
    elif latest is not None:
        status = "completed" if latest.progress >= 100 else "running"
    elif finished:
        status = "skipped"
    else:
        status = "pending"

    progress = latest.progress if latest is not None else 0
    if status == "completed":
        progress = 100
    started = [job.started_at for job in stage_jobs if job.started_at is not None]
    started += [record.created_at for record in stage_records if record.created_at is not None]
    completed = [job.completed_at for job in stage_jobs if job.completed_at is not None]
    return StageProgress(
        stage=stage,
        status=status,
        progress=progress,
        message=latest.message if latest is not None else None,
        started_at=min(started) if started else None,
        completed_at=max(completed) if status == "completed" and completed else None,
    )


class StatusReporter:
    """Reconstruct workflow status from persisted records."""

    def __init__(
        self,
        repository: DocumentRepository,
        queue: JobQueue,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.queue = queue
        self.clock = clock

    def status(self, document_id: str) -> ProcessingStatus | None:
        """Return the status of one document, or `None` when it does not exist."""

        document = self.repository.get_document(document_id)
        if document is None:
            return None
        return self._build(document)

    def statuses(self, document_ids: Iterable[str]) -> list[ProcessingStatus]:
        """Return statuses for existing documents among `document_ids`, in input order."""

        results: list[ProcessingStatus] = []
        for document_id in document_ids:
            status = self.status(document_id)
            if status is not None:
                results.append(status)
        return results

    def _build(self, document: Document) -> ProcessingStatus:
        records = current_run(self.repository.progress_history(document.id))
        jobs = self.queue.jobs_for_document(document.id)
        latest = records[-1] if records else None
        now = self.clock()

        if latest is not None:
            current_stage = latest.stage
            progress = latest.progress
            overall = latest.overall_progress
            message = latest.message or DEFAULT_MESSAGES[document.status]
            is_error = latest.is_error
        else:
            current_stage = Stage.UPLOADING
            progress = 0
            overall = 0
            message = DEFAULT_MESSAGES[document.status]
            is_error = False
        if document.status is DocumentStatus.FAILED:
            current_stage = Stage.FAILED
            is_error = True

        finished = document.status is DocumentStatus.COMPLETED
        estimated = None
        if document.status is DocumentStatus.PROCESSING:
            estimated = estimate_completion(document.processing_started_at, overall, now)

        return ProcessingStatus(
            document_id=document.id,
            status=document.status,
            current_stage=current_stage,
            progress=progress,
            overall_progress=overall,
            message=message,
            is_error=is_error,
            stages=tuple(
                _stage_breakdown(stage, records, jobs, finished)
                for stage in STAGE_ORDER
            ),
            metrics=self._metrics(document, jobs, now),
            enhancement_status=document.enhancement_status,
            estimated_completion_at=estimated,
            updated_at=latest.created_at if latest is not None else document.updated_at,
        )

    def _metrics(
        self, document: Document, jobs: Sequence[Job], now: datetime
    ) -> ProcessingMetrics:
        counts = self.repository.enhancement_counts(document.id)
        processing_seconds = None
        if document.processing_started_at is not None:
            finished = document.processing_completed_at or now
            processing_seconds = (finished - document.processing_started_at).total_seconds()
        return ProcessingMetrics(
            total_chapters=sum(counts.values()),
            total_words=document.total_word_count,
            reading_time_minutes=document.reading_time_minutes,
            processing_seconds=processing_seconds,
            cache_hits=sum(1 for job in jobs if job.output and job.output.get("cache_hit")),
            jobs_total=len(jobs),
            jobs_failed=sum(1 for job in jobs if job.status is JobStatus.FAILED),
            enhanced_chapters=counts.get(EnhancementStatus.COMPLETED, 0),
        )
