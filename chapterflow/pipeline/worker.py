"""Queue worker and job-execution boundary.

Responsibilities:
- Claim jobs and run the stage bound to each job type.
- Route stage failures: input errors fail the document, other errors retry.
- Enforce the whole-workflow timeout before non-enhancement jobs.
- Enqueue follow-up jobs, running them inline when the queue is unavailable.
- Return jobs whose claim lease expired to the retry path.

Key types:
- `PipelineWorker`: one claimer; run several for parallel processing.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Mapping
from datetime import datetime
import threading
from typing import Any
from uuid import uuid4

from ..config import PipelineConfig
from ..errors import DocumentInputError, QueueUnavailableError
from ..jobs.job_queue import JobQueue
from ..models.datatypes import Document, DocumentStatus, Job, JobStatus
from ..models.stages import NEXT_JOB_TYPE, STAGE_FOR_JOB, JobType, Stage
from ..stages.base import NextJob, PipelineStage, StageResult
from ..stages.enhancement import EnhancementStage
from ..storage.repository import DocumentRepository
from ..telemetry.logger import PipelineLogger
from ..telemetry.progress import ProgressSink
from ..timeutils import utc_now

_INLINE_PREFIX = "inline-"


class PipelineWorker:
    """Claim and execute pipeline jobs."""

    def __init__(
        self,
        *,
        queue: JobQueue,
        repository: DocumentRepository,
        stages: Mapping[JobType, PipelineStage],
        progress: ProgressSink,
        config: PipelineConfig,
        logger: PipelineLogger | None = None,
        clock: Callable[[], datetime] = utc_now,
        worker_id: str | None = None,
    ) -> None:
        missing = set(JobType).difference(stages)
        if missing:
            names = ", ".join(sorted(job_type.value for job_type in missing))
            raise ValueError(f"No stage registered for job type(s): {names}.")
        self.queue = queue
        self.repository = repository
        self.stages = dict(stages)
        self.progress = progress
        self.config = config
        self.logger = logger or PipelineLogger()
        self.clock = clock
        self.worker_id = worker_id or f"worker-{uuid4().hex[:8]}"

    def run_once(self, allowed_types: Collection[JobType] | None = None) -> Job | None:
        """Claim and execute one job; return it, or `None` when nothing was claimable."""

        self._reclaim_expired()
        try:
            job = self.queue.claim_next(allowed_types, self.worker_id)
        except QueueUnavailableError as exc:
            self.logger.log_event(
                "worker", "queue_unavailable", level="WARNING", detail=exc.detail
            )
            return None
        if job is None:
            return None
        self.logger.log_event(
            "worker",
            "job_claimed",
            worker=self.worker_id,
            job_id=job.id,
            job_type=job.job_type.value,
            document_id=job.document_id,
            attempt=job.retry_count + 1,
        )
        self.execute(job)
        return job

    def run_until_idle(
        self,
        allowed_types: Collection[JobType] | None = None,
        max_jobs: int | None = None,
    ) -> int:
        """Execute jobs until none is claimable; return how many ran."""

        processed = 0
        while max_jobs is None or processed < max_jobs:
            if self.run_once(allowed_types) is None:
                break
            processed += 1
        return processed

    def run_forever(
        self,
        stop_event: threading.Event,
        allowed_types: Collection[JobType] | None = None,
    ) -> int:
        """Poll the queue until `stop_event` is set; return how many jobs ran."""

        processed = 0
        while not stop_event.is_set():
            if self.run_once(allowed_types) is None:
                stop_event.wait(self.config.worker_poll_interval_seconds)
            else:
                processed += 1
        return processed

    def execute(self, job: Job) -> None:
        """Run one claimed job at the job-execution boundary.

        A queue outage while recording the outcome leaves the job `running`;
        its lease then expires and `run_once` hands it back to the retry path.
        """

        try:
            self._execute(job)
        except QueueUnavailableError as exc:
            self.logger.log_event(
                job.job_type.value,
                "job_interrupted",
                level="WARNING",
                document_id=job.document_id,
                job_id=job.id,
                detail=exc.detail,
            )

    def _execute(self, job: Job) -> None:
        document = self.repository.get_document(job.document_id)
        if document is None:
            self.queue.fail(
                job.id, f"Document `{job.document_id}` does not exist.", retryable=False
            )
            self.logger.log_stage_failure(
                job.job_type.value, "DocumentInputError", job_id=job.id, retryable=False
            )
            return
        if job.job_type is not JobType.ENHANCE_CHAPTERS:
            if document.status is DocumentStatus.FAILED:
                self.queue.fail(job.id, "Document already failed.", retryable=False)
                return
            if self._timed_out(document):
                self._fail_timeout(job, document)
                return

        result = self._run_stage(job, queued=True)
        if result is None:
            return
        self.queue.complete(job.id, result.output)
        self._dispatch(job, result.next_jobs)

    def run_inline(
        self,
        document_id: str,
        job_type: JobType,
        payload: Mapping[str, Any] | None = None,
        priority: int = 5,
    ) -> None:
        """Run a stage synchronously without the queue, then its follow-ups."""

        job = Job(
            id=f"{_INLINE_PREFIX}{uuid4().hex}",
            document_id=document_id,
            job_type=job_type,
            status=JobStatus.RUNNING,
            priority=priority,
            payload=dict(payload or {}),
            retry_count=0,
            max_retries=1,
            worker_id=self.worker_id,
            started_at=self.clock(),
        )
        result = self._run_stage(job, queued=False)
        if result is not None:
            self._dispatch(job, result.next_jobs)

    def _run_stage(self, job: Job, *, queued: bool) -> StageResult | None:
        """Execute a stage, routing failures; return `None` when it failed."""

        stage_name = job.job_type.value
        self.logger.log_stage_start(stage_name, document_id=job.document_id, job_id=job.id)
        try:
            result = self.stages[job.job_type].run(job)
        except DocumentInputError as exc:
            self.logger.log_stage_failure(
                stage_name,
                type(exc).__name__,
                document_id=job.document_id,
                job_id=job.id,
                retryable=False,
            )
            if queued:
                self.queue.fail(job.id, exc.detail, retryable=False)
            self._fail_document(job.document_id, exc.detail)
            return None
        except Exception as exc:
            self.logger.log_stage_failure(
                stage_name,
                type(exc).__name__,
                document_id=job.document_id,
                job_id=job.id,
                retryable=queued,
            )
            self._handle_error(job, exc, queued=queued)
            return None
        self.logger.log_stage_complete(
            stage_name,
            document_id=job.document_id,
            job_id=job.id,
            cache_hit=bool(result.output.get("cache_hit", False)),
        )
        return result

    def _handle_error(self, job: Job, exc: Exception, *, queued: bool) -> None:
        """Apply the retry path for a failed attempt."""

        message = str(exc) or type(exc).__name__
        status = self.queue.fail(job.id, message, retryable=True) if queued else JobStatus.FAILED
        if status is not JobStatus.FAILED:
            self.logger.log_event(
                job.job_type.value,
                "retry_scheduled",
                level="WARNING",
                document_id=job.document_id,
                job_id=job.id,
                attempt=job.retry_count + 1,
                max_retries=job.max_retries,
            )
            self.progress.report(
                job.document_id,
                STAGE_FOR_JOB[job.job_type],
                0,
                f"Retrying after error: {message}",
                is_error=True,
            )
            return
        self._give_up(job, message)

    def _give_up(self, job: Job, message: str) -> None:
        """Settle the document once a job has exhausted its retries."""

        if job.job_type is JobType.ENHANCE_CHAPTERS:
            stage = self.stages[JobType.ENHANCE_CHAPTERS]
            if isinstance(stage, EnhancementStage):
                stage.abandon(job)
            return
        stage_label = STAGE_FOR_JOB[job.job_type].value.replace("_", " ").capitalize()
        self._fail_document(job.document_id, f"{stage_label} failed: {message}")

    def _reclaim_expired(self) -> None:
        """Send jobs whose claim outlived the lease back through the retry path."""

        try:
            expired = self.queue.reclaim_expired(self.config.job_lease_seconds)
        except QueueUnavailableError as exc:
            self.logger.log_event(
                "worker", "queue_unavailable", level="WARNING", detail=exc.detail
            )
            return
        for job in expired:
            message = job.error_message or "Job lease expired"
            self.logger.log_event(
                job.job_type.value,
                "lease_expired",
                level="WARNING",
                document_id=job.document_id,
                job_id=job.id,
                status=job.status.value,
            )
            if job.status is JobStatus.FAILED:
                self._give_up(job, message)
            else:
                self.progress.report(
                    job.document_id,
                    STAGE_FOR_JOB[job.job_type],
                    0,
                    f"Retrying after error: {message}",
                    is_error=True,
                )

    def _dispatch(self, job: Job, next_jobs: tuple[NextJob, ...]) -> None:
        """Enqueue follow-up jobs unless the document has failed meanwhile."""

        if not next_jobs:
            return
        document = self.repository.get_document(job.document_id)
        if document is None or document.status is DocumentStatus.FAILED:
            self.logger.log_event(
                job.job_type.value,
                "next_stage_suppressed",
                level="WARNING",
                document_id=job.document_id,
            )
            return

        expected = NEXT_JOB_TYPE[job.job_type]
        for next_job in next_jobs:
            if next_job.job_type is not expected:
                raise RuntimeError(
                    f"`{job.job_type.value}` may not schedule `{next_job.job_type.value}` jobs."
                )

        depends_on = None if job.id.startswith(_INLINE_PREFIX) else job.id
        for next_job in next_jobs:
            priority = job.priority if next_job.priority is None else next_job.priority
            try:
                self.queue.enqueue(
                    job.document_id,
                    next_job.job_type,
                    next_job.payload,
                    priority=priority,
                    depends_on=depends_on,
                    max_retries=self.config.max_job_retries,
                )
            except QueueUnavailableError as exc:
                self.logger.log_event(
                    next_job.job_type.value,
                    "inline_fallback",
                    level="WARNING",
                    document_id=job.document_id,
                    detail=exc.detail,
                )
                self.run_inline(job.document_id, next_job.job_type, next_job.payload, priority)

    def _timed_out(self, document: Document) -> bool:
        started = document.processing_started_at
        if started is None:
            return False
        elapsed = (self.clock() - started).total_seconds()
        return elapsed > self.config.workflow_timeout_seconds

    def _fail_timeout(self, job: Job, document: Document) -> None:
        message = (
            f"Processing timed out after {self.config.workflow_timeout_seconds} seconds"
        )
        self.logger.log_event(
            job.job_type.value,
            "workflow_timeout",
            level="ERROR",
            document_id=document.id,
            job_id=job.id,
        )
        self.queue.fail(job.id, message, retryable=False)
        self._fail_document(document.id, message)

    def _fail_document(self, document_id: str, message: str) -> None:
        self.repository.mark_failed(document_id)
        self.progress.report(document_id, Stage.FAILED, 0, message, is_error=True)
