"""Chapter enhancement stage.

Responsibilities:
- Summarize one batch of chapters concurrently under the shared call budget.
- Isolate provider failures to the chapter that hit them.
- Recompute the document's aggregate enhancement status after every batch.
"""

from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor

from ..llm.openai_client import OpenAIProviderError
from ..llm.summarizer import ChapterSummarizer
from ..models.datatypes import Chapter, EnhancementStatus, Job
from ..models.stages import JobType, Stage
from ..storage.repository import DocumentRepository
from ..telemetry.logger import PipelineLogger
from ..telemetry.progress import ProgressSink
from .base import StageResult
from .extraction import load_document
from .snapshots import WorkflowSnapshots

STAGE_NAME = "enhance_chapters"
TERMINAL_AGGREGATES = frozenset(
    {EnhancementStatus.COMPLETED, EnhancementStatus.FAILED, EnhancementStatus.SKIPPED}
)


def aggregate_enhancement_status(counts: Mapping[EnhancementStatus, int]) -> EnhancementStatus:
    """Return the document-level enhancement status for per-chapter counts.

    `completed` when every chapter completed; once every chapter is terminal,
    `skipped` when all were skipped, otherwise `completed` if successes
    outnumber failures and `failed` if not; `processing` while any chapter is
    still open.
    """

    total = sum(counts.values())
    completed = counts.get(EnhancementStatus.COMPLETED, 0)
    failed = counts.get(EnhancementStatus.FAILED, 0)
    skipped = counts.get(EnhancementStatus.SKIPPED, 0)
    if total == 0:
        return EnhancementStatus.SKIPPED
    if completed == total:
        return EnhancementStatus.COMPLETED
    if completed + failed + skipped == total:
        if skipped == total:
            return EnhancementStatus.SKIPPED
        return EnhancementStatus.COMPLETED if completed > failed else EnhancementStatus.FAILED
    return EnhancementStatus.PROCESSING


class EnhancementStage:
    """Generate summaries for one batch of stored chapters."""

    job_type = JobType.ENHANCE_CHAPTERS

    def __init__(
        self,
        *,
        repository: DocumentRepository,
        progress: ProgressSink,
        summarizer: ChapterSummarizer | None,
        max_concurrent: int = 5,
        snapshots: WorkflowSnapshots | None = None,
        logger: PipelineLogger | None = None,
    ) -> None:
        self.repository = repository
        self.progress = progress
        self.summarizer = summarizer
        self.max_concurrent = max(1, int(max_concurrent))
        self.snapshots = snapshots
        self.logger = logger or PipelineLogger()

    def run(self, job: Job) -> StageResult:
        """Summarize the batch's chapters that still lack a summary."""

        document = load_document(self.repository, job.document_id, STAGE_NAME)
        numbers = [int(number) for number in job.payload.get("chapter_numbers", [])]
        batch_index = int(job.payload.get("batch_index", 0))
        batch_count = max(1, int(job.payload.get("batch_count", 1)))
        chapters = self.repository.chapters_missing_summary(document.id, numbers)

        if self.summarizer is None:
            self.repository.set_chapter_enhancement_status(
                [chapter.id for chapter in chapters], EnhancementStatus.SKIPPED
            )
            aggregate = self._finish(document.id)
            return StageResult(output={"skipped": len(chapters), "aggregate": aggregate.value})

        self.repository.set_chapter_enhancement_status(
            [chapter.id for chapter in chapters], EnhancementStatus.PROCESSING
        )
        if document.enhancement_status not in TERMINAL_AGGREGATES:
            self.repository.set_enhancement_status(document.id, EnhancementStatus.PROCESSING)
        self.progress.report(
            document.id,
            Stage.ENHANCING_CHAPTERS,
            round(100 * batch_index / batch_count),
            f"Enhancing chapter batch {batch_index + 1} of {batch_count}",
        )

        summarizer = self.summarizer
        with ThreadPoolExecutor(max_workers=self.max_concurrent) as pool:
            futures = [
                pool.submit(self._enhance, summarizer, chapter, document.title)
                for chapter in chapters
            ]
            outcomes = [future.result() for future in futures]

        aggregate = self._finish(document.id)
        return StageResult(
            output={
                "enhanced": outcomes.count("completed") + outcomes.count("cached"),
                "cache_hit": bool(outcomes) and all(item == "cached" for item in outcomes),
                "cached": outcomes.count("cached"),
                "fallback": outcomes.count("fallback"),
                "failed": outcomes.count("failed"),
                "aggregate": aggregate.value,
            }
        )

    def abandon(self, job: Job) -> EnhancementStatus:
        """Mark the batch's unsummarized chapters failed once its job gave up."""

        numbers = [int(number) for number in job.payload.get("chapter_numbers", [])]
        chapters = self.repository.chapters_missing_summary(job.document_id, numbers)
        self.repository.set_chapter_enhancement_status(
            [chapter.id for chapter in chapters], EnhancementStatus.FAILED
        )
        return self._finish(job.document_id)

    def _enhance(self, summarizer: ChapterSummarizer, chapter: Chapter, book_title: str) -> str:
        """Summarize one chapter and persist the outcome; return its outcome label."""

        try:
            result = summarizer.summarize(chapter, book_title)
        except OpenAIProviderError as exc:
            self.repository.set_chapter_enhancement_status([chapter.id], EnhancementStatus.FAILED)
            self.logger.log_stage_failure(
                STAGE_NAME,
                error_type=type(exc).__name__,
                document_id=chapter.document_id,
                chapter=chapter.chapter_number,
                failure_kind=exc.failure_kind,
            )
            return "failed"
        self.repository.save_summary(chapter.id, result.summary, result.model)
        if result.cached:
            return "cached"
        return "fallback" if result.fallback else "completed"

    def _finish(self, document_id: str) -> EnhancementStatus:
        """Write the aggregate status and close out the workflow once it is terminal."""

        aggregate = aggregate_enhancement_status(self.repository.enhancement_counts(document_id))
        self.repository.set_enhancement_status(document_id, aggregate)
        if aggregate in TERMINAL_AGGREGATES:
            if self.snapshots is not None:
                self.snapshots.save(document_id)
            self.progress.report(
                document_id, Stage.COMPLETED, 100, "Processing completed successfully"
            )
        return aggregate
