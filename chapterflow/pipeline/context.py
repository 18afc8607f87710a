"""Composition root wiring storage, caches, stages, and workers together.

Responsibilities:
- Build every pipeline component from one validated `PipelineConfig`.
- Let callers inject collaborators (blob store, extractor, chat client, clock).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime

from ..cache.content_cache import ContentCache
from ..config import PipelineConfig
from ..detection.detector import ChapterDetector
from ..io.pdf_text_extractor import PdfTextExtractor, TextExtractor
from ..jobs.job_queue import JobQueue
from ..llm.openai_client import OpenAIChatClient
from ..llm.rate_limiter import CallBudget
from ..llm.summarizer import ChapterSummarizer, ChatClient
from ..models.stages import JobType
from ..stages.base import PipelineStage
from ..stages.chapter_store import ChapterStoreStage
from ..stages.detection import ChapterDetectionStage
from ..stages.enhancement import EnhancementStage
from ..stages.extraction import TextExtractionStage
from ..stages.snapshots import WorkflowSnapshots
from ..storage.blob_store import BlobStore, FilesystemBlobStore
from ..storage.db import Database
from ..storage.repository import DocumentRepository
from ..telemetry.logger import PipelineLogger
from ..telemetry.progress import BestEffortProgressSink
from ..timeutils import utc_now
from .orchestrator import PipelineOrchestrator
from .status import StatusReporter
from .worker import PipelineWorker


def build_chat_client(config: PipelineConfig, api_key: str) -> OpenAIChatClient:
    """Build the OpenAI client behind the configured call budget."""

    limits = config.rate_limits
    budget = CallBudget(
        max_concurrent=limits.max_concurrent,
        per_minute=limits.per_minute,
        per_hour=limits.per_hour,
        min_interval_seconds=limits.min_interval_seconds,
    )
    return OpenAIChatClient(
        api_key=api_key,
        max_retries=limits.max_retries,
        retry_backoff_base_seconds=limits.backoff_base_seconds,
        retry_backoff_max_seconds=limits.backoff_max_seconds,
        rate_limiter=budget,
    )


@dataclass(slots=True)
class PipelineContext:
    """Fully wired pipeline components sharing one database."""

    config: PipelineConfig
    database: Database
    repository: DocumentRepository
    queue: JobQueue
    cache: ContentCache | None
    blob_store: BlobStore
    logger: PipelineLogger
    stages: dict[JobType, PipelineStage]
    summarizer: ChapterSummarizer | None
    worker: PipelineWorker
    orchestrator: PipelineOrchestrator
    status_reporter: StatusReporter
    clock: Callable[[], datetime]

    @classmethod
    def create(
        cls,
        config: PipelineConfig,
        *,
        blob_store: BlobStore | None = None,
        extractor: TextExtractor | None = None,
        chat_client: ChatClient | None = None,
        logger: PipelineLogger | None = None,
        clock: Callable[[], datetime] = utc_now,
        env: Mapping[str, str] | None = None,
    ) -> PipelineContext:
        """Build a context; the chat client defaults to OpenAI when a key is available."""

        config.validate()
        logger = logger or PipelineLogger()
        database = Database(str(config.database_path))
        repository = DocumentRepository(database, clock=clock)
        queue = JobQueue(database, clock=clock)
        cache = ContentCache(database, clock=clock) if config.enable_caching else None
        snapshots = (
            WorkflowSnapshots(cache, repository)
            if cache is not None and config.enable_workflow_cache
            else None
        )
        blob_store = blob_store or FilesystemBlobStore(config.blob_root)
        progress = BestEffortProgressSink(repository, logger)

        summarizer: ChapterSummarizer | None = None
        if config.enable_enhancement:
            if chat_client is None:
                api_key = config.resolved_api_key(env)
                if api_key is not None:
                    chat_client = build_chat_client(config, api_key)
            if chat_client is not None:
                summarizer = ChapterSummarizer(
                    chat_client, model=config.summary_model, cache=cache, logger=logger
                )
        enhancement_available = summarizer is not None

        stages: dict[JobType, PipelineStage] = {
            JobType.EXTRACT_TEXT: TextExtractionStage(
                repository=repository,
                blob_store=blob_store,
                extractor=extractor or PdfTextExtractor(),
                progress=progress,
                cache=cache,
                logger=logger,
            ),
            JobType.DETECT_CHAPTERS: ChapterDetectionStage(
                repository=repository,
                detector=ChapterDetector(weights=config.selection_weights),
                progress=progress,
                cache=cache,
                logger=logger,
            ),
            JobType.STORE_CHAPTERS: ChapterStoreStage(
                repository=repository,
                progress=progress,
                insert_batch_size=config.chapter_insert_batch_size,
                enhancement_batch_size=config.enhancement_batch_size,
                enhancement_enabled=enhancement_available,
                snapshots=snapshots,
                logger=logger,
            ),
            JobType.ENHANCE_CHAPTERS: EnhancementStage(
                repository=repository,
                progress=progress,
                summarizer=summarizer,
                max_concurrent=config.rate_limits.max_concurrent,
                snapshots=snapshots,
                logger=logger,
            ),
        }
        worker = PipelineWorker(
            queue=queue,
            repository=repository,
            stages=stages,
            progress=progress,
            config=config,
            logger=logger,
            clock=clock,
        )
        orchestrator = PipelineOrchestrator(
            repository=repository,
            queue=queue,
            progress=progress,
            config=config,
            snapshots=snapshots,
            inline_runner=worker.run_inline,
            enhancement_available=enhancement_available,
            logger=logger,
            clock=clock,
        )
        return cls(
            config=config,
            database=database,
            repository=repository,
            queue=queue,
            cache=cache,
            blob_store=blob_store,
            logger=logger,
            stages=stages,
            summarizer=summarizer,
            worker=worker,
            orchestrator=orchestrator,
            status_reporter=StatusReporter(repository, queue, clock=clock),
            clock=clock,
        )

    def new_worker(self, worker_id: str | None = None) -> PipelineWorker:
        """Return another worker sharing this context's stages and queue."""

        return PipelineWorker(
            queue=self.queue,
            repository=self.repository,
            stages=self.stages,
            progress=self.worker.progress,
            config=self.config,
            logger=self.logger,
            clock=self.clock,
            worker_id=worker_id,
        )

    def close(self) -> None:
        """Close the shared database connection."""

        self.database.close()
