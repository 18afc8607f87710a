"""Chapter detection stage.

Responsibilities:
- Run the multi-strategy detector over cleaned text.
- Reuse cached detections keyed by full-text hash, title, and detector version.
"""

from __future__ import annotations

import time

from ..cache.content_cache import ContentCache
from ..cache.keys import chapter_detection_key
from ..detection.detector import ChapterDetector
from ..errors import DocumentInputError
from ..models.datatypes import DetectionResult, Job
from ..models.stages import JobType, Stage
from ..storage.repository import DocumentRepository
from ..telemetry.logger import PipelineLogger
from ..telemetry.progress import ProgressSink
from ..text.metrics import content_hash
from .base import NextJob, StageResult
from .extraction import load_document

STAGE_NAME = "detect_chapters"


class ChapterDetectionStage:
    """Segment document text into candidate chapters."""

    job_type = JobType.DETECT_CHAPTERS

    def __init__(
        self,
        *,
        repository: DocumentRepository,
        detector: ChapterDetector,
        progress: ProgressSink,
        cache: ContentCache | None = None,
        logger: PipelineLogger | None = None,
    ) -> None:
        self.repository = repository
        self.detector = detector
        self.progress = progress
        self.cache = cache
        self.logger = logger or PipelineLogger()

    def run(self, job: Job) -> StageResult:
        """Detect chapters for the job's text and request chapter storage."""

        document = load_document(self.repository, job.document_id, STAGE_NAME)
        text = job.payload.get("text")
        if not isinstance(text, str) or not text.strip():
            raise DocumentInputError(
                stage=STAGE_NAME,
                detail="Detection job carries no text.",
                hint="Resubmit the document to restart from text extraction.",
            )
        text_hash = str(job.payload.get("text_hash") or content_hash(text))
        self.progress.report(document.id, Stage.DETECTING_CHAPTERS, 0, "Detecting chapters")

        key = chapter_detection_key(text_hash, document.title, self.detector.algorithm_version)
        cached = self.cache.get(key) if self.cache is not None else None
        if cached is not None:
            self.logger.log_event(STAGE_NAME, "cache_hit", document_id=document.id)
            result = DetectionResult.from_payload(cached)
        else:
            started = time.monotonic()
            result = self.detector.detect(text, document.title, document.genre)
            if self.cache is not None:
                self.cache.put(
                    key,
                    result.to_payload(),
                    file_size=len(text.encode("utf-8")),
                    processing_time_seconds=time.monotonic() - started,
                )

        self.repository.record_detection(document.id)
        self.progress.report(
            document.id,
            Stage.DETECTING_CHAPTERS,
            100,
            f"Detected {len(result.chapters)} chapters using {result.method}",
        )
        return StageResult(
            output={
                "cache_hit": cached is not None,
                "method": result.method,
                "confidence": result.confidence,
                "score": result.score,
                "chapter_count": len(result.chapters),
            },
            next_jobs=(NextJob(JobType.STORE_CHAPTERS, {"detection": result.to_payload()}),),
        )
