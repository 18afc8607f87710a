"""Core datatypes shared across chapterflow modules.

Responsibilities:
- Represent records exchanged between pipeline stages and storage components.
- Provide explicit typing and JSON payload round-tripping for cached stage outputs.

Key types:
- Lifecycle enums: `DocumentStatus`, `EnhancementStatus`, `JobStatus`, `CacheType`.
- Persistent records: `Document`, `Chapter`, `ChapterDraft`, `Job`, `ProgressRecord`.
- Detection records: `DetectedChapter`, `DetectionResult`.
- Reporting records: `StageProgress`, `ProcessingMetrics`, `ProcessingStatus`,
  `SubmissionResult`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .stages import JobType, Stage


class DocumentStatus(str, Enum):
    """Lifecycle status of one uploaded document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class EnhancementStatus(str, Enum):
    """Summary-enhancement status for documents and chapters."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class JobStatus(str, Enum):
    """Lifecycle status of one queued job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class CacheType(str, Enum):
    """Content cache namespaces, one per cached stage output."""

    TEXT_EXTRACTION = "text_extraction"
    CHAPTER_DETECTION = "chapter_detection"
    AI_ENHANCEMENT = "ai_enhancement"
    FULL_WORKFLOW = "full_workflow"


@dataclass(frozen=True, slots=True)
class Document:
    """One uploaded source file and its aggregate processing state."""

    id: str
    owner_id: str
    title: str
    file_name: str
    file_size: int
    author: str | None = None
    genre: str | None = None
    status: DocumentStatus = DocumentStatus.PENDING
    page_count: int | None = None
    total_word_count: int = 0
    reading_time_minutes: int = 0
    enhancement_status: EnhancementStatus = EnhancementStatus.PENDING
    processing_started_at: datetime | None = None
    text_extraction_completed_at: datetime | None = None
    chapter_detection_completed_at: datetime | None = None
    processing_completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ChapterDraft:
    """Validated chapter row ready for insertion.

    Attributes:
        document_id: Owning document identifier.
        chapter_number: 1-based chapter number.
        title: Display title, at most 200 characters.
        content: Chapter body text.
        word_count: Recomputed body word count.
        reading_time_minutes: `ceil(word_count / 200)`.
        highlight_quotes: Up to five heuristic highlight quotes.
        metadata: Detection metadata (method, confidence, offsets).
        part_number: Secondary ordering key, 1 for single-part chapters.
        summary: Optional summary restored from a cached workflow.
        summary_model: Model that produced `summary`, if any.
        enhancement_status: Initial enhancement status of the chapter.
    """

    document_id: str
    chapter_number: int
    title: str
    content: str
    word_count: int
    reading_time_minutes: int
    highlight_quotes: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    part_number: int = 1
    summary: str | None = None
    summary_model: str | None = None
    enhancement_status: EnhancementStatus = EnhancementStatus.PENDING


@dataclass(frozen=True, slots=True)
class Chapter:
    """Persisted chapter row."""

    id: int
    document_id: str
    chapter_number: int
    part_number: int
    title: str
    content: str
    word_count: int
    reading_time_minutes: int
    highlight_quotes: tuple[str, ...]
    enhancement_status: EnhancementStatus
    metadata: dict[str, Any]
    summary: str | None = None
    summary_model: str | None = None


@dataclass(frozen=True, slots=True)
class Job:
    """One queued unit of pipeline work."""

    id: str
    document_id: str
    job_type: JobType
    status: JobStatus
    priority: int
    payload: dict[str, Any]
    retry_count: int
    max_retries: int
    output: dict[str, Any] | None = None
    depends_on: str | None = None
    error_message: str | None = None
    worker_id: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ProgressRecord:
    """Append-only progress log entry for one document."""

    document_id: str
    stage: Stage
    progress: int
    overall_progress: int
    message: str
    is_error: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ExtractedText:
    """Raw text returned by the PDF-to-text capability."""

    text: str
    page_count: int | None = None
    method: str = "unknown"


@dataclass(frozen=True, slots=True)
class DetectedChapter:
    """One candidate chapter produced by a detection strategy.

    Offsets are character positions into the cleaned document text; `content`
    is the stripped slice between them.
    """

    title: str
    content: str
    word_count: int
    start_index: int
    end_index: int
    detection_method: str
    confidence: float
    boundary_strength: float = 0.5

    def to_payload(self) -> dict[str, Any]:
        """Serialize the chapter into a JSON-compatible mapping."""

        return {
            "title": self.title,
            "content": self.content,
            "word_count": self.word_count,
            "start_index": self.start_index,
            "end_index": self.end_index,
            "detection_method": self.detection_method,
            "confidence": self.confidence,
            "boundary_strength": self.boundary_strength,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DetectedChapter:
        """Rebuild a chapter from `to_payload` output or a loosely typed mapping."""

        return cls(
            title=str(payload.get("title") or ""),
            content=str(payload.get("content") or ""),
            word_count=int(payload.get("word_count") or 0),
            start_index=int(payload.get("start_index") or 0),
            end_index=int(payload.get("end_index") or 0),
            detection_method=str(payload.get("detection_method") or "unknown"),
            confidence=float(
                payload["confidence"] if payload.get("confidence") is not None else 0.5
            ),
            boundary_strength=float(
                payload["boundary_strength"]
                if payload.get("boundary_strength") is not None
                else 0.5
            ),
        )


@dataclass(frozen=True, slots=True)
class DetectionResult:
    """Output of one detection strategy, or of the full detector after selection.

    Attributes:
        method: Strategy identifier (`pattern`, `structural`, `semantic`,
            `adaptive_<class>`, or `fallback_chunking`).
        confidence: Strategy self-assessed reliability in [0, 1].
        chapters: Ordered chapters.
        marker_based: Whether chapter starts are explicit heading markers that
            boundary optimization must not move.
        score: Selection score, set once the result has been ranked.
    """

    method: str
    confidence: float
    chapters: tuple[DetectedChapter, ...]
    marker_based: bool = False
    score: float = 0.0

    def to_payload(self) -> dict[str, Any]:
        """Serialize the result into a JSON-compatible mapping."""

        return {
            "method": self.method,
            "confidence": self.confidence,
            "marker_based": self.marker_based,
            "score": self.score,
            "chapters": [chapter.to_payload() for chapter in self.chapters],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DetectionResult:
        """Rebuild a result from `to_payload` output."""

        return cls(
            method=str(payload["method"]),
            confidence=float(payload["confidence"]),
            chapters=tuple(
                DetectedChapter.from_payload(item) for item in payload.get("chapters", [])
            ),
            marker_based=bool(payload.get("marker_based", False)),
            score=float(payload.get("score", 0.0)),
        )


@dataclass(frozen=True, slots=True)
class StageProgress:
    """Per-stage breakdown entry in a processing status."""

    stage: Stage
    status: str
    progress: int
    message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ProcessingMetrics:
    """Computed totals reported alongside a processing status."""

    total_chapters: int
    total_words: int
    reading_time_minutes: int
    processing_seconds: float | None
    cache_hits: int
    jobs_total: int
    jobs_failed: int
    enhanced_chapters: int


@dataclass(frozen=True, slots=True)
class ProcessingStatus:
    """Externally observable workflow status for one document."""

    document_id: str
    status: DocumentStatus
    current_stage: Stage
    progress: int
    overall_progress: int
    message: str
    is_error: bool
    stages: tuple[StageProgress, ...]
    metrics: ProcessingMetrics
    enhancement_status: EnhancementStatus
    estimated_completion_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    """Immediate response of the submit entry point."""

    document_id: str
    workflow_id: str
    cached: bool
    estimated_completion_at: datetime
