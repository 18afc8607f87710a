"""Shared typed data models for chapterflow.

This package contains enums and dataclasses used across pipeline modules to
avoid cross-module coupling and circular imports.
"""

from .datatypes import (
    CacheType,
    Chapter,
    ChapterDraft,
    DetectedChapter,
    DetectionResult,
    Document,
    DocumentStatus,
    EnhancementStatus,
    ExtractedText,
    Job,
    JobStatus,
    ProcessingMetrics,
    ProcessingStatus,
    ProgressRecord,
    StageProgress,
    SubmissionResult,
)
from .stages import NEXT_JOB_TYPE, STAGE_FOR_JOB, STAGE_ORDER, JobType, Stage

__all__ = [
    "CacheType",
    "Chapter",
    "ChapterDraft",
    "DetectedChapter",
    "DetectionResult",
    "Document",
    "DocumentStatus",
    "EnhancementStatus",
    "ExtractedText",
    "Job",
    "JobStatus",
    "JobType",
    "NEXT_JOB_TYPE",
    "ProcessingMetrics",
    "ProcessingStatus",
    "ProgressRecord",
    "STAGE_FOR_JOB",
    "STAGE_ORDER",
    "Stage",
    "StageProgress",
    "SubmissionResult",
]
