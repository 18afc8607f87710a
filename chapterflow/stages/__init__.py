"""Queue-driven pipeline stages: extract, detect, store, enhance."""

from .base import NextJob, PipelineStage, StageResult
from .chapter_store import ChapterStoreStage, plan_enhancement_batches, validate_chapter
from .detection import ChapterDetectionStage
from .enhancement import EnhancementStage, aggregate_enhancement_status
from .extraction import TextExtractionStage
from .snapshots import WorkflowSnapshots, restore_drafts, workflow_key

__all__ = [
    "ChapterDetectionStage",
    "ChapterStoreStage",
    "EnhancementStage",
    "NextJob",
    "PipelineStage",
    "StageResult",
    "TextExtractionStage",
    "WorkflowSnapshots",
    "aggregate_enhancement_status",
    "plan_enhancement_batches",
    "restore_drafts",
    "validate_chapter",
    "workflow_key",
]
