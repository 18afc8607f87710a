"""Pipeline submission, job execution, and status reporting."""

from .context import PipelineContext, build_chat_client
from .orchestrator import PipelineOrchestrator, estimate_processing_minutes
from .status import StatusReporter, estimate_completion
from .worker import PipelineWorker

__all__ = [
    "PipelineContext",
    "PipelineOrchestrator",
    "PipelineWorker",
    "StatusReporter",
    "build_chat_client",
    "estimate_completion",
    "estimate_processing_minutes",
]
