"""Shared contracts for queue-driven pipeline stages.

Responsibilities:
- Describe what a stage returns to the job-execution boundary.
- Describe follow-up work a stage asks the worker to enqueue.

Key types:
- `PipelineStage`: protocol implemented by every stage.
- `StageResult`: job output plus follow-up jobs.
- `NextJob`: one follow-up job request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from ..models.datatypes import Job
from ..models.stages import JobType


@dataclass(frozen=True, slots=True)
class NextJob:
    """Follow-up job requested by a completed stage.

    `priority=None` inherits the producing job's priority.
    """

    job_type: JobType
    payload: dict[str, Any] = field(default_factory=dict)
    priority: int | None = None


@dataclass(frozen=True, slots=True)
class StageResult:
    """Outcome of one successful stage run.

    Attributes:
        output: JSON-compatible job output; `cache_hit` marks cached runs.
        next_jobs: Follow-up jobs, enqueued only after this job completes.
    """

    output: dict[str, Any] = field(default_factory=dict)
    next_jobs: tuple[NextJob, ...] = ()


class PipelineStage(Protocol):
    """A unit of pipeline work bound to one job type."""

    job_type: JobType

    def run(self, job: Job) -> StageResult:
        """Execute the stage for one claimed job."""
