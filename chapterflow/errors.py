"""Domain exceptions for pipeline stages, job execution, and CLI diagnostics.

Responsibilities:
- Carry stage-scoped failure details with an optional actionable hint.
- Separate terminal input errors from transient infrastructure errors so the
  job-execution boundary can pick the right retry path.
"""

from __future__ import annotations


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class DocumentInputError(PipelineStageError):
    """Raised for missing or unprocessable documents; never retried."""


class BlobNotFoundError(PipelineStageError):
    """Raised when the source blob for a document cannot be fetched."""


class QueueUnavailableError(PipelineStageError):
    """Raised when the job queue storage cannot accept or hand out work."""
