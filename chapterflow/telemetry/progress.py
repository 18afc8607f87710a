"""Best-effort progress reporting.

Responsibilities:
- Translate stage progress into append-only progress records.
- Never let a failed progress write block or fail the pipeline.
"""

from __future__ import annotations

import sqlite3
from typing import Protocol

from ..models.datatypes import ProgressRecord
from ..models.stages import Stage, overall_progress
from ..storage.repository import DocumentRepository
from .logger import PipelineLogger


class ProgressSink(Protocol):
    """Destination for workflow progress updates."""

    def report(
        self,
        document_id: str,
        stage: Stage,
        progress: int,
        message: str,
        *,
        is_error: bool = False,
    ) -> bool:
        """Record one progress update; return whether it was stored."""


class BestEffortProgressSink:
    """Append progress records, logging and dropping storage failures."""

    def __init__(
        self,
        repository: DocumentRepository,
        logger: PipelineLogger | None = None,
    ) -> None:
        self.repository = repository
        self.logger = logger or PipelineLogger()

    def report(
        self,
        document_id: str,
        stage: Stage,
        progress: int,
        message: str,
        *,
        is_error: bool = False,
    ) -> bool:
        """Append one progress record for `document_id`."""

        bounded = min(100, max(0, int(progress)))
        record = ProgressRecord(
            document_id=document_id,
            stage=stage,
            progress=bounded,
            overall_progress=overall_progress(stage, bounded),
            message=message,
            is_error=is_error,
        )
        try:
            self.repository.append_progress(record)
        except sqlite3.Error as exc:
            self.logger.log_event(
                "progress",
                "sink_failure",
                level="WARNING",
                document_id=document_id,
                error_type=type(exc).__name__,
            )
            return False
        return True
