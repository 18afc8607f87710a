"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
submission results, workflow status, document and chapter listings, and cache
maintenance.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .cache.content_cache import CacheMaintenanceReport, CacheStats
from .errors import PipelineStageError
from .models.datatypes import Chapter, Document, ProcessingStatus, SubmissionResult
from .timeutils import to_iso


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_submission(result: SubmissionResult) -> None:
    """Print the immediate response of a submission."""

    typer.echo(f"Document id: {result.document_id}")
    typer.echo(f"Workflow id: {result.workflow_id}")
    typer.echo(f"Cached: {'yes' if result.cached else 'no'}")
    typer.echo(f"Estimated completion: {to_iso(result.estimated_completion_at)}")


def echo_status(status: ProcessingStatus) -> None:
    """Print one workflow status with its stage breakdown and metrics."""

    typer.echo(f"Document {status.document_id}: {status.status.value}")
    typer.echo(
        f"  Stage: {status.current_stage.value} ({status.progress}%), "
        f"overall {status.overall_progress}%"
    )
    typer.echo(f"  Message: {status.message}{' [error]' if status.is_error else ''}")
    typer.echo(f"  Enhancement: {status.enhancement_status.value}")
    if status.estimated_completion_at is not None:
        typer.echo(f"  Estimated completion: {to_iso(status.estimated_completion_at)}")
    for stage in status.stages:
        typer.echo(f"  - {stage.stage.value}: {stage.status} ({stage.progress}%)")
    metrics = status.metrics
    typer.echo(
        f"  Chapters: {metrics.total_chapters}, words: {metrics.total_words}, "
        f"reading time: {metrics.reading_time_minutes} min"
    )
    typer.echo(
        f"  Jobs: {metrics.jobs_total} total, {metrics.jobs_failed} failed, "
        f"cache hits: {metrics.cache_hits}, enhanced chapters: {metrics.enhanced_chapters}"
    )


def echo_document_list(documents: list[Document]) -> None:
    """Print one row per document, newest first."""

    for document in documents:
        words = f", {document.total_word_count} words" if document.total_word_count else ""
        typer.echo(
            f"{document.id}  {document.title} [{document.status.value}, "
            f"enhancement {document.enhancement_status.value}{words}]"
        )


def echo_chapter_list(chapters: list[Chapter], show_summaries: bool = False) -> None:
    """Print compact deterministic chapter rows."""

    for chapter in sorted(chapters, key=lambda item: (item.chapter_number, item.part_number)):
        typer.echo(
            f"{chapter.chapter_number}. {chapter.title} "
            f"({chapter.word_count} words, {chapter.reading_time_minutes} min, "
            f"{chapter.enhancement_status.value})"
        )
        if show_summaries and chapter.summary:
            typer.echo(f"   {chapter.summary}")


def echo_cache_maintenance(report: CacheMaintenanceReport, stats: CacheStats) -> None:
    """Print cache maintenance results and remaining entries per type."""

    typer.echo(f"Evicted entries: {report.evicted}")
    typer.echo(f"Collapsed duplicates: {report.collapsed}")
    typer.echo(f"Remaining entries: {stats.total_entries}")
    for cache_type, count in sorted(stats.entries.items(), key=lambda item: item[0].value):
        typer.echo(f"  {cache_type.value}: {count} entries, {stats.hits.get(cache_type, 0)} hits")
