"""Command-line interface for chapterflow.

Responsibilities:
- Expose user-facing commands for submission, workers, status, listings, and
  cache upkeep.
- Convert CLI arguments and config files into a wired `PipelineContext`.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

from pathlib import Path
import sys
import threading
from typing import Annotated

import typer

from .cli_rendering import (
    echo_cache_maintenance,
    echo_chapter_list,
    echo_document_list,
    echo_status,
    echo_submission,
    exit_with_command_error,
)
from .config import ConfigLoader, PipelineConfig
from .errors import PipelineStageError
from .models.stages import JobType
from .parsing import normalize_optional_string
from .pipeline.context import PipelineContext
from .storage.blob_store import FilesystemBlobStore
from .telemetry.logger import PipelineLogger

app = typer.Typer(
    name="chapterflow",
    no_args_is_help=True,
    help="chapterflow CLI.",
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to YAML config file; environment is used otherwise."),
]


def _load_config(config_path: Path | None) -> PipelineConfig:
    """Load config from YAML or the environment and map failures to stage errors."""

    if config_path is None:
        try:
            return ConfigLoader.from_env()
        except ValueError as exc:
            raise PipelineStageError(
                stage="config",
                detail=f"Invalid environment configuration: {exc}",
                hint="Fix the `CHAPTERFLOW_*` environment variables and rerun.",
            ) from exc

    try:
        return ConfigLoader.from_yaml(config_path)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid config file `{config_path}`: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc


def _open_context(config_path: Path | None) -> PipelineContext:
    """Build a pipeline context with a filesystem blob store and stderr logging."""

    config = _load_config(config_path)
    return PipelineContext.create(
        config,
        blob_store=FilesystemBlobStore(config.blob_root),
        logger=PipelineLogger(sink=sys.stderr),
    )


def _parse_job_types(values: list[str] | None) -> list[JobType] | None:
    """Parse `--type` values into job types."""

    if not values:
        return None
    parsed: list[JobType] = []
    for value in values:
        try:
            parsed.append(JobType(value.strip().lower()))
        except ValueError as exc:
            allowed = ", ".join(job_type.value for job_type in JobType)
            raise PipelineStageError(
                stage="cli",
                detail=f"Unknown job type `{value}`.",
                hint=f"Use one of: {allowed}.",
            ) from exc
    return parsed


@app.command("submit")
def submit_command(
    input_pdf: Annotated[Path, typer.Argument(help="Path to the source PDF.")],
    owner: Annotated[str, typer.Option("--owner", help="Owning user identifier.")],
    title: Annotated[
        str | None,
        typer.Option("--title", help="Book title; defaults to the file name stem."),
    ] = None,
    author: Annotated[str | None, typer.Option("--author", help="Book author.")] = None,
    genre: Annotated[str | None, typer.Option("--genre", help="Book genre.")] = None,
    priority: Annotated[
        int | None,
        typer.Option("--priority", min=1, max=10, help="Job priority, 1 is most urgent."),
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """Store a PDF, register it, and submit it for processing."""

    try:
        if not input_pdf.is_file():
            raise PipelineStageError(
                stage="submit",
                detail=f"Input PDF not found: `{input_pdf}`.",
                hint="Pass an existing PDF path.",
            )
        context = _open_context(config_file)
        try:
            data = input_pdf.read_bytes()
            FilesystemBlobStore(context.config.blob_root).upload(owner, input_pdf.name, data)
            document = context.repository.create_document(
                owner_id=owner,
                title=normalize_optional_string(title) or input_pdf.stem,
                file_name=input_pdf.name,
                file_size=len(data),
                author=normalize_optional_string(author),
                genre=normalize_optional_string(genre),
            )
            result = context.orchestrator.submit(document.id, priority=priority)
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("submit", exc)

    echo_submission(result)


@app.command("resubmit")
def resubmit_command(
    document_id: Annotated[str, typer.Argument(help="Identifier of a registered document.")],
    priority: Annotated[
        int | None,
        typer.Option("--priority", min=1, max=10, help="Job priority, 1 is most urgent."),
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """Reprocess a document from extraction, reusing cached stage outputs."""

    try:
        context = _open_context(config_file)
        try:
            result = context.orchestrator.submit(document_id, priority=priority)
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("resubmit", exc)

    echo_submission(result)


@app.command("work")
def work_command(
    workers: Annotated[
        int, typer.Option("--workers", min=1, help="Number of concurrent worker threads.")
    ] = 1,
    until_idle: Annotated[
        bool,
        typer.Option(
            "--until-idle/--forever",
            help="Stop once no job is claimable, or keep polling until interrupted.",
        ),
    ] = True,
    job_types: Annotated[
        list[str] | None,
        typer.Option("--type", help="Only claim jobs of this type; repeatable."),
    ] = None,
    max_jobs: Annotated[
        int | None,
        typer.Option("--max-jobs", min=1, help="Per-worker job limit in until-idle mode."),
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """Run queue workers."""

    processed: list[int] = []
    try:
        allowed = _parse_job_types(job_types)
        context = _open_context(config_file)
        try:
            stop_event = threading.Event()
            lock = threading.Lock()

            def _run(worker_index: int) -> None:
                worker = context.new_worker(f"worker-{worker_index + 1}")
                if until_idle:
                    count = worker.run_until_idle(allowed, max_jobs=max_jobs)
                else:
                    count = worker.run_forever(stop_event, allowed)
                with lock:
                    processed.append(count)

            threads = [
                threading.Thread(target=_run, args=(index,), daemon=True)
                for index in range(workers)
            ]
            for thread in threads:
                thread.start()
            try:
                for thread in threads:
                    while thread.is_alive():
                        thread.join(timeout=0.5)
            except KeyboardInterrupt:
                stop_event.set()
                for thread in threads:
                    thread.join()
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("work", exc)

    typer.echo(f"Processed jobs: {sum(processed)}")


@app.command("status")
def status_command(
    document_ids: Annotated[list[str], typer.Argument(help="Document identifiers.")],
    config_file: ConfigOption = None,
) -> None:
    """Show workflow status for one or more documents."""

    try:
        context = _open_context(config_file)
        try:
            statuses = context.status_reporter.statuses(document_ids)
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("status", exc)

    found = {status.document_id for status in statuses}
    for status in statuses:
        echo_status(status)
    for document_id in document_ids:
        if document_id not in found:
            typer.secho(f"Document {document_id}: not found", fg=typer.colors.YELLOW, err=True)
    if not statuses:
        raise typer.Exit(code=1)


@app.command("documents")
def documents_command(
    owner: Annotated[
        str | None, typer.Option("--owner", help="Only list documents of this owner.")
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """List registered documents, newest first."""

    try:
        context = _open_context(config_file)
        try:
            documents = context.repository.list_documents(normalize_optional_string(owner))
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("documents", exc)

    if not documents:
        typer.echo("No documents registered.")
        return
    echo_document_list(documents)


@app.command("chapters")
def chapters_command(
    document_id: Annotated[str, typer.Argument(help="Document identifier.")],
    summaries: Annotated[
        bool, typer.Option("--summaries", help="Also print chapter summaries.")
    ] = False,
    config_file: ConfigOption = None,
) -> None:
    """List stored chapters of a document."""

    try:
        context = _open_context(config_file)
        try:
            if context.repository.get_document(document_id) is None:
                raise PipelineStageError(
                    stage="chapters",
                    detail=f"Document `{document_id}` does not exist.",
                    hint="Check the identifier printed by `chapterflow submit`.",
                )
            chapters = context.repository.list_chapters(document_id)
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("chapters", exc)

    if not chapters:
        typer.echo("No chapters stored yet.")
        return
    echo_chapter_list(chapters, show_summaries=summaries)


@app.command("cache-maintain")
def cache_maintain_command(
    max_age_days: Annotated[
        int | None,
        typer.Option("--max-age-days", min=1, help="Evict entries older than this many days."),
    ] = None,
    min_hits: Annotated[
        int | None,
        typer.Option("--min-hits", min=0, help="Keep old entries with at least this many hits."),
    ] = None,
    config_file: ConfigOption = None,
) -> None:
    """Evict stale cache entries and collapse duplicates."""

    try:
        context = _open_context(config_file)
        try:
            if context.cache is None:
                raise PipelineStageError(
                    stage="cache",
                    detail="Caching is disabled in the active configuration.",
                    hint="Set `enable_caching: true` to use cache maintenance.",
                )
            report = context.cache.maintain(
                max_age_days=max_age_days or context.config.cache_max_age_days,
                min_hits=context.config.cache_min_hits if min_hits is None else min_hits,
            )
            stats = context.cache.stats()
        finally:
            context.close()
    except Exception as exc:
        exit_with_command_error("cache-maintain", exc)

    echo_cache_maintenance(report, stats)


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
