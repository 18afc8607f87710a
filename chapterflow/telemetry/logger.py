"""Structured pipeline logging utilities.

Responsibilities:
- Emit concise, deterministic stage and job events through `loguru`.
- Keep context keys ordered and shell-safe so log lines stay grep-friendly.
"""

from __future__ import annotations

from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
        if context[key] is not None
    ]
    return " " + " ".join(tokens) if tokens else ""


def configure_logging(sink: TextIO, level: str = "INFO") -> None:
    """Route every `loguru` record to one plain-text sink."""

    _loguru_logger.remove()
    _loguru_logger.add(sink, format="{message}", level=level.upper(), colorize=False)


class PipelineLogger:
    """Emit deterministic phase logs for worker and orchestrator activity."""

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        """Initialize the logger, replacing `loguru` sinks when one is given."""

        if sink is not None:
            configure_logging(sink, level)

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        _loguru_logger.log(level, line)

    def log_stage_start(self, stage: str, **context: object) -> None:
        """Emit a stage-start runtime event."""

        self._emit("INFO", "start", stage, **context)

    def log_stage_complete(self, stage: str, **context: object) -> None:
        """Emit a stage-complete runtime event."""

        self._emit("INFO", "complete", stage, **context)

    def log_stage_failure(self, stage: str, error_type: str, **context: object) -> None:
        """Emit a stage-failure runtime event without sensitive payload details."""

        self._emit("ERROR", "failure", stage, error_type=error_type, **context)

    def log_event(self, stage: str, event: str, level: str = "INFO", **context: object) -> None:
        """Emit an arbitrary named event such as a cache hit or a retry."""

        self._emit(level.upper(), event, stage, **context)
