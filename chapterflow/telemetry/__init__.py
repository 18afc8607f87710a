"""Telemetry and observability helpers.

This package emits structured pipeline events for operators and tests, and
records best-effort workflow progress.
"""

from .logger import PipelineLogger, configure_logging
from .progress import BestEffortProgressSink, ProgressSink

__all__ = ["BestEffortProgressSink", "PipelineLogger", "ProgressSink", "configure_logging"]
