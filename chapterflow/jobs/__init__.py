"""Priority job queue for pipeline stages."""

from .job_queue import JobQueue

__all__ = ["JobQueue"]
