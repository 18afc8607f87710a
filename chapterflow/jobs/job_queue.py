"""Durable priority job queue over the `jobs` table.

Responsibilities:
- Enqueue pipeline jobs with priority, optional dependency, and a retry cap.
- Hand out work through one atomic conditional update so concurrent claimers
  never receive the same job.
- Apply the bounded retry path, including to claims whose lease expired.
- Expose job history for status reporting.

Key types:
- `JobQueue`: enqueue/claim/complete/fail contract used by orchestrator and workers.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta
import json
import sqlite3
from typing import Any
from uuid import uuid4

from ..errors import QueueUnavailableError
from ..models.datatypes import Job, JobStatus
from ..models.stages import JobType
from ..storage.db import Database
from ..timeutils import parse_iso, to_iso, utc_now

_CLAIM_SQL = """
UPDATE jobs
SET status = 'running', started_at = ?, updated_at = ?, worker_id = ?
WHERE id = (
    SELECT job.id FROM jobs AS job
    LEFT JOIN jobs AS dependency ON job.depends_on = dependency.id
    WHERE job.status = 'pending'
      AND (job.depends_on IS NULL OR dependency.status = 'completed')
      {type_filter}
    ORDER BY job.priority ASC, job.created_at ASC, job.rowid ASC
    LIMIT 1
)
AND status = 'pending'
RETURNING *
"""


def _job_from_row(row: sqlite3.Row) -> Job:
    """Build a `Job` from a `jobs` row."""

    output = row["output"]
    return Job(
        id=row["id"],
        document_id=row["document_id"],
        job_type=JobType(row["job_type"]),
        status=JobStatus(row["status"]),
        priority=int(row["priority"]),
        payload=json.loads(row["payload"]),
        retry_count=int(row["retry_count"]),
        max_retries=int(row["max_retries"]),
        output=json.loads(output) if output is not None else None,
        depends_on=row["depends_on"],
        error_message=row["error_message"],
        worker_id=row["worker_id"],
        created_at=parse_iso(row["created_at"]),
        started_at=parse_iso(row["started_at"]),
        completed_at=parse_iso(row["completed_at"]),
    )


@contextmanager
def _queue_errors(operation: str) -> Iterator[None]:
    """Translate SQLite availability failures into `QueueUnavailableError`."""

    try:
        yield
    except sqlite3.IntegrityError:
        raise
    except sqlite3.DatabaseError as exc:
        raise QueueUnavailableError(
            stage="job_queue",
            detail=f"Job queue `{operation}` failed: {exc}",
            hint="Check that the database file is writable and not locked by another process.",
        ) from exc


class JobQueue:
    """Priority-ordered job queue with atomic claims and bounded retries."""

    def __init__(
        self,
        database: Database,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Bind the queue to a database and timestamp source."""

        self._db = database
        self._clock = clock

    def _now(self) -> str:
        return to_iso(self._clock())

    def enqueue(
        self,
        document_id: str,
        job_type: JobType,
        payload: Mapping[str, Any] | None = None,
        *,
        priority: int = 5,
        depends_on: str | None = None,
        max_retries: int = 3,
    ) -> str:
        """Add a pending job and return its identifier."""

        job_id = uuid4().hex
        now = self._now()
        with _queue_errors("enqueue"):
            with self._db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO jobs (
                        id, document_id, job_type, status, priority, payload,
                        max_retries, depends_on, created_at, updated_at
                    ) VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        job_id,
                        document_id,
                        job_type.value,
                        int(priority),
                        json.dumps(dict(payload or {}), sort_keys=True, ensure_ascii=False),
                        int(max_retries),
                        depends_on,
                        now,
                        now,
                    ),
                )
        return job_id

    def claim_next(
        self,
        allowed_types: Collection[JobType] | None = None,
        worker_id: str | None = None,
    ) -> Job | None:
        """Atomically move the most urgent claimable job to `running` and return it.

        A job is claimable when it is `pending` and its dependency, if any, is
        `completed`. Order is priority ascending, then creation time.
        """

        params: list[Any] = []
        type_filter = ""
        if allowed_types:
            values = sorted({job_type.value for job_type in allowed_types})
            type_filter = f"AND job.job_type IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        now = self._now()
        with _queue_errors("claim"):
            with self._db.transaction() as conn:
                rows = conn.execute(
                    _CLAIM_SQL.format(type_filter=type_filter),
                    (now, now, worker_id, *params),
                ).fetchall()
        return _job_from_row(rows[0]) if rows else None

    def complete(self, job_id: str, output: Mapping[str, Any] | None = None) -> None:
        """Mark a running job completed with its output payload."""

        now = self._now()
        with _queue_errors("complete"):
            with self._db.transaction() as conn:
                conn.execute(
                    """
                    UPDATE jobs SET status = 'completed', output = ?, error_message = NULL,
                        completed_at = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        json.dumps(dict(output or {}), sort_keys=True, ensure_ascii=False),
                        now,
                        now,
                        job_id,
                    ),
                )

    def fail(self, job_id: str, error_message: str, *, retryable: bool = True) -> JobStatus:
        """Record a failed attempt and return the job's resulting status.

        Retryable failures return the job to `pending` while the incremented
        retry count stays below the cap; otherwise the job becomes `failed`.
        """

        now = self._now()
        with _queue_errors("fail"):
            with self._db.transaction() as conn:
                rows = conn.execute(
                    """
                    UPDATE jobs SET
                        retry_count = retry_count + 1,
                        status = CASE
                            WHEN ? AND retry_count + 1 < max_retries THEN 'pending'
                            ELSE 'failed'
                        END,
                        error_message = ?,
                        worker_id = NULL,
                        completed_at = CASE
                            WHEN ? AND retry_count + 1 < max_retries THEN NULL
                            ELSE ?
                        END,
                        updated_at = ?
                    WHERE id = ?
                    RETURNING status
                    """,
                    (1 if retryable else 0, error_message, 1 if retryable else 0, now, now, job_id),
                ).fetchall()
        if not rows:
            raise KeyError(job_id)
        return JobStatus(rows[0]["status"])

    def reclaim_expired(self, lease_seconds: int) -> list[Job]:
        """Treat `running` jobs claimed more than `lease_seconds` ago as failed attempts.

        Each expired job goes through the retry path of `fail`: back to
        `pending` while retries remain, `failed` otherwise. The updated jobs
        are returned so the caller can settle documents whose job gave up.
        """

        now = self._clock()
        cutoff = to_iso(now - timedelta(seconds=lease_seconds))
        message = f"Job lease expired after {lease_seconds} seconds"
        stamp = to_iso(now)
        with _queue_errors("reclaim"):
            with self._db.transaction() as conn:
                rows = conn.execute(
                    """
                    UPDATE jobs SET
                        retry_count = retry_count + 1,
                        status = CASE
                            WHEN retry_count + 1 < max_retries THEN 'pending'
                            ELSE 'failed'
                        END,
                        error_message = ?,
                        worker_id = NULL,
                        completed_at = CASE
                            WHEN retry_count + 1 < max_retries THEN NULL
                            ELSE ?
                        END,
                        updated_at = ?
                    WHERE status = 'running' AND started_at < ?
                    RETURNING *
                    """,
                    (message, stamp, stamp, cutoff),
                ).fetchall()
        return [_job_from_row(row) for row in rows]

    def retry_failed(self, job_id: str) -> bool:
        """Return a failed job to `pending` with a fresh retry budget."""

        with _queue_errors("retry"):
            with self._db.transaction() as conn:
                cursor = conn.execute(
                    """
                    UPDATE jobs SET status = 'pending', retry_count = 0, error_message = NULL,
                        completed_at = NULL, updated_at = ?
                    WHERE id = ? AND status = 'failed'
                    """,
                    (self._now(), job_id),
                )
                return cursor.rowcount == 1

    def get(self, job_id: str) -> Job | None:
        """Return one job by id."""

        with _queue_errors("get"):
            row = self._db.fetch_one("SELECT * FROM jobs WHERE id = ?", (job_id,))
        return _job_from_row(row) if row is not None else None

    def jobs_for_document(self, document_id: str) -> list[Job]:
        """Return every job of a document in creation order."""

        with _queue_errors("list"):
            rows = self._db.fetch_all(
                "SELECT * FROM jobs WHERE document_id = ? ORDER BY created_at, rowid",
                (document_id,),
            )
        return [_job_from_row(row) for row in rows]

    def clear_document(self, document_id: str) -> int:
        """Delete every job of a document and return the deleted row count."""

        with _queue_errors("clear"):
            with self._db.transaction() as conn:
                cursor = conn.execute("DELETE FROM jobs WHERE document_id = ?", (document_id,))
                return cursor.rowcount

    def pending_count(self, allowed_types: Collection[JobType] | None = None) -> int:
        """Return how many jobs are waiting, optionally restricted by type."""

        sql = "SELECT COUNT(*) AS total FROM jobs WHERE status = 'pending'"
        params: list[Any] = []
        if allowed_types:
            values = sorted({job_type.value for job_type in allowed_types})
            sql += f" AND job_type IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        with _queue_errors("count"):
            row = self._db.fetch_one(sql, params)
        return int(row["total"]) if row is not None else 0
