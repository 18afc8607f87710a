"""Unit tests for the durable priority job queue."""

from __future__ import annotations

import sqlite3
import threading

import pytest

from chapterflow.errors import QueueUnavailableError
from chapterflow.jobs.job_queue import JobQueue
from chapterflow.models.datatypes import JobStatus
from chapterflow.models.stages import JobType
from chapterflow.storage.db import Database


def test_claim_next_orders_by_priority_then_creation(database: Database) -> None:
    """The most urgent job should be claimed first; ties go to the oldest job."""

    queue = JobQueue(database)
    low = queue.enqueue("doc-1", JobType.EXTRACT_TEXT, priority=8)
    first_urgent = queue.enqueue("doc-2", JobType.EXTRACT_TEXT, priority=2)
    second_urgent = queue.enqueue("doc-3", JobType.EXTRACT_TEXT, priority=2)

    claimed = [queue.claim_next(worker_id="w-1") for _ in range(3)]

    assert [job.id for job in claimed if job is not None] == [first_urgent, second_urgent, low]
    assert all(job is not None and job.status is JobStatus.RUNNING for job in claimed)
    assert queue.claim_next() is None


def test_claim_next_waits_for_dependency_completion(database: Database) -> None:
    """A dependent job should stay unclaimable until its dependency completes."""

    queue = JobQueue(database)
    parent = queue.enqueue("doc-1", JobType.STORE_CHAPTERS)
    child = queue.enqueue("doc-1", JobType.ENHANCE_CHAPTERS, priority=1, depends_on=parent)

    claimed_parent = queue.claim_next()
    assert claimed_parent is not None and claimed_parent.id == parent
    assert queue.claim_next() is None

    queue.complete(parent, {"chapter_count": 2})
    claimed_child = queue.claim_next()

    assert claimed_child is not None
    assert claimed_child.id == child
    assert claimed_child.depends_on == parent


def test_claim_next_filters_by_job_type(database: Database) -> None:
    """Workers restricted to certain job types should only receive those jobs."""

    queue = JobQueue(database)
    queue.enqueue("doc-1", JobType.EXTRACT_TEXT, priority=1)
    enhance = queue.enqueue("doc-2", JobType.ENHANCE_CHAPTERS, priority=9)

    claimed = queue.claim_next([JobType.ENHANCE_CHAPTERS])

    assert claimed is not None and claimed.id == enhance
    assert queue.pending_count([JobType.ENHANCE_CHAPTERS]) == 0
    assert queue.pending_count() == 1


def test_complete_stores_output_payload(database: Database) -> None:
    """Completion should persist the output and completion timestamp."""

    queue = JobQueue(database)
    job_id = queue.enqueue("doc-1", JobType.DETECT_CHAPTERS, {"text_hash": "abc"})
    queue.claim_next()

    queue.complete(job_id, {"method": "pattern", "cache_hit": False})
    job = queue.get(job_id)

    assert job is not None
    assert job.status is JobStatus.COMPLETED
    assert job.payload == {"text_hash": "abc"}
    assert job.output == {"method": "pattern", "cache_hit": False}
    assert job.completed_at is not None


def test_fail_retries_until_the_cap_then_fails(database: Database) -> None:
    """Retryable failures should return to pending until `max_retries` attempts were used."""

    queue = JobQueue(database)
    job_id = queue.enqueue("doc-1", JobType.EXTRACT_TEXT, max_retries=3)

    statuses = []
    for _ in range(3):
        assert queue.claim_next() is not None
        statuses.append(queue.fail(job_id, "database is locked"))

    job = queue.get(job_id)
    assert statuses == [JobStatus.PENDING, JobStatus.PENDING, JobStatus.FAILED]
    assert job is not None
    assert job.retry_count == 3
    assert job.error_message == "database is locked"
    assert queue.claim_next() is None


def test_fail_non_retryable_is_terminal_immediately(database: Database) -> None:
    """Non-retryable failures should fail the job on the first attempt."""

    queue = JobQueue(database)
    job_id = queue.enqueue("doc-1", JobType.EXTRACT_TEXT, max_retries=3)
    queue.claim_next()

    assert queue.fail(job_id, "not a PDF", retryable=False) is JobStatus.FAILED

    assert queue.retry_failed(job_id) is True
    job = queue.get(job_id)
    assert job is not None
    assert job.status is JobStatus.PENDING
    assert job.retry_count == 0


def test_reclaim_expired_retries_stale_claims_until_the_cap(
    database: Database, fake_clock
) -> None:
    """Claims older than the lease count as failed attempts; fresh claims stay running."""

    queue = JobQueue(database, clock=fake_clock)
    stale = queue.enqueue("doc-1", JobType.EXTRACT_TEXT, max_retries=2)
    queue.claim_next(worker_id="w-1")
    fake_clock.advance(120)
    fresh = queue.enqueue("doc-2", JobType.EXTRACT_TEXT)
    queue.claim_next(worker_id="w-2")

    first = queue.reclaim_expired(60)

    assert [(job.id, job.status, job.retry_count) for job in first] == [
        (stale, JobStatus.PENDING, 1)
    ]
    assert first[0].error_message == "Job lease expired after 60 seconds"
    assert first[0].worker_id is None
    running = queue.get(fresh)
    assert running is not None and running.status is JobStatus.RUNNING

    reclaimed = queue.claim_next(worker_id="w-3")
    assert reclaimed is not None and reclaimed.id == stale
    fake_clock.advance(120)
    second = {job.id: (job.status, job.retry_count) for job in queue.reclaim_expired(60)}

    assert second == {stale: (JobStatus.FAILED, 2), fresh: (JobStatus.PENDING, 1)}
    failed = queue.get(stale)
    assert failed is not None and failed.completed_at is not None
    assert queue.reclaim_expired(60) == []


def test_fail_unknown_job_raises_key_error(database: Database) -> None:
    """Failing a job that does not exist is a programming error."""

    with pytest.raises(KeyError):
        JobQueue(database).fail("missing", "boom")


def test_concurrent_claims_never_hand_out_a_job_twice(database: Database) -> None:
    """Parallel claimers should partition the queue without duplicates."""

    queue = JobQueue(database)
    expected = {queue.enqueue(f"doc-{index}", JobType.EXTRACT_TEXT) for index in range(40)}
    claimed: list[str] = []
    lock = threading.Lock()

    def _drain(worker_id: str) -> None:
        """Claim until the queue is empty."""

        while True:
            job = queue.claim_next(worker_id=worker_id)
            if job is None:
                return
            with lock:
                claimed.append(job.id)

    threads = [threading.Thread(target=_drain, args=(f"w-{index}",)) for index in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(claimed) == len(expected)
    assert set(claimed) == expected


def test_clear_document_removes_only_that_documents_jobs(database: Database) -> None:
    """Clearing should delete every job of one document."""

    queue = JobQueue(database)
    queue.enqueue("doc-1", JobType.EXTRACT_TEXT)
    queue.enqueue("doc-1", JobType.DETECT_CHAPTERS)
    kept = queue.enqueue("doc-2", JobType.EXTRACT_TEXT)

    assert queue.clear_document("doc-1") == 2
    assert [job.id for job in queue.jobs_for_document("doc-2")] == [kept]
    assert queue.jobs_for_document("doc-1") == []


def test_storage_failures_surface_as_queue_unavailable(database: Database) -> None:
    """SQLite errors other than integrity errors should map to `QueueUnavailableError`."""

    queue = JobQueue(database)
    with database.transaction() as conn:
        conn.execute("DROP TABLE jobs")

    with pytest.raises(QueueUnavailableError) as exc_info:
        queue.enqueue("doc-1", JobType.EXTRACT_TEXT)

    assert exc_info.value.stage == "job_queue"
    assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
