"""SQLite connection and schema management.

Responsibilities:
- Open connections configured for concurrent worker threads.
- Create the documents, chapters, jobs, cache, and progress tables idempotently.
- Serialize access to one shared connection through a re-entrant lock.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
import sqlite3
import threading
from typing import Any

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id                              TEXT PRIMARY KEY,
    owner_id                        TEXT NOT NULL,
    title                           TEXT NOT NULL,
    author                          TEXT,
    genre                           TEXT,
    file_name                       TEXT NOT NULL,
    file_size                       INTEGER NOT NULL DEFAULT 0,
    status                          TEXT NOT NULL DEFAULT 'pending',
    page_count                      INTEGER,
    total_word_count                INTEGER NOT NULL DEFAULT 0,
    reading_time_minutes            INTEGER NOT NULL DEFAULT 0,
    enhancement_status              TEXT NOT NULL DEFAULT 'pending',
    processing_started_at           TEXT,
    text_extraction_completed_at    TEXT,
    chapter_detection_completed_at  TEXT,
    processing_completed_at         TEXT,
    created_at                      TEXT NOT NULL,
    updated_at                      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chapters (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id           TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chapter_number        INTEGER NOT NULL,
    part_number           INTEGER NOT NULL DEFAULT 1,
    title                 TEXT NOT NULL,
    content               TEXT NOT NULL,
    summary               TEXT,
    summary_model         TEXT,
    word_count            INTEGER NOT NULL,
    reading_time_minutes  INTEGER NOT NULL,
    highlight_quotes      TEXT NOT NULL DEFAULT '[]',
    enhancement_status    TEXT NOT NULL DEFAULT 'pending',
    metadata              TEXT NOT NULL DEFAULT '{}',
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL,
    UNIQUE (document_id, chapter_number, part_number)
);

CREATE INDEX IF NOT EXISTS idx_chapters_document
    ON chapters(document_id, chapter_number, part_number);

CREATE TABLE IF NOT EXISTS jobs (
    id             TEXT PRIMARY KEY,
    document_id    TEXT NOT NULL,
    job_type       TEXT NOT NULL,
    status         TEXT NOT NULL DEFAULT 'pending',
    priority       INTEGER NOT NULL DEFAULT 5,
    payload        TEXT NOT NULL DEFAULT '{}',
    output         TEXT,
    retry_count    INTEGER NOT NULL DEFAULT 0,
    max_retries    INTEGER NOT NULL DEFAULT 3,
    depends_on     TEXT REFERENCES jobs(id) ON DELETE SET NULL,
    error_message  TEXT,
    worker_id      TEXT,
    created_at     TEXT NOT NULL,
    started_at     TEXT,
    completed_at   TEXT,
    updated_at     TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobs_claim ON jobs(status, priority, created_at);
CREATE INDEX IF NOT EXISTS idx_jobs_document ON jobs(document_id);

CREATE TABLE IF NOT EXISTS cache_entries (
    id                       INTEGER PRIMARY KEY AUTOINCREMENT,
    cache_key                TEXT NOT NULL,
    cache_type               TEXT NOT NULL,
    input_hash               TEXT NOT NULL,
    output_data              TEXT NOT NULL,
    file_size                INTEGER NOT NULL DEFAULT 0,
    processing_time_seconds  REAL NOT NULL DEFAULT 0,
    hit_count                INTEGER NOT NULL DEFAULT 0,
    created_at               TEXT NOT NULL,
    last_accessed_at         TEXT NOT NULL,
    UNIQUE (cache_type, cache_key)
);

CREATE INDEX IF NOT EXISTS idx_cache_input_hash ON cache_entries(cache_type, input_hash);
CREATE INDEX IF NOT EXISTS idx_cache_created ON cache_entries(created_at);

CREATE TABLE IF NOT EXISTS progress_records (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id       TEXT NOT NULL,
    stage             TEXT NOT NULL,
    progress          INTEGER NOT NULL,
    overall_progress  INTEGER NOT NULL,
    message           TEXT NOT NULL DEFAULT '',
    is_error          INTEGER NOT NULL DEFAULT 0,
    created_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_progress_document ON progress_records(document_id, id);
"""


def connect(path: Path | str) -> sqlite3.Connection:
    """Open a SQLite connection shared safely across worker threads.

    Args:
        path: Database file path, or `":memory:"` for an ephemeral database.
    """

    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False, timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA busy_timeout=30000")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create all pipeline tables and indexes when missing."""

    conn.executescript(_SCHEMA)
    conn.commit()


class Database:
    """One SQLite connection guarded by a re-entrant lock.

    Every read and write goes through `transaction`, `fetch_one`, or `fetch_all`
    so statements from different worker threads never interleave on the shared
    connection.
    """

    def __init__(self, path: Path | str = ":memory:") -> None:
        """Open the connection and ensure the schema exists."""

        self.path = str(path)
        self._conn = connect(self.path)
        self._lock = threading.RLock()
        init_schema(self._conn)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection inside a commit-or-rollback transaction."""

        with self._lock:
            with self._conn:
                yield self._conn

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        """Run a read query and return its first row."""

        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchone()

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a read query and return every row."""

        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchall()

    def close(self) -> None:
        """Close the underlying connection."""

        with self._lock:
            self._conn.close()
