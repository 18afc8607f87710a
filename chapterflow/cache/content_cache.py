"""Content-addressable stage-output cache backed by SQLite.

Responsibilities:
- Return cached stage outputs with the hit-count update folded into the read.
- Store outputs with overwrite-on-collision semantics and per-type size ceilings.
- Evict stale, rarely used entries and collapse duplicates sharing an input hash.

Key types:
- `ContentCache`: get/put/evict/collapse contract over the `cache_entries` table.
- `CacheStats`, `CacheMaintenanceReport`: read-only maintenance diagnostics.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import json
from typing import Any

from ..models.datatypes import CacheType
from ..timeutils import to_iso, utc_now
from ..storage.db import Database
from .keys import CacheKey

DEFAULT_TTL_DAYS: dict[CacheType, int] = {
    CacheType.TEXT_EXTRACTION: 30,
    CacheType.CHAPTER_DETECTION: 7,
    CacheType.AI_ENHANCEMENT: 14,
    CacheType.FULL_WORKFLOW: 30,
}

DEFAULT_MAX_BYTES: dict[CacheType, int] = {
    CacheType.TEXT_EXTRACTION: 10 * 1024 * 1024,
    CacheType.CHAPTER_DETECTION: 5 * 1024 * 1024,
    CacheType.AI_ENHANCEMENT: 2 * 1024 * 1024,
    CacheType.FULL_WORKFLOW: 15 * 1024 * 1024,
}


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Entry and hit totals per cache type."""

    entries: dict[CacheType, int] = field(default_factory=dict)
    hits: dict[CacheType, int] = field(default_factory=dict)

    @property
    def total_entries(self) -> int:
        """Return the entry count across all cache types."""

        return sum(self.entries.values())


@dataclass(frozen=True, slots=True)
class CacheMaintenanceReport:
    """Row counts removed by one maintenance pass."""

    evicted: int
    collapsed: int


class ContentCache:
    """Stage-output cache keyed by `CacheKey`."""

    def __init__(
        self,
        database: Database,
        *,
        ttl_days: Mapping[CacheType, int] | None = None,
        max_bytes: Mapping[CacheType, int] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Bind the cache to a database with per-type TTL and size limits."""

        self._db = database
        self._ttl_days = dict(DEFAULT_TTL_DAYS if ttl_days is None else ttl_days)
        self._max_bytes = dict(DEFAULT_MAX_BYTES if max_bytes is None else max_bytes)
        self._clock = clock

    def get(self, key: CacheKey) -> dict[str, Any] | None:
        """Return the cached payload for a key and count the hit, or `None` on miss.

        Entries older than their type's TTL are treated as misses and left for
        `evict` to remove.
        """

        now = self._clock()
        ttl = self._ttl_days.get(key.cache_type)
        oldest_allowed = to_iso(now - timedelta(days=ttl)) if ttl else ""
        with self._db.transaction() as conn:
            rows = conn.execute(
                """
                UPDATE cache_entries
                SET hit_count = hit_count + 1, last_accessed_at = ?
                WHERE cache_type = ? AND cache_key = ? AND created_at >= ?
                RETURNING output_data
                """,
                (to_iso(now), key.cache_type.value, key.key, oldest_allowed),
            ).fetchall()
        if not rows:
            return None
        return json.loads(rows[0]["output_data"])

    def put(
        self,
        key: CacheKey,
        payload: Mapping[str, Any],
        *,
        file_size: int = 0,
        processing_time_seconds: float = 0.0,
    ) -> bool:
        """Store a payload under a key, replacing any previous entry.

        Returns:
            `False` when the serialized payload exceeds the type's size ceiling.
        """

        serialized = json.dumps(payload, sort_keys=True, ensure_ascii=False)
        ceiling = self._max_bytes.get(key.cache_type)
        if ceiling is not None and len(serialized.encode("utf-8")) > ceiling:
            return False

        now = to_iso(self._clock())
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO cache_entries (
                    cache_key, cache_type, input_hash, output_data, file_size,
                    processing_time_seconds, hit_count, created_at, last_accessed_at
                ) VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)
                ON CONFLICT (cache_type, cache_key) DO UPDATE SET
                    input_hash = excluded.input_hash,
                    output_data = excluded.output_data,
                    file_size = excluded.file_size,
                    processing_time_seconds = excluded.processing_time_seconds,
                    hit_count = 0,
                    created_at = excluded.created_at,
                    last_accessed_at = excluded.last_accessed_at
                """,
                (
                    key.key,
                    key.cache_type.value,
                    key.input_hash,
                    serialized,
                    int(file_size),
                    float(processing_time_seconds),
                    now,
                    now,
                ),
            )
        return True

    def hit_count(self, key: CacheKey) -> int | None:
        """Return the stored hit count of a key without counting a hit."""

        row = self._db.fetch_one(
            "SELECT hit_count FROM cache_entries WHERE cache_type = ? AND cache_key = ?",
            (key.cache_type.value, key.key),
        )
        return int(row["hit_count"]) if row is not None else None

    def evict(self, max_age_days: int = 30, min_hits: int = 2) -> int:
        """Delete entries older than `max_age_days` with fewer than `min_hits` hits."""

        cutoff = to_iso(self._clock() - timedelta(days=max_age_days))
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM cache_entries WHERE created_at < ? AND hit_count < ?",
                (cutoff, int(min_hits)),
            )
            return cursor.rowcount

    def collapse_duplicates(self) -> int:
        """Keep only the most-hit entry among entries sharing a type and input hash."""

        with self._db.transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM cache_entries WHERE id IN (
                    SELECT id FROM (
                        SELECT id, ROW_NUMBER() OVER (
                            PARTITION BY cache_type, input_hash
                            ORDER BY hit_count DESC, last_accessed_at DESC, id DESC
                        ) AS position
                        FROM cache_entries
                    ) WHERE position > 1
                )
                """
            )
            return cursor.rowcount

    def maintain(self, max_age_days: int = 30, min_hits: int = 2) -> CacheMaintenanceReport:
        """Run eviction followed by duplicate collapsing."""

        evicted = self.evict(max_age_days=max_age_days, min_hits=min_hits)
        collapsed = self.collapse_duplicates()
        return CacheMaintenanceReport(evicted=evicted, collapsed=collapsed)

    def stats(self) -> CacheStats:
        """Return entry and hit totals grouped by cache type."""

        rows = self._db.fetch_all(
            """
            SELECT cache_type, COUNT(*) AS entry_count, SUM(hit_count) AS hit_total
            FROM cache_entries GROUP BY cache_type
            """
        )
        entries: dict[CacheType, int] = {}
        hits: dict[CacheType, int] = {}
        for row in rows:
            cache_type = CacheType(row["cache_type"])
            entries[cache_type] = int(row["entry_count"])
            hits[cache_type] = int(row["hit_total"] or 0)
        return CacheStats(entries=entries, hits=hits)
