"""Unit tests for cache keys and the SQLite-backed content cache."""

from __future__ import annotations

from pathlib import Path

from chapterflow.cache.content_cache import ContentCache
from chapterflow.cache.keys import (
    CacheKey,
    ai_enhancement_key,
    chapter_detection_key,
    full_workflow_key,
    make_cache_key,
    text_extraction_key,
)
from chapterflow.models.datatypes import CacheType
from chapterflow.storage.db import Database


def test_cache_keys_are_deterministic_and_scoped_by_type() -> None:
    """Identical identity fields should yield identical keys within one namespace."""

    first = text_extraction_key("reader-1", "atlas.pdf", 2048)
    second = text_extraction_key("reader-1", "atlas.pdf", 2048)
    resized = text_extraction_key("reader-1", "atlas.pdf", 4096)

    assert first == second
    assert first.key.startswith("text_extraction:v2:")
    assert first.key.endswith(first.input_hash)
    assert resized.key != first.key


def test_cache_keys_cover_every_identity_field() -> None:
    """Changing any identity field should change the key."""

    base = chapter_detection_key("hash-a", "Atlas", "multi-strategy-v3")

    assert chapter_detection_key("hash-b", "Atlas", "multi-strategy-v3") != base
    assert chapter_detection_key("hash-a", "Atlas II", "multi-strategy-v3") != base
    assert chapter_detection_key("hash-a", "Atlas", "multi-strategy-v4") != base
    assert ai_enhancement_key("c", "gpt-4o-mini", "Atlas") != ai_enhancement_key(
        "c", "gpt-4o", "Atlas"
    )
    assert full_workflow_key("o", "f.pdf", 1, "T", "v3").cache_type is CacheType.FULL_WORKFLOW


def test_make_cache_key_normalizes_paths_and_mapping_order() -> None:
    """Paths and mapping key order should not change the hash."""

    left = make_cache_key(CacheType.FULL_WORKFLOW, source=Path("a/b.pdf"), extra={"x": 1, "y": 2})
    right = make_cache_key(CacheType.FULL_WORKFLOW, extra={"y": 2, "x": 1}, source="a/b.pdf")

    assert left == right


def test_cache_get_counts_hits_and_put_overwrites(database: Database, fake_clock) -> None:
    """Reads should count hits; a second write replaces the payload and resets hits."""

    cache = ContentCache(database, clock=fake_clock)
    key = text_extraction_key("reader-1", "atlas.pdf", 2048)

    assert cache.get(key) is None
    assert cache.put(key, {"text": "first"}, file_size=2048) is True
    assert cache.get(key) == {"text": "first"}
    assert cache.get(key) == {"text": "first"}
    assert cache.hit_count(key) == 2

    cache.put(key, {"text": "second"})

    assert cache.hit_count(key) == 0
    assert cache.get(key) == {"text": "second"}


def test_cache_get_treats_expired_entries_as_misses(database: Database, fake_clock) -> None:
    """Entries older than their type's TTL should not be returned."""

    cache = ContentCache(database, clock=fake_clock)
    detection = chapter_detection_key("hash", "Atlas", "multi-strategy-v3")
    extraction = text_extraction_key("reader-1", "atlas.pdf", 10)
    cache.put(detection, {"method": "pattern"})
    cache.put(extraction, {"text": "body"})

    fake_clock.advance(8 * 24 * 3600)

    assert cache.get(detection) is None
    assert cache.get(extraction) == {"text": "body"}


def test_cache_put_rejects_payloads_over_the_size_ceiling(database: Database) -> None:
    """Oversized payloads should be skipped rather than stored."""

    cache = ContentCache(database, max_bytes={CacheType.AI_ENHANCEMENT: 32})
    key = ai_enhancement_key("hash", "gpt-4o-mini", "Atlas")

    assert cache.put(key, {"summary": "x" * 100}) is False
    assert cache.get(key) is None
    assert cache.put(key, {"summary": "short"}) is True


def test_cache_evict_keeps_recent_or_popular_entries(database: Database, fake_clock) -> None:
    """Eviction should only remove old entries with fewer hits than the threshold."""

    cache = ContentCache(database, ttl_days={}, clock=fake_clock)
    cold = text_extraction_key("reader-1", "cold.pdf", 1)
    popular = text_extraction_key("reader-1", "popular.pdf", 1)
    cache.put(cold, {"text": "cold"})
    cache.put(popular, {"text": "popular"})
    cache.get(popular)
    cache.get(popular)

    fake_clock.advance(31 * 24 * 3600)
    fresh = text_extraction_key("reader-1", "fresh.pdf", 1)
    cache.put(fresh, {"text": "fresh"})

    assert cache.evict(max_age_days=30, min_hits=2) == 1
    assert cache.hit_count(cold) is None
    assert cache.hit_count(popular) == 2
    assert cache.hit_count(fresh) == 0


def test_cache_collapse_duplicates_keeps_most_hit_entry(database: Database) -> None:
    """Entries sharing a type and input hash should collapse to the most-read one."""

    cache = ContentCache(database)
    older = CacheKey(CacheType.CHAPTER_DETECTION, "chapter_detection:v1:abc", "abc")
    newer = CacheKey(CacheType.CHAPTER_DETECTION, "chapter_detection:v2:abc", "abc")
    other = CacheKey(CacheType.CHAPTER_DETECTION, "chapter_detection:v2:def", "def")
    cache.put(older, {"method": "pattern"})
    cache.put(newer, {"method": "semantic"})
    cache.put(other, {"method": "adaptive"})
    cache.get(newer)

    report = cache.maintain(max_age_days=30, min_hits=2)

    assert report.evicted == 0
    assert report.collapsed == 1
    assert cache.hit_count(older) is None
    assert cache.hit_count(newer) == 1
    assert cache.hit_count(other) == 0


def test_cache_stats_group_entries_and_hits_by_type(database: Database) -> None:
    """Stats should report entry and hit totals per cache type."""

    cache = ContentCache(database)
    key = ai_enhancement_key("hash", "gpt-4o-mini", "Atlas")
    cache.put(key, {"summary": "s"})
    cache.put(text_extraction_key("reader-1", "atlas.pdf", 1), {"text": "t"})
    cache.get(key)

    stats = cache.stats()

    assert stats.total_entries == 2
    assert stats.entries[CacheType.AI_ENHANCEMENT] == 1
    assert stats.hits[CacheType.AI_ENHANCEMENT] == 1
    assert stats.hits[CacheType.TEXT_EXTRACTION] == 0
