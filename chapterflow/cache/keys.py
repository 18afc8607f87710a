"""Deterministic cache keys for every cached stage output.

Responsibilities:
- Hash normalized canonical identity fields into stable cache keys.
- Offer one builder per cache type so each stage keys its output the same way.

Every builder funnels through `make_cache_key`, so a key always covers exactly
the fields passed to it and nothing else.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from hashlib import sha256
import json
from pathlib import Path
from typing import Any

from ..models.datatypes import CacheType

CACHE_KEY_VERSION = "v2"


def _normalize_identity_value(value: Any) -> Any:
    """Normalize identity payload values for stable cache key hashing."""

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, list | tuple):
        return [_normalize_identity_value(item) for item in value]
    if isinstance(value, dict):
        return {
            str(key): _normalize_identity_value(value[key])
            for key in sorted(value.keys(), key=str)
        }
    return value


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Typed cache key.

    Attributes:
        cache_type: Cache namespace.
        key: Versioned lookup key, unique within the namespace.
        input_hash: Hash of the identity fields alone, shared by entries built
            from the same inputs under different key versions.
    """

    cache_type: CacheType
    key: str
    input_hash: str


def make_cache_key(cache_type: CacheType, **fields: Any) -> CacheKey:
    """Build a cache key from canonical JSON of the normalized identity fields."""

    canonical_identity = json.dumps(
        _normalize_identity_value(fields),
        sort_keys=True,
        ensure_ascii=True,
        separators=(",", ":"),
    )
    input_hash = sha256(canonical_identity.encode("utf-8")).hexdigest()
    return CacheKey(
        cache_type=cache_type,
        key=f"{cache_type.value}:{CACHE_KEY_VERSION}:{input_hash}",
        input_hash=input_hash,
    )


def text_extraction_key(owner_id: str, file_name: str, file_size: int) -> CacheKey:
    """Key extracted text by file identity and size."""

    return make_cache_key(
        CacheType.TEXT_EXTRACTION,
        owner_id=owner_id,
        file_name=file_name,
        file_size=int(file_size),
    )


def chapter_detection_key(text_hash: str, title: str, algorithm: str) -> CacheKey:
    """Key detected chapters by full-text hash, title, and detector version."""

    return make_cache_key(
        CacheType.CHAPTER_DETECTION,
        text_hash=text_hash,
        title=title,
        algorithm=algorithm,
    )


def ai_enhancement_key(content_hash: str, model: str, title: str) -> CacheKey:
    """Key a chapter summary by chapter content hash, model, and book title."""

    return make_cache_key(
        CacheType.AI_ENHANCEMENT,
        content_hash=content_hash,
        model=model,
        title=title,
    )


def full_workflow_key(
    owner_id: str, file_name: str, file_size: int, title: str, algorithm: str
) -> CacheKey:
    """Key a complete workflow result by file identity, size, title, and detector version."""

    return make_cache_key(
        CacheType.FULL_WORKFLOW,
        owner_id=owner_id,
        file_name=file_name,
        file_size=int(file_size),
        title=title,
        algorithm=algorithm,
    )
