"""Content-addressable caching for stage outputs."""

from .content_cache import CacheMaintenanceReport, CacheStats, ContentCache
from .keys import (
    CacheKey,
    ai_enhancement_key,
    chapter_detection_key,
    full_workflow_key,
    make_cache_key,
    text_extraction_key,
)

__all__ = [
    "CacheKey",
    "CacheMaintenanceReport",
    "CacheStats",
    "ContentCache",
    "ai_enhancement_key",
    "chapter_detection_key",
    "full_workflow_key",
    "make_cache_key",
    "text_extraction_key",
]
