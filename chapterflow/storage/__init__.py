"""Persistence components for chapterflow.

This package contains the SQLite database wrapper, the document/chapter/progress
repository, and the source blob store collaborator.
"""

from .blob_store import BlobStore, FilesystemBlobStore, sanitize_blob_name
from .db import Database
from .repository import DocumentRepository

__all__ = [
    "BlobStore",
    "Database",
    "DocumentRepository",
    "FilesystemBlobStore",
    "sanitize_blob_name",
]
