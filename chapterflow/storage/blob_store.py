"""Source blob storage collaborator.

Responsibilities:
- Define the minimal `download(owner_id, name)` contract the extraction stage needs.
- Provide a filesystem-backed store keyed by sanitized names under per-owner folders.
"""

from __future__ import annotations

from pathlib import Path
import re
from typing import Protocol

from ..errors import BlobNotFoundError

_UNSAFE_NAME_CHARS = re.compile(r"[^\w\s.-]")
_WHITESPACE_RUN = re.compile(r"\s+")
_UNDERSCORE_RUN = re.compile(r"_{2,}")


def sanitize_blob_name(name: str) -> str:
    """Strip unsafe characters, underscore whitespace, and collapse underscore runs."""

    stripped = _UNSAFE_NAME_CHARS.sub("", name.strip())
    underscored = _WHITESPACE_RUN.sub("_", stripped)
    collapsed = _UNDERSCORE_RUN.sub("_", underscored)
    return collapsed or "unnamed"


class BlobStore(Protocol):
    """Protocol for source-file storage."""

    def download(self, owner_id: str, name: str) -> bytes:
        """Return the stored bytes for an owner-scoped blob name."""


class FilesystemBlobStore:
    """Store blobs as files under `<root>/<owner>/<sanitized name>`."""

    def __init__(self, root: Path) -> None:
        """Initialize the store with its root directory."""

        self.root = root

    def path_for(self, owner_id: str, name: str) -> Path:
        """Return the filesystem path used for an owner-scoped blob."""

        return self.root / sanitize_blob_name(owner_id) / sanitize_blob_name(name)

    def upload(self, owner_id: str, name: str, data: bytes) -> Path:
        """Write blob bytes and return the final path."""

        path = self.path_for(owner_id, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def download(self, owner_id: str, name: str) -> bytes:
        """Read blob bytes, raising `BlobNotFoundError` when absent."""

        path = self.path_for(owner_id, name)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise BlobNotFoundError(
                stage="extract_text",
                detail=f"Source file `{name}` was not found for owner `{owner_id}`.",
                hint="Upload the PDF again or check the blob storage root.",
            ) from exc
