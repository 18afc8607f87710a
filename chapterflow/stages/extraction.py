"""Text extraction stage.

Responsibilities:
- Fetch source bytes from the blob store and extract raw PDF text.
- Clean extraction artifacts and compute text metadata.
- Reuse cached extractions keyed by file identity and size.
"""

from __future__ import annotations

import time
from typing import Any

from ..cache.content_cache import ContentCache
from ..cache.keys import text_extraction_key
from ..errors import DocumentInputError
from ..io.pdf_text_extractor import PdfExtractionError, TextExtractor
from ..models.datatypes import Document, Job
from ..models.stages import JobType, Stage
from ..storage.blob_store import BlobStore, sanitize_blob_name
from ..storage.repository import DocumentRepository
from ..telemetry.logger import PipelineLogger
from ..telemetry.progress import ProgressSink
from ..text.cleaners import TextCleaner
from ..text.metrics import content_hash, count_words, estimate_pages
from .base import NextJob, StageResult

STAGE_NAME = "extract_text"


def load_document(repository: DocumentRepository, document_id: str, stage: str) -> Document:
    """Return a document or raise a terminal input error when it is missing."""

    document = repository.get_document(document_id)
    if document is None:
        raise DocumentInputError(
            stage=stage,
            detail=f"Document `{document_id}` does not exist.",
            hint="Register the document before submitting it for processing.",
        )
    return document


def build_text_metadata(
    text: str,
    *,
    page_count: int | None,
    method: str,
    processing_time: float,
    file_size: int,
) -> dict[str, Any]:
    """Return extraction metadata for cleaned text."""

    words = count_words(text)
    return {
        "total_pages": page_count if page_count else estimate_pages(words),
        "total_characters": len(text),
        "total_words": words,
        "extraction_method": method,
        "processing_time": round(processing_time, 3),
        "file_size": int(file_size),
        "text_hash": content_hash(text),
    }


class TextExtractionStage:
    """Produce cleaned document text for chapter detection."""

    job_type = JobType.EXTRACT_TEXT

    def __init__(
        self,
        *,
        repository: DocumentRepository,
        blob_store: BlobStore,
        extractor: TextExtractor,
        progress: ProgressSink,
        cache: ContentCache | None = None,
        cleaner: TextCleaner | None = None,
        logger: PipelineLogger | None = None,
    ) -> None:
        self.repository = repository
        self.blob_store = blob_store
        self.extractor = extractor
        self.progress = progress
        self.cache = cache
        self.cleaner = cleaner or TextCleaner()
        self.logger = logger or PipelineLogger()

    def run(self, job: Job) -> StageResult:
        """Extract text for the job's document and request chapter detection."""

        document = load_document(self.repository, job.document_id, STAGE_NAME)
        self.repository.mark_processing(document.id)
        self.progress.report(document.id, Stage.EXTRACTING_TEXT, 0, "Starting text extraction")

        key = text_extraction_key(
            document.owner_id, sanitize_blob_name(document.file_name), document.file_size
        )
        cached = self.cache.get(key) if self.cache is not None else None
        if cached is not None:
            self.logger.log_event(STAGE_NAME, "cache_hit", document_id=document.id)
            text = str(cached["text"])
            metadata = dict(cached["metadata"])
        else:
            text, metadata = self._extract(document)
            if self.cache is not None:
                self.cache.put(
                    key,
                    {"text": text, "metadata": metadata},
                    file_size=document.file_size,
                    processing_time_seconds=float(metadata["processing_time"]),
                )

        self.repository.record_extraction(document.id, int(metadata["total_pages"]))
        self.progress.report(
            document.id,
            Stage.EXTRACTING_TEXT,
            100,
            f"Extracted {metadata['total_words']} words from {metadata['total_pages']} pages",
        )
        return StageResult(
            output={"cache_hit": cached is not None, **metadata},
            next_jobs=(
                NextJob(
                    JobType.DETECT_CHAPTERS,
                    {"text": text, "text_hash": metadata["text_hash"]},
                ),
            ),
        )

    def _extract(self, document: Document) -> tuple[str, dict[str, Any]]:
        """Download, extract, and clean the document's source text."""

        started = time.monotonic()
        data = self.blob_store.download(document.owner_id, document.file_name)
        self.progress.report(
            document.id,
            Stage.EXTRACTING_TEXT,
            30,
            f"Downloaded {len(data)} bytes, extracting text",
        )
        try:
            extracted = self.extractor.extract(data)
        except PdfExtractionError as exc:
            raise DocumentInputError(
                stage=STAGE_NAME,
                detail=f"PDF text extraction failed: {exc}",
                hint="Upload a text-based PDF; scanned image-only PDFs are not supported.",
            ) from exc

        self.progress.report(document.id, Stage.EXTRACTING_TEXT, 70, "Cleaning extracted text")
        text = self.cleaner.clean(extracted.text)
        if not text:
            raise DocumentInputError(
                stage=STAGE_NAME,
                detail="No extractable text was found in the PDF.",
                hint="Upload a text-based PDF; scanned image-only PDFs are not supported.",
            )
        metadata = build_text_metadata(
            text,
            page_count=extracted.page_count,
            method=extracted.method,
            processing_time=time.monotonic() - started,
            file_size=document.file_size,
        )
        return text, metadata
