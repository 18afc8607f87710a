"""PDF-to-text capability used by the extraction stage.

Responsibilities:
- Turn raw PDF bytes into plain text with a reported page count.
- Prefer `pdftotext` and fall back to page-by-page `pypdf` extraction when the
  binary is unavailable.
"""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
import subprocess
import tempfile
from typing import Protocol

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ..models.datatypes import ExtractedText
from ..runtime_tools import resolve_executable


class PdfExtractionError(RuntimeError):
    """Raised when text extraction from PDF cannot be completed."""


class TextExtractor(Protocol):
    """Protocol for PDF-to-text implementations."""

    def extract(self, data: bytes) -> ExtractedText:
        """Return the text and page count of a PDF payload."""


class PdfTextExtractor:
    """Extractor for text-based PDFs using `pdftotext`, with `pypdf` as fallback."""

    def extract(self, data: bytes) -> ExtractedText:
        """Extract all text from PDF bytes; pages are separated by form feeds."""

        if not data:
            raise PdfExtractionError("Input PDF is empty.")
        try:
            output = self._run_pdftotext(data)
        except PdfExtractionError as exc:
            if not self._is_missing_binary_error(exc):
                raise
            return self._extract_with_pypdf(data)
        page_count = output.count("\f")
        return ExtractedText(
            text=output,
            page_count=page_count if page_count > 0 else None,
            method="pdftotext",
        )

    def _run_pdftotext(self, data: bytes) -> str:
        with tempfile.TemporaryDirectory(prefix="chapterflow-") as workdir:
            pdf_path = Path(workdir) / "source.pdf"
            pdf_path.write_bytes(data)
            command = [resolve_executable("pdftotext"), "-enc", "UTF-8", str(pdf_path), "-"]
            try:
                result = subprocess.run(
                    command,
                    check=False,
                    capture_output=True,
                    text=True,
                )
            except FileNotFoundError as exc:
                raise PdfExtractionError(
                    "The `pdftotext` command is required but was not found."
                ) from exc

        if result.returncode != 0:
            details = result.stderr.strip() or "unknown error"
            raise PdfExtractionError(f"pdftotext failed: {details}")
        return result.stdout

    def _extract_with_pypdf(self, data: bytes) -> ExtractedText:
        """Extract text page by page with `pypdf`, joining pages with form feeds."""

        try:
            reader = PdfReader(BytesIO(data))
            pages = [(page.extract_text() or "").strip() for page in reader.pages]
        except (PyPdfError, ValueError, KeyError) as exc:
            raise PdfExtractionError(f"PDF could not be parsed: {exc}") from exc
        return ExtractedText(text="\f".join(pages), page_count=len(pages), method="pypdf")

    def _is_missing_binary_error(self, error: PdfExtractionError) -> bool:
        """Return whether extraction failed due to an unavailable external PDF binary."""

        detail = str(error)
        return detail.endswith("command is required but was not found.")
