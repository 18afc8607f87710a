"""Input adapters for source documents."""

from .pdf_text_extractor import PdfExtractionError, PdfTextExtractor, TextExtractor

__all__ = ["PdfExtractionError", "PdfTextExtractor", "TextExtractor"]
