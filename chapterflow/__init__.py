"""Top-level package for chapterflow.

This package turns uploaded text-based PDF books into structured chapters through
a queue-driven pipeline: text extraction, chapter boundary detection, chapter
storage, and asynchronous AI summaries. The composition root is
`PipelineContext`.
"""

from .pipeline.context import PipelineContext

__all__ = ["PipelineContext", "__version__"]

__version__ = "0.3.0"
