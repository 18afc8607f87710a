"""Unit tests for chapter validation, persistence, and enhancement scheduling."""

from __future__ import annotations

from collections.abc import Sequence
import sqlite3

import pytest

from chapterflow.errors import DocumentInputError
from chapterflow.models.datatypes import (
    ChapterDraft,
    DetectedChapter,
    DetectionResult,
    DocumentStatus,
    EnhancementStatus,
    Job,
    JobStatus,
)
from chapterflow.models.stages import JobType, Stage
from chapterflow.stages.chapter_store import (
    ChapterStoreStage,
    plan_enhancement_batches,
    validate_chapter,
)
from chapterflow.storage.db import Database
from chapterflow.storage.repository import DocumentRepository
from chapterflow.telemetry.progress import BestEffortProgressSink

BODY = "The traveler studied old maps and wrote careful notes about every road. " * 9


class _FlakyRepository(DocumentRepository):
    """Repository whose batch inserts always fail and one row insert fails too."""

    def __init__(self, database: Database, clock, failing_number: int) -> None:
        """Initialize with the chapter number whose single-row insert fails."""

        super().__init__(database, clock=clock)
        self.failing_number = failing_number

    def insert_chapters(self, drafts: Sequence[ChapterDraft]) -> int:
        """Fail every batch insert."""

        raise sqlite3.IntegrityError("UNIQUE constraint failed: chapters")

    def insert_chapter(self, draft: ChapterDraft) -> None:
        """Fail the configured chapter; insert others normally."""

        if draft.chapter_number == self.failing_number:
            raise sqlite3.IntegrityError("CHECK constraint failed: chapters")
        super().insert_chapter(draft)


def _detected(title: str, content: str = BODY, **overrides: object) -> DetectedChapter:
    """Build a detected chapter with valid defaults."""

    fields: dict[str, object] = {
        "title": title,
        "content": content,
        "word_count": len(content.split()),
        "start_index": 0,
        "end_index": len(content),
        "detection_method": "pattern",
        "confidence": 0.95,
        "boundary_strength": 0.5,
    }
    fields.update(overrides)
    return DetectedChapter(**fields)  # type: ignore[arg-type]


def _store_job(document_id: str, titles: Sequence[str]) -> Job:
    """Build a claimed `store_chapters` job carrying a pattern detection result."""

    detection = DetectionResult(
        method="pattern",
        confidence=0.95,
        chapters=tuple(_detected(title, f"{title}\n{BODY}") for title in titles),
        marker_based=True,
    )
    return Job(
        id="job-store",
        document_id=document_id,
        job_type=JobType.STORE_CHAPTERS,
        status=JobStatus.RUNNING,
        priority=5,
        payload={"detection": detection.to_payload()},
        retry_count=0,
        max_retries=3,
    )


def test_validate_chapter_normalizes_title_and_clamps_metadata() -> None:
    """Titles collapse whitespace and truncate; scores clamp; offsets stay ordered."""

    draft = validate_chapter(
        _detected(
            "Chapter 1:   " + "Long " * 60,
            confidence=1.7,
            boundary_strength=-0.2,
            start_index=-5,
            end_index=-9,
        ),
        document_id="doc-1",
        chapter_number=1,
    )

    assert draft is not None
    assert len(draft.title) <= 200
    assert draft.title.endswith("...")
    assert "  " not in draft.title
    assert draft.word_count == 108
    assert draft.reading_time_minutes == 1
    assert draft.metadata["confidence"] == 1.0
    assert draft.metadata["boundary_strength"] == 0.0
    assert (draft.metadata["start_index"], draft.metadata["end_index"]) == (0, 0)
    assert draft.enhancement_status is EnhancementStatus.PENDING


@pytest.mark.parametrize(
    ("title", "content"),
    [
        ("   ", BODY),
        ("Chapter 1", "Too short to be a chapter."),
        ("Chapter 1", "longword " * 20),
    ],
)
def test_validate_chapter_rejects_unusable_chapters(title: str, content: str) -> None:
    """Blank titles, short bodies, and bodies under fifty words are rejected."""

    draft = validate_chapter(_detected(title, content), document_id="doc-1", chapter_number=1)

    assert draft is None


def test_plan_enhancement_batches_lowers_urgency_per_batch() -> None:
    """Later batches get larger priority numbers, capped at the lowest priority."""

    small = plan_enhancement_batches([1, 2, 3], 2)
    large = plan_enhancement_batches(list(range(1, 41)), 5)

    assert [job.payload["chapter_numbers"] for job in small] == [[1, 2], [3]]
    assert [job.priority for job in small] == [5, 6]
    assert {job.job_type for job in small} == {JobType.ENHANCE_CHAPTERS}
    assert small[1].payload["batch_index"] == 1
    assert small[1].payload["batch_count"] == 2
    assert [job.priority for job in large] == [5, 6, 7, 8, 9, 10, 10, 10]


def test_chapter_store_persists_chapters_and_schedules_enhancement(
    database: Database, fake_clock
) -> None:
    """Valid chapters are stored, totals written, and enhancement batches requested."""

    repository = DocumentRepository(database, clock=fake_clock)
    document = repository.create_document(
        owner_id="reader-1", title="Atlas", file_name="atlas.pdf", file_size=10
    )
    stage = ChapterStoreStage(
        repository=repository,
        progress=BestEffortProgressSink(repository),
        enhancement_batch_size=2,
    )

    result = stage.run(_store_job(document.id, ["Origins", "Departure", "Harbor"]))

    chapters = repository.list_chapters(document.id)
    stored = repository.get_document(document.id)
    assert [chapter.chapter_number for chapter in chapters] == [1, 2, 3]
    assert [chapter.title for chapter in chapters] == ["Origins", "Departure", "Harbor"]
    assert {chapter.word_count for chapter in chapters} == {109}
    assert stored is not None
    assert stored.status is DocumentStatus.COMPLETED
    assert stored.total_word_count == 327
    assert stored.reading_time_minutes == 3
    assert result.output["chapter_count"] == 3
    assert result.output["failed_rows"] == 0
    assert [job.payload["chapter_numbers"] for job in result.next_jobs] == [[1, 2], [3]]
    latest = repository.latest_progress(document.id)
    assert latest is not None
    assert latest.stage is Stage.ENHANCING_CHAPTERS


def test_chapter_store_falls_back_to_single_rows_and_renumbers(
    database: Database, fake_clock
) -> None:
    """A failed batch is retried row by row; survivors are renumbered contiguously."""

    repository = _FlakyRepository(database, fake_clock, failing_number=2)
    document = repository.create_document(
        owner_id="reader-1", title="Atlas", file_name="atlas.pdf", file_size=10
    )
    stage = ChapterStoreStage(repository=repository, progress=BestEffortProgressSink(repository))

    result = stage.run(_store_job(document.id, ["Origins", "Departure", "Harbor"]))

    chapters = repository.list_chapters(document.id)
    assert [(chapter.chapter_number, chapter.title) for chapter in chapters] == [
        (1, "Origins"),
        (2, "Harbor"),
    ]
    assert result.output["failed_rows"] == 1
    assert result.output["chapter_count"] == 2


def test_chapter_store_without_enhancement_completes_immediately(
    database: Database, fake_clock
) -> None:
    """Disabled enhancement skips every chapter and reports completion."""

    repository = DocumentRepository(database, clock=fake_clock)
    document = repository.create_document(
        owner_id="reader-1", title="Atlas", file_name="atlas.pdf", file_size=10
    )
    stage = ChapterStoreStage(
        repository=repository,
        progress=BestEffortProgressSink(repository),
        enhancement_enabled=False,
    )

    result = stage.run(_store_job(document.id, ["Origins", "Departure"]))

    stored = repository.get_document(document.id)
    latest = repository.latest_progress(document.id)
    assert result.next_jobs == ()
    assert stored is not None
    assert stored.enhancement_status is EnhancementStatus.SKIPPED
    assert {
        chapter.enhancement_status for chapter in repository.list_chapters(document.id)
    } == {EnhancementStatus.SKIPPED}
    assert latest is not None
    assert latest.stage is Stage.COMPLETED
    assert latest.message == "Processing completed successfully"


def test_chapter_store_rejects_documents_without_valid_chapters(
    database: Database, fake_clock
) -> None:
    """Nothing valid to store is a terminal input error."""

    repository = DocumentRepository(database, clock=fake_clock)
    document = repository.create_document(
        owner_id="reader-1", title="Atlas", file_name="atlas.pdf", file_size=10
    )
    job = Job(
        id="job-store",
        document_id=document.id,
        job_type=JobType.STORE_CHAPTERS,
        status=JobStatus.RUNNING,
        priority=5,
        payload={
            "detection": DetectionResult(
                method="fallback_chunking",
                confidence=0.3,
                chapters=(_detected("Part 1", "tiny"),),
            ).to_payload()
        },
        retry_count=0,
        max_retries=3,
    )
    stage = ChapterStoreStage(repository=repository, progress=BestEffortProgressSink(repository))

    with pytest.raises(DocumentInputError, match="No valid chapters remained"):
        stage.run(job)

    assert repository.list_chapters(document.id) == []
