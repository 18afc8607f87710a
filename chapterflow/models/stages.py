"""Closed stage and job-type enumerations with the pipeline transition table.

Responsibilities:
- Name every job type and progress stage exactly once.
- Map each job type to its progress stage and to the job type that follows it.
- Translate per-stage progress into overall workflow progress bands.

Both lookup tables are checked against `JobType` at import time, so adding a
job type without wiring its stage and successor fails immediately.
"""

from __future__ import annotations

from enum import Enum


class JobType(str, Enum):
    """Unit-of-work types claimed from the job queue."""

    EXTRACT_TEXT = "extract_text"
    DETECT_CHAPTERS = "detect_chapters"
    STORE_CHAPTERS = "store_chapters"
    ENHANCE_CHAPTERS = "enhance_chapters"


class Stage(str, Enum):
    """Externally reported workflow stages."""

    UPLOADING = "uploading"
    EXTRACTING_TEXT = "extracting_text"
    DETECTING_CHAPTERS = "detecting_chapters"
    STORING_CHAPTERS = "storing_chapters"
    ENHANCING_CHAPTERS = "enhancing_chapters"
    COMPLETED = "completed"
    FAILED = "failed"


STAGE_FOR_JOB: dict[JobType, Stage] = {
    JobType.EXTRACT_TEXT: Stage.EXTRACTING_TEXT,
    JobType.DETECT_CHAPTERS: Stage.DETECTING_CHAPTERS,
    JobType.STORE_CHAPTERS: Stage.STORING_CHAPTERS,
    JobType.ENHANCE_CHAPTERS: Stage.ENHANCING_CHAPTERS,
}

NEXT_JOB_TYPE: dict[JobType, JobType | None] = {
    JobType.EXTRACT_TEXT: JobType.DETECT_CHAPTERS,
    JobType.DETECT_CHAPTERS: JobType.STORE_CHAPTERS,
    JobType.STORE_CHAPTERS: JobType.ENHANCE_CHAPTERS,
    JobType.ENHANCE_CHAPTERS: None,
}

STAGE_ORDER: tuple[Stage, ...] = (
    Stage.UPLOADING,
    Stage.EXTRACTING_TEXT,
    Stage.DETECTING_CHAPTERS,
    Stage.STORING_CHAPTERS,
    Stage.ENHANCING_CHAPTERS,
)

_OVERALL_PROGRESS_BANDS: dict[Stage, tuple[int, int]] = {
    Stage.UPLOADING: (0, 5),
    Stage.EXTRACTING_TEXT: (5, 15),
    Stage.DETECTING_CHAPTERS: (20, 30),
    Stage.STORING_CHAPTERS: (35, 50),
    Stage.ENHANCING_CHAPTERS: (50, 90),
    Stage.COMPLETED: (100, 100),
    Stage.FAILED: (0, 0),
}


def overall_progress(stage: Stage, stage_progress: int) -> int:
    """Map a 0-100 stage progress value into the workflow-wide progress band."""

    low, high = _OVERALL_PROGRESS_BANDS[stage]
    bounded = min(100, max(0, int(stage_progress)))
    return low + round((high - low) * bounded / 100)


def _verify_transition_tables() -> None:
    """Fail fast when a job type is missing from a transition table."""

    job_types = set(JobType)
    for table_name, table in (
        ("STAGE_FOR_JOB", STAGE_FOR_JOB),
        ("NEXT_JOB_TYPE", NEXT_JOB_TYPE),
    ):
        missing = job_types.difference(table)
        if missing:
            names = ", ".join(sorted(job_type.value for job_type in missing))
            raise RuntimeError(f"`{table_name}` does not cover job type(s): {names}.")
    stages = set(Stage)
    missing_bands = stages.difference(_OVERALL_PROGRESS_BANDS)
    if missing_bands:
        names = ", ".join(sorted(stage.value for stage in missing_bands))
        raise RuntimeError(f"Overall progress bands do not cover stage(s): {names}.")


_verify_transition_tables()
