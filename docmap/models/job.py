"""Job models for the document-processing queue.

A :class:`Job` is created when a document is submitted for processing and
is owned by :class:`~docmap.pipeline.job_queue.JobQueue` from then on.  Like
the other models it is frozen: the queue replaces the stored snapshot with
``model_copy(update=...)`` while holding the job's lock, so callers of
``get_job`` always receive a consistent, immutable view.

State machine::

    QUEUED ──► RUNNING ──► COMPLETED
      │           │ ├────► FAILED
      │           │ └────► CANCELLED
      │           └──────► QUEUED      (retry only: attempts < max_attempts)
      └──────────────────► CANCELLED
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from docmap.models.document import utc_now


class JobStatus(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class JobPriority(str, Enum):  # noqa: UP042
    """Dispatch priority; higher ranks are pulled from the queue first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    JobPriority.LOW: 1,
    JobPriority.MEDIUM: 2,
    JobPriority.HIGH: 3,
    JobPriority.CRITICAL: 4,
}


class ProcessingStage(str, Enum):  # noqa: UP042
    """Step of the document pipeline a job is in, reported with progress."""

    QUEUED = "queued"
    LOADING = "loading"
    CHUNKING = "chunking"
    EXTRACTING = "extracting"
    PERSISTING = "persisting"
    DONE = "done"


class JobOptions(BaseModel):
    """Processing options supplied at enqueue time."""

    model_config = ConfigDict(frozen=True)

    # Jobs that need a provider call are dispatched ahead of cheaper ones.
    ai_required: bool = True
    priority: JobPriority = JobPriority.MEDIUM
    # Per-job override of the queue's attempt cap.
    max_attempts: int | None = Field(default=None, ge=1)
    # Per-job override of the orchestrator's success-ratio floor.
    min_success_ratio: float | None = Field(default=None, ge=0.0, le=1.0)


class Job(BaseModel):
    """Snapshot of a document-processing job."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    document_id: str
    status: JobStatus = JobStatus.QUEUED
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    message: str = ""
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    options: JobOptions = Field(default_factory=JobOptions)
    created_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    # Last state change or progress heartbeat; drives stuck-job detection.
    updated_at: datetime = Field(default_factory=utc_now)
    error: str | None = None


class JobFilter(BaseModel):
    """Filter for :meth:`JobQueue.list_jobs`."""

    model_config = ConfigDict(frozen=True)

    status: JobStatus | None = None
    document_id: str | None = None
    limit: int | None = Field(default=None, ge=1)


class JobStats(BaseModel):
    """Counts of jobs per status.

    ``average_duration_seconds`` is the mean run time of completed jobs
    (last attempt only), or ``None`` when no job has completed yet.
    """

    model_config = ConfigDict(frozen=True)

    queued: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    average_duration_seconds: float | None = None

    @property
    def total(self) -> int:
        return self.queued + self.running + self.completed + self.failed + self.cancelled
