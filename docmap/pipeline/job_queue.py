"""In-process job queue and worker pool for document processing.

The queue owns an explicit job table (``job_id -> Job``) and a fixed pool
of worker tasks pulling from an :class:`asyncio.PriorityQueue`.  Jobs that
need a provider call are dispatched ahead of cheaper ones, then by
:class:`JobPriority`, then first-in first-out.

Job lifecycle::

    QUEUED ──► RUNNING ──► COMPLETED
      │           │ ├────► FAILED
      │           │ └────► CANCELLED
      │           └──────► QUEUED      (retry after backoff)
      └──────────────────► CANCELLED

Any other transition raises :class:`JobStateError`.  Every transition
happens while holding the job's own :class:`asyncio.Lock`; progress
heartbeats are applied in a single synchronous step, so they can never
interleave with a transition.

Execution of one job:

1. attempts += 1, job RUNNING, document PROCESSING;
2. ``DocumentPipeline.run`` produces the result (no writes);
3. under the job's lock the queue re-checks that the job is still RUNNING
   and not cancelled, then ``DocumentPipeline.persist`` writes the result
   and the job becomes COMPLETED.

Failures are retried with exponential backoff while the error is retryable
and attempts remain; otherwise the job and its document become FAILED.
Cancelled jobs write nothing and their document returns to PENDING.
Running jobs whose progress heartbeat stops for ``stuck_timeout_seconds``
are failed by :meth:`JobQueue.fail_stuck_jobs` and never retried.

Delivery is at-least-once: jobs live in memory only, and ``persist`` uses
replace semantics so re-processing a document is harmless.
"""

from __future__ import annotations

import asyncio
import itertools
import uuid
from datetime import datetime, timedelta
from typing import Callable

from docmap.interfaces.storage_provider import IStorageProvider
from docmap.models.document import SUPPORTED_CONTENT_TYPES, DocumentStatus, utc_now
from docmap.models.job import (
    Job,
    JobFilter,
    JobOptions,
    JobStats,
    JobStatus,
    ProcessingStage,
)
from docmap.pipeline.document_pipeline import DocumentPipeline
from docmap.pipeline.progress_tracker import ProgressTracker
from docmap.utils.errors import (
    DocMapError,
    DocumentValidationError,
    JobCancelledError,
    JobError,
    JobStateError,
)
from docmap.utils.logging import get_logger

_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.QUEUED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

COMPLETED_RETENTION = timedelta(hours=24)
FAILED_RETENTION = timedelta(days=7)


def backoff_delay(attempts: int, base_seconds: float, max_seconds: float) -> float:
    """Delay before retry number *attempts*: ``base * 2**(attempts-1)``, capped."""
    return min(base_seconds * 2 ** max(attempts - 1, 0), max_seconds)


class JobQueue:
    """Job table plus a pool of workers driving :class:`DocumentPipeline`.

    Parameters
    ----------
    storage:
        Used to validate documents at enqueue time and to move document
        status along with the job.
    pipeline:
        Runs and persists one document.
    progress_tracker:
        Receives progress from the pipeline; the queue listens to it to
        refresh job progress and heartbeats.
    concurrency:
        Number of worker tasks (jobs processed at once).
    max_attempts:
        Default attempt cap; ``JobOptions.max_attempts`` overrides it.
    backoff_base_seconds, backoff_max_seconds:
        Retry backoff parameters.
    stuck_timeout_seconds:
        A RUNNING job with no heartbeat for this long is failed.
    stuck_check_interval_seconds:
        When set, a watchdog calls :meth:`fail_stuck_jobs` at this interval.
    max_retained_jobs:
        :meth:`cleanup` trims the oldest finished jobs beyond this count.
    clock:
        Source of "now" (UTC); injectable for tests.
    """

    def __init__(
        self,
        storage: IStorageProvider,
        pipeline: DocumentPipeline,
        progress_tracker: ProgressTracker,
        concurrency: int = 2,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        backoff_max_seconds: float = 30.0,
        stuck_timeout_seconds: float = 300.0,
        stuck_check_interval_seconds: float | None = None,
        max_retained_jobs: int = 1000,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._storage = storage
        self._pipeline = pipeline
        self._progress = progress_tracker
        self._concurrency = concurrency
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._stuck_timeout = stuck_timeout_seconds
        self._stuck_interval = stuck_check_interval_seconds
        self._max_retained = max_retained_jobs
        self._clock = clock

        self._jobs: dict[str, Job] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._done_events: dict[str, asyncio.Event] = {}
        self._cancel_requested: set[str] = set()
        self._queue: asyncio.PriorityQueue[tuple[int, int, int, str]] = asyncio.PriorityQueue()
        self._sequence = itertools.count()

        self._workers: list[asyncio.Task] = []
        self._background: set[asyncio.Task] = set()
        self._watchdog: asyncio.Task | None = None
        self._logger = get_logger(__name__)

        self._progress.register_global_listener(self._on_progress)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """Start the worker pool (and the stuck-job watchdog when configured)."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"docmap-worker-{i}")
            for i in range(self._concurrency)
        ]
        if self._stuck_interval:
            self._watchdog = asyncio.create_task(self._watch_stuck_jobs(), name="docmap-watchdog")
        self._logger.info("job_queue_started", workers=self._concurrency)

    async def stop(self) -> None:
        """Stop workers, the watchdog and pending retry timers.

        Jobs that were RUNNING stay RUNNING; they are picked up by stuck-job
        detection if the queue is restarted in the same process.
        """
        tasks = [*self._workers, *self._background]
        if self._watchdog is not None:
            tasks.append(self._watchdog)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers = []
        self._background.clear()
        self._watchdog = None
        self._logger.info("job_queue_stopped")

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def enqueue(self, document_id: str, options: JobOptions | None = None) -> str:
        """Validate the document and queue a job for it.

        Returns
        -------
        str
            The new job's id.  Processing happens in the background.

        Raises
        ------
        DocumentValidationError
            If the document does not exist, is empty, has an unsupported
            content type, or already has a queued or running job.  No job
            is created in that case.
        """
        options = options or JobOptions()
        document = await self._storage.get_document(document_id)
        if document is None:
            raise DocumentValidationError(message=f"Document {document_id} not found")
        if document.size_bytes == 0:
            raise DocumentValidationError(message=f"Document {document_id} is empty")
        if document.content_type not in SUPPORTED_CONTENT_TYPES:
            raise DocumentValidationError(
                message=f"Unsupported content type: {document.content_type}"
            )
        self._reject_active_duplicate(document_id)

        # The document must read PENDING before a worker can see the job.
        if document.status is not DocumentStatus.PENDING:
            await self._storage.update_document_status(document_id, DocumentStatus.PENDING)

        # No await between this check and the insert below.
        self._reject_active_duplicate(document_id)
        now = self._clock()
        job = Job(
            job_id=uuid.uuid4().hex,
            document_id=document_id,
            max_attempts=options.max_attempts or self._max_attempts,
            options=options,
            created_at=now,
            updated_at=now,
            message="Queued",
        )
        self._jobs[job.job_id] = job
        self._locks[job.job_id] = asyncio.Lock()
        self._done_events[job.job_id] = asyncio.Event()
        self._push(job)

        self._logger.info(
            "job_enqueued",
            job_id=job.job_id,
            document_id=document_id,
            priority=options.priority.value,
            ai_required=options.ai_required,
        )
        return job.job_id

    def _reject_active_duplicate(self, document_id: str) -> None:
        if any(
            j.document_id == document_id and not j.status.is_terminal
            for j in self._jobs.values()
        ):
            raise DocumentValidationError(
                message=f"Document {document_id} already has an active job"
            )

    def _push(self, job: Job) -> None:
        self._queue.put_nowait(
            (
                0 if job.options.ai_required else 1,
                -job.options.priority.rank,
                next(self._sequence),
                job.job_id,
            )
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def list_jobs(self, job_filter: JobFilter | None = None) -> list[Job]:
        """Jobs matching *job_filter*, oldest first."""
        job_filter = job_filter or JobFilter()
        jobs = sorted(self._jobs.values(), key=lambda j: (j.created_at, j.job_id))
        if job_filter.status is not None:
            jobs = [j for j in jobs if j.status is job_filter.status]
        if job_filter.document_id is not None:
            jobs = [j for j in jobs if j.document_id == job_filter.document_id]
        if job_filter.limit is not None:
            jobs = jobs[: job_filter.limit]
        return jobs

    def get_stats(self) -> JobStats:
        counts = {status: 0 for status in JobStatus}
        durations: list[float] = []
        for job in self._jobs.values():
            counts[job.status] += 1
            if (
                job.status is JobStatus.COMPLETED
                and job.started_at is not None
                and job.finished_at is not None
            ):
                durations.append((job.finished_at - job.started_at).total_seconds())
        return JobStats(
            queued=counts[JobStatus.QUEUED],
            running=counts[JobStatus.RUNNING],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            cancelled=counts[JobStatus.CANCELLED],
            average_duration_seconds=sum(durations) / len(durations) if durations else None,
        )

    async def wait_for(self, job_id: str, timeout: float | None = None) -> Job:
        """Wait until the job reaches a terminal status and return it.

        Raises
        ------
        JobError
            If the job is unknown.
        asyncio.TimeoutError
            If *timeout* elapses first.
        """
        event = self._done_events.get(job_id)
        if event is None:
            raise JobError(message=f"Job {job_id} not found")
        await asyncio.wait_for(event.wait(), timeout=timeout)
        return self._jobs[job_id]

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel_job(self, job_id: str) -> bool:
        """Request cancellation of a job.

        A QUEUED job is cancelled immediately.  A RUNNING job is flagged; no
        new chunk calls start, in-flight calls finish, and the job ends
        CANCELLED without writing results.

        Returns
        -------
        bool
            ``False`` if the job is unknown or already finished.
        """
        lock = self._locks.get(job_id)
        if lock is None:
            return False
        async with lock:
            job = self._jobs[job_id]
            if job.status is JobStatus.QUEUED:
                await self._mark_cancelled_locked(job_id)
                return True
            if job.status is JobStatus.RUNNING:
                self._cancel_requested.add(job_id)
                self._jobs[job_id] = job.model_copy(
                    update={"message": "Cancellation requested"}
                )
                self._logger.info("job_cancel_requested", job_id=job_id)
                return True
        return False

    def _should_stop(self, job_id: str) -> bool:
        job = self._jobs.get(job_id)
        return (
            job_id in self._cancel_requested
            or job is None
            or job.status is not JobStatus.RUNNING
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def fail_stuck_jobs(self) -> list[str]:
        """Fail RUNNING jobs whose heartbeat is older than the stuck timeout.

        Stuck jobs are never retried.

        Returns
        -------
        list[str]
            Ids of the jobs that were failed.
        """
        limit = timedelta(seconds=self._stuck_timeout)
        failed: list[str] = []
        for job_id in list(self._jobs):
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.RUNNING:
                continue
            if self._clock() - job.updated_at <= limit:
                continue
            async with self._locks[job_id]:
                job = self._jobs[job_id]
                if job.status is not JobStatus.RUNNING:
                    continue
                if self._clock() - job.updated_at <= limit:
                    continue
                message = f"Job made no progress for {self._stuck_timeout:.0f}s"
                self._transition(job_id, JobStatus.FAILED, error=message, message="Stuck")
                self._cancel_requested.discard(job_id)
                await self._storage.update_document_status(
                    job.document_id, DocumentStatus.FAILED, error_message=message
                )
            self._logger.warning("job_stuck_failed", job_id=job_id, document_id=job.document_id)
            failed.append(job_id)
        return failed

    async def cleanup(self, max_age_seconds: float | None = None) -> int:
        """Purge finished jobs from the table.

        Parameters
        ----------
        max_age_seconds:
            Purge every finished job older than this.  By default COMPLETED
            and CANCELLED jobs are kept for 24 hours and FAILED jobs for
            7 days.

        Beyond the age rule, the oldest finished jobs are purged while the
        table holds more than ``max_retained_jobs`` jobs.

        Returns
        -------
        int
            Number of jobs purged.
        """
        now = self._clock()
        finished = sorted(
            (j for j in self._jobs.values() if j.status.is_terminal),
            key=lambda j: (j.finished_at or j.updated_at, j.job_id),
        )

        purge: list[str] = []
        for job in finished:
            age = now - (job.finished_at or job.updated_at)
            if max_age_seconds is not None:
                limit = timedelta(seconds=max_age_seconds)
            elif job.status is JobStatus.FAILED:
                limit = FAILED_RETENTION
            else:
                limit = COMPLETED_RETENTION
            if age > limit:
                purge.append(job.job_id)

        purged = set(purge)
        remaining = [j for j in finished if j.job_id not in purged]
        excess = len(self._jobs) - len(purge) - self._max_retained
        if excess > 0:
            purge.extend(j.job_id for j in remaining[:excess])

        for job_id in purge:
            self._forget(job_id)
        if purge:
            self._logger.info("jobs_cleaned_up", purged=len(purge), remaining=len(self._jobs))
        return len(purge)

    def _forget(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        self._locks.pop(job_id, None)
        self._done_events.pop(job_id, None)
        self._cancel_requested.discard(job_id)
        self._progress.forget(job_id)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self, worker_id: int) -> None:
        while True:
            _, _, _, job_id = await self._queue.get()
            try:
                await self._process(job_id)
            except Exception as exc:
                # Worker loops survive any job failure.
                self._logger.error(
                    "worker_job_error",
                    worker=worker_id,
                    job_id=job_id,
                    error=str(exc),
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    async def _watch_stuck_jobs(self) -> None:
        while True:
            await asyncio.sleep(self._stuck_interval)
            try:
                await self.fail_stuck_jobs()
            except Exception as exc:
                self._logger.error("stuck_check_failed", error=str(exc))

    async def _process(self, job_id: str) -> None:
        lock = self._locks.get(job_id)
        if lock is None:
            return
        async with lock:
            job = self._jobs.get(job_id)
            # Cancelled (or purged) while waiting in the queue.
            if job is None or job.status is not JobStatus.QUEUED:
                return
            now = self._clock()
            job = self._transition(
                job_id,
                JobStatus.RUNNING,
                attempts=job.attempts + 1,
                started_at=now,
                progress=0.0,
                message="Processing",
            )
        self._logger.info(
            "job_started",
            job_id=job_id,
            document_id=job.document_id,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
        )

        try:
            await self._storage.update_document_status(job.document_id, DocumentStatus.PROCESSING)
            result = await self._pipeline.run(job, is_cancelled=lambda: self._should_stop(job_id))
        except JobCancelledError:
            async with lock:
                if self._jobs[job_id].status is JobStatus.RUNNING:
                    await self._mark_cancelled_locked(job_id)
            return
        except Exception as exc:
            async with lock:
                await self._handle_failure_locked(job_id, exc)
            return

        async with lock:
            current = self._jobs[job_id]
            if current.status is not JobStatus.RUNNING:
                self._logger.warning(
                    "job_result_discarded",
                    job_id=job_id,
                    status=current.status.value,
                )
                return
            if job_id in self._cancel_requested:
                await self._mark_cancelled_locked(job_id)
                return
            try:
                await self._pipeline.persist(current, result)
            except Exception as exc:
                await self._handle_failure_locked(job_id, exc)
                return
            self._transition(job_id, JobStatus.COMPLETED, progress=100.0, message="Completed")
        self._logger.info("job_completed", job_id=job_id, document_id=job.document_id)

    # ------------------------------------------------------------------
    # Transitions (callers hold the job's lock)
    # ------------------------------------------------------------------

    def _transition(self, job_id: str, status: JobStatus, **changes) -> Job:
        job = self._jobs[job_id]
        if status not in _ALLOWED_TRANSITIONS[job.status]:
            raise JobStateError(
                message=f"Job {job_id} cannot move from {job.status.value} to {status.value}"
            )
        now = self._clock()
        update = {"status": status, "updated_at": now, **changes}
        if status.is_terminal:
            update["finished_at"] = now
        updated = job.model_copy(update=update)
        self._jobs[job_id] = updated
        if status.is_terminal:
            self._done_events[job_id].set()
        return updated

    async def _mark_cancelled_locked(self, job_id: str) -> None:
        job = self._transition(job_id, JobStatus.CANCELLED, message="Cancelled")
        self._cancel_requested.discard(job_id)
        await self._storage.update_document_status(job.document_id, DocumentStatus.PENDING)
        self._logger.info("job_cancelled", job_id=job_id, document_id=job.document_id)

    async def _handle_failure_locked(self, job_id: str, exc: Exception) -> None:
        job = self._jobs[job_id]
        # Already failed as stuck while the pipeline was running.
        if job.status is not JobStatus.RUNNING:
            return
        message = str(exc) or type(exc).__name__
        retryable = exc.retryable if isinstance(exc, DocMapError) else True

        if (
            retryable
            and job.attempts < job.max_attempts
            and job_id not in self._cancel_requested
        ):
            delay = backoff_delay(job.attempts, self._backoff_base, self._backoff_max)
            self._transition(
                job_id,
                JobStatus.QUEUED,
                error=message,
                progress=0.0,
                message=f"Retrying in {delay:.1f}s",
            )
            await self._storage.update_document_status(job.document_id, DocumentStatus.PENDING)
            task = asyncio.create_task(self._requeue_after(job_id, delay))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            self._logger.warning(
                "job_retry_scheduled",
                job_id=job_id,
                attempt=job.attempts,
                delay=delay,
                error=message,
            )
            return

        self._transition(job_id, JobStatus.FAILED, error=message, message="Failed")
        self._cancel_requested.discard(job_id)
        await self._storage.update_document_status(
            job.document_id, DocumentStatus.FAILED, error_message=message
        )
        self._logger.error(
            "job_failed",
            job_id=job_id,
            document_id=job.document_id,
            attempts=job.attempts,
            error=message,
        )

    async def _requeue_after(self, job_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        job = self._jobs.get(job_id)
        if job is not None and job.status is JobStatus.QUEUED:
            self._push(job)

    # ------------------------------------------------------------------
    # Progress heartbeat
    # ------------------------------------------------------------------

    def _on_progress(
        self,
        job_id: str,
        stage: ProcessingStage,
        progress: float,
        message: str,
    ) -> None:
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.RUNNING:
            return
        self._jobs[job_id] = job.model_copy(
            update={"progress": progress, "message": message, "updated_at": self._clock()}
        )
