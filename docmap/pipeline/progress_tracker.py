"""Job progress tracking with callback-based listener notification.

Tracks the current stage and progress percentage of each job and
broadcasts updates to registered listener callbacks.  Listeners are keyed
by job id so concurrent jobs never see each other's updates.

    DocumentPipeline --update()--> ProgressTracker --callback()--> CLI printer
                                                   --callback()--> JobQueue heartbeat

Listener errors are caught and logged so a faulty listener cannot stall a
job.  Both sync and async callbacks are supported.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from docmap.models.job import ProcessingStage
from docmap.utils.logging import get_logger


@dataclass
class _JobProgress:
    """Internal snapshot of a single job's progress."""

    stage: ProcessingStage = ProcessingStage.QUEUED
    progress: float = 0.0
    message: str = ""


class ProgressTracker:
    """Tracks and broadcasts job progress via callbacks.

    Besides per-job listeners, *global* listeners receive updates for every
    job; the job queue registers one to refresh its stuck-job heartbeat.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, _JobProgress] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._global_listeners: list[Callable] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        job_id: str,
        stage: ProcessingStage,
        progress: float,
        message: str,
    ) -> None:
        """Record a progress update and notify all registered listeners.

        Parameters
        ----------
        job_id:
            The job to update.
        stage:
            The pipeline stage the job is in.
        progress:
            Completion percentage (0.0 - 100.0); clamped.
        message:
            Human-readable status message.
        """
        progress = max(0.0, min(100.0, progress))
        self._statuses[job_id] = _JobProgress(stage=stage, progress=progress, message=message)

        self._logger.debug(
            "progress_update",
            job_id=job_id,
            stage=stage.value,
            progress=round(progress, 1),
            message=message,
        )

        callbacks = [*self._global_listeners, *self._listeners.get(job_id, [])]
        await self._notify(callbacks, job_id, stage, progress, message)

    def register_listener(self, job_id: str, callback: Callable) -> None:
        """Register a callback accepting ``(job_id, stage, progress, message)``."""
        listeners = self._listeners.setdefault(job_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                job_id=job_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, job_id: str, callback: Callable) -> None:
        """Remove a previously registered callback for a job."""
        listeners = self._listeners.get(job_id, [])
        if callback in listeners:
            listeners.remove(callback)
            if not listeners:
                del self._listeners[job_id]

    def register_global_listener(self, callback: Callable) -> None:
        """Register a callback that receives updates for every job."""
        if callback not in self._global_listeners:
            self._global_listeners.append(callback)

    def get_status(self, job_id: str) -> dict:
        """Return the current stage, progress and message for a job.

        Returns zeroed defaults when the job has not been tracked yet.
        """
        status = self._statuses.get(job_id) or _JobProgress()
        return {
            "stage": status.stage.value,
            "progress": status.progress,
            "message": status.message,
        }

    def forget(self, job_id: str) -> None:
        """Drop the snapshot and listeners of a job that has been purged."""
        self._statuses.pop(job_id, None)
        self._listeners.pop(job_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify(
        self,
        callbacks: list[Callable],
        job_id: str,
        stage: ProcessingStage,
        progress: float,
        message: str,
    ) -> None:
        for callback in callbacks:
            try:
                result = callback(job_id, stage, progress, message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    job_id=job_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
