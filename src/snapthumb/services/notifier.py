"""Per-job status-change callbacks.

One callback per job id (the latest registration replaces any earlier one).
Delivery is synchronous and in-process; remote fan-out is the caller's concern.
"""

import threading
from typing import Callable

import structlog

from snapthumb.models.thumbnail_job import ThumbnailJob

logger = structlog.get_logger(__name__)

JobCallback = Callable[[ThumbnailJob], None]


class LifecycleNotifier:
    """Registry of job status callbacks."""

    def __init__(self) -> None:
        self._callbacks: dict[str, JobCallback] = {}
        self._lock = threading.Lock()

    def on_update(self, job_id: str, callback: JobCallback) -> None:
        with self._lock:
            self._callbacks[job_id] = callback

    def remove_listener(self, job_id: str) -> bool:
        with self._lock:
            return self._callbacks.pop(job_id, None) is not None

    def has_listener(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._callbacks

    def notify(self, job: ThumbnailJob) -> None:
        """Deliver a job snapshot to its callback, if any.

        Callback exceptions are logged and swallowed. The listener is dropped
        after a terminal event since no further transitions can follow.
        """
        with self._lock:
            callback = self._callbacks.get(job.id)
            if job.is_terminal:
                self._callbacks.pop(job.id, None)

        if callback is not None:
            self.deliver(job, callback)

    def deliver(self, job: ThumbnailJob, callback: JobCallback) -> None:
        """Call one callback with a job snapshot, logging and swallowing its errors."""
        try:
            callback(job.snapshot())
        except Exception as e:
            logger.error(
                "notifier.callback_failed",
                job_id=job.id,
                status=job.status.value,
                error_type=type(e).__name__,
                error_message=str(e),
            )
