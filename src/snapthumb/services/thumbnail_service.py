"""Thumbnail job queue: the collaborator-facing surface of the pipeline.

Owns job records, the FIFO of pending job ids and the lifecycle notifier, all
behind one lock so `enqueue` may be called from any request-handling thread.
`enqueue` never waits on the worker: it records the job, writes the loading
placeholder, appends to the FIFO and wakes the worker thread-safely.

The single worker (`snapthumb.workers.thumbnail_worker`) drains the FIFO one
job at a time because the rendering engine is one shared browser process.
"""

import asyncio
import threading
from collections import deque
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

import structlog

from snapthumb.core.config import Settings
from snapthumb.models.thumbnail_job import ThumbnailJob, utcnow
from snapthumb.services.capture.engine import CaptureEngine, RenderingEngine
from snapthumb.services.capture.strategies import CaptureStrategySet
from snapthumb.services.imaging.synthesis import ThumbnailSynthesizer
from snapthumb.services.notifier import JobCallback, LifecycleNotifier
from snapthumb.services.storage.materializer import FileMaterializer, validate_owner_id

logger = structlog.get_logger(__name__)


class ThumbnailService:
    """Job registry, pending FIFO and the components a job needs to finish."""

    def __init__(
        self,
        settings: Settings,
        engine: Optional[CaptureEngine] = None,
        synthesizer: Optional[ThumbnailSynthesizer] = None,
        materializer: Optional[FileMaterializer] = None,
        notifier: Optional[LifecycleNotifier] = None,
    ):
        self.settings = settings
        self.engine: CaptureEngine = engine or RenderingEngine(settings)
        self.synthesizer = synthesizer or ThumbnailSynthesizer(settings)
        self.materializer = materializer or FileMaterializer(
            settings.artifact_dir,
            self.synthesizer,
            url_prefix=settings.artifact_url_prefix,
        )
        self.notifier = notifier or LifecycleNotifier()
        self.strategies = CaptureStrategySet(
            self.engine,
            settings.capture_strategies,
            max_attempts=settings.strategy_max_attempts,
            backoff_base=settings.retry_backoff_seconds,
            backoff_max=settings.retry_backoff_max_seconds,
        )

        self._jobs: dict[str, ThumbnailJob] = {}
        self._pending: deque[str] = deque()
        self._lock = threading.Lock()
        self._wakeup: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # Collaborator surface

    def enqueue(self, owner_id: str, source_url: str, title: str = "", category: str = "") -> str:
        """Register a job and return its id immediately.

        The loading placeholder is written before this returns, so the owner's
        artifact path always resolves to an image.

        Raises:
            InvalidOwnerIdError: If owner_id cannot be used as a filename
        """
        validate_owner_id(owner_id)
        job = ThumbnailJob(
            owner_id=owner_id,
            source_url=source_url or "",
            title=title or "",
            category=category or "",
        )

        self.materializer.write_placeholder(owner_id, job.title, job.category)

        with self._lock:
            self._jobs[job.id] = job
            self._pending.append(job.id)
            depth = len(self._pending)

        logger.info(
            "job.enqueued",
            job_id=job.id,
            owner_id=owner_id,
            source_url=job.source_url,
            queue_depth=depth,
        )
        self._wake()
        return job.id

    def get_status(self, job_id: str) -> Optional[ThumbnailJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job else None

    def list_jobs(self, owner_id: Optional[str] = None) -> list[ThumbnailJob]:
        """Snapshots of known jobs, newest first."""
        with self._lock:
            jobs = [
                job.snapshot()
                for job in self._jobs.values()
                if owner_id is None or job.owner_id == owner_id
            ]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    def on_update(self, job_id: str, callback: JobCallback) -> bool:
        """Watch a job's status changes.

        A job that already finished gets its terminal snapshot delivered right
        away and nothing is registered. Unknown (or pruned) ids are ignored.

        Returns:
            True if the callback was registered for future transitions
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                finished = None
            elif job.is_terminal:
                finished = job.snapshot()
            else:
                # Registered under the lock so no transition can slip in between
                self.notifier.on_update(job_id, callback)
                return True

        if finished is None:
            logger.debug("job.listener_ignored", job_id=job_id, reason="unknown job")
            return False

        self.notifier.deliver(finished, callback)
        return False

    def remove_listener(self, job_id: str) -> bool:
        return self.notifier.remove_listener(job_id)

    def delete_artifact(self, owner_id: str) -> bool:
        return self.materializer.delete_artifact(owner_id)

    def artifact_path(self, owner_id: str) -> Path:
        return self.materializer.path_for(owner_id)

    def artifact_url(self, owner_id: str) -> str:
        return self.materializer.url_for(owner_id)

    @property
    def queue_depth(self) -> int:
        with self._lock:
            return len(self._pending)

    # Worker side

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Attach the wake-up event to the event loop the worker runs on."""
        self._loop = loop or asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        if self.queue_depth:
            self._wakeup.set()

    def _wake(self) -> None:
        loop, event = self._loop, self._wakeup
        if loop is None or event is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
        else:
            loop.call_soon_threadsafe(event.set)

    def pop_pending(self) -> Optional[str]:
        with self._lock:
            return self._pending.popleft() if self._pending else None

    async def next_job(self, idle_timeout: Optional[float] = None) -> Optional[str]:
        """Wait for the next pending job id (FIFO). Returns None on idle timeout."""
        if self._wakeup is None or self._loop is not asyncio.get_running_loop():
            self.bind_loop()
        assert self._wakeup is not None

        while True:
            job_id = self.pop_pending()
            if job_id is not None:
                return job_id
            self._wakeup.clear()
            # Re-check after clearing so a concurrent enqueue cannot be missed
            job_id = self.pop_pending()
            if job_id is not None:
                return job_id
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=idle_timeout)
            except asyncio.TimeoutError:
                return None

    def transition(self, job_id: str, apply: Callable[[ThumbnailJob], None]) -> ThumbnailJob:
        """Apply a state transition under the lock, then notify outside it.

        Raises:
            KeyError: If the job is unknown
            InvalidStateTransition: If the transition is not allowed
        """
        with self._lock:
            job = self._jobs[job_id]
            apply(job)
            snapshot = job.snapshot()

        logger.debug("job.transition", job_id=job_id, status=snapshot.status.value)
        self.notifier.notify(snapshot)
        return snapshot

    def prune(self, max_age_seconds: Optional[float] = None) -> int:
        """Forget terminal jobs that finished more than max_age_seconds ago."""
        max_age = (
            self.settings.job_retention_seconds if max_age_seconds is None else max_age_seconds
        )
        cutoff = utcnow() - timedelta(seconds=max_age)
        with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.is_terminal and job.completed_at is not None and job.completed_at < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        for job_id in expired:
            self.notifier.remove_listener(job_id)
        if expired:
            logger.debug("job.pruned", count=len(expired))
        return len(expired)

    async def close(self) -> None:
        await self.engine.close()
