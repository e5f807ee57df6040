"""Thumbnail worker for processing queued capture jobs.

Drains the service's FIFO one job at a time, drives each job through
pending → processing → completed|failed, and guarantees that every job ends
with an image at its owner's stable path.

## Why Jobs Are Processed One At A Time

The rendering engine is a single browser process. Concurrent navigations
against one browser produce cross-talk (stale frames, screenshots of the wrong
tab), so the worker never overlaps jobs. FIFO order is guaranteed at dequeue
time only; a job that spends a long time retrying delays the jobs behind it.

## Failure Handling

Per job:
- Capture exhausted (every strategy failed) → synthesized artifact, status failed
- Hard ceiling exceeded (JOB_TIMEOUT_SECONDS) → pipeline cancelled and given at
  most JOB_CANCEL_GRACE_SECONDS to unwind, synthesized artifact, status failed
- Codec rejects the captured image → synthesized artifact, status failed
- Branded synthesis itself fails → minimal placeholder, method "unavailable"
- Anything unexpected → same as exhaustion; the loop keeps running
"""

import asyncio
import time
from typing import Optional

import structlog

from snapthumb.models.thumbnail_job import (
    InvalidStateTransition,
    ThumbnailJob,
    ThumbnailMethod,
    ThumbnailResult,
)
from snapthumb.services.exceptions import CaptureExhaustedError, EncodeError
from snapthumb.services.imaging.codec import normalize
from snapthumb.services.thumbnail_service import ThumbnailService

logger = structlog.get_logger(__name__)

ERROR_BACKOFF_SECONDS = 5


async def run_capture_pipeline(service: ThumbnailService, job: ThumbnailJob) -> ThumbnailResult:
    """Capture the job's page and write the normalized screenshot.

    Returns:
        Successful ThumbnailResult with method "captured"

    Raises:
        CaptureExhaustedError: If every strategy failed
        EncodeError: If the captured image cannot be normalized
        OSError: If the artifact cannot be written
    """
    settings = service.settings

    outcome = await service.strategies.capture(job.source_url)
    if outcome is None:
        raise CaptureExhaustedError(
            f"All {len(service.strategies.strategies)} capture strategies failed"
        )

    # Decoding/resizing a large screenshot is CPU bound; keep the event loop free
    thumbnail = await asyncio.to_thread(
        normalize,
        outcome.image,
        settings.thumbnail_width,
        settings.thumbnail_height,
        settings.thumbnail_quality,
    )
    # Written on the loop so a timed-out normalize can never overwrite the fallback
    path = service.materializer.write_final(job.owner_id, thumbnail)

    return ThumbnailResult(
        success=True,
        path=str(path),
        method=ThumbnailMethod.CAPTURED,
        strategy=outcome.strategy.name,
    )


def write_fallback(service: ThumbnailService, job: ThumbnailJob, error: str) -> ThumbnailResult:
    """Synthesize and write a placeholder for a job whose capture failed. Never raises."""
    synthesizer = service.synthesizer
    method = ThumbnailMethod.SYNTHESIZED
    try:
        data = synthesizer.render_branded(job.title, job.category, job.source_url)
    except Exception as e:
        logger.warning(
            "job.synthesis_failed",
            job_id=job.id,
            error_type=type(e).__name__,
            error_message=str(e),
        )
        method = ThumbnailMethod.UNAVAILABLE
        data = synthesizer.render_minimal(job.title)

    path = service.artifact_path(job.owner_id)
    try:
        path = service.materializer.write_final(job.owner_id, data)
    except OSError as e:
        # The loading placeholder written at enqueue time is still in place
        logger.error(
            "job.fallback_write_failed",
            job_id=job.id,
            owner_id=job.owner_id,
            error_type=type(e).__name__,
            error_message=str(e),
        )
        error = f"{error}; fallback write failed: {e}"

    return ThumbnailResult(success=False, path=str(path), method=method, error=error)


async def process_single_job(service: ThumbnailService, job_id: str) -> Optional[ThumbnailJob]:
    """Process one queued job to a terminal state.

    Workflow:
    1. Transition pending → processing (observers notified)
    2. Run the capture pipeline raced against the hard ceiling
    3. On success: transition processing → completed with method "captured"
    4. On any failure: write a synthesized placeholder, transition → failed

    Args:
        service: Thumbnail service owning the job
        job_id: Id popped from the pending FIFO

    Returns:
        Final job snapshot, or None if the job was unknown/already finished

    Raises:
        asyncio.CancelledError: Propagated for graceful shutdown (the job is
            resolved to failed first)
    """
    start_time = time.monotonic()

    try:
        job = service.transition(job_id, lambda j: j.mark_processing())
    except KeyError:
        logger.warning("job.missing", job_id=job_id)
        return None
    except InvalidStateTransition as e:
        logger.warning("job.skipped", job_id=job_id, reason=str(e))
        return None

    logger.info(
        "job.processing.started",
        job_id=job.id,
        owner_id=job.owner_id,
        source_url=job.source_url,
    )

    settings = service.settings
    ceiling = settings.job_timeout_seconds
    pipeline = asyncio.create_task(run_capture_pipeline(service, job))
    try:
        done, _ = await asyncio.wait({pipeline}, timeout=ceiling)
    except asyncio.CancelledError:
        await _abandon(pipeline, job.id, settings.job_cancel_grace_seconds)
        _fail(service, job, "Worker shut down during processing", start_time)
        raise

    if pipeline not in done:
        # The ceiling covers the whole job, including a pipeline stuck in its own cleanup
        logger.warning("job.processing.timeout", job_id=job.id, timeout_seconds=ceiling)
        await _abandon(pipeline, job.id, settings.job_cancel_grace_seconds)
        return _fail(service, job, f"Job exceeded hard timeout of {ceiling}s", start_time)

    try:
        result = pipeline.result()

    except CaptureExhaustedError as e:
        return _fail(service, job, str(e), start_time)

    except EncodeError as e:
        return _fail(service, job, f"Captured image could not be encoded: {e}", start_time)

    except Exception as e:
        logger.error(
            "job.processing.error",
            job_id=job.id,
            error_type=type(e).__name__,
            error_message=str(e),
            exc_info=True,
        )
        return _fail(service, job, f"{type(e).__name__}: {e}", start_time)

    final = service.transition(job.id, lambda j: j.mark_completed(result))
    logger.info(
        "job.processing.succeeded",
        job_id=job.id,
        owner_id=job.owner_id,
        strategy=result.strategy,
        duration_seconds=round(time.monotonic() - start_time, 3),
    )
    return final


async def _abandon(pipeline: asyncio.Task, job_id: str, grace: float) -> None:
    """Cancel a pipeline task, waiting at most `grace` seconds for it to unwind."""
    pipeline.cancel()
    done, _ = await asyncio.wait({pipeline}, timeout=grace)
    if pipeline in done:
        _log_pipeline_outcome(pipeline)
        return

    logger.warning("job.pipeline_abandoned", job_id=job_id, grace_seconds=grace)
    # Interrupts whatever cleanup the first cancellation got stuck in
    pipeline.cancel()
    pipeline.add_done_callback(_log_pipeline_outcome)


def _log_pipeline_outcome(pipeline: asyncio.Task) -> None:
    if pipeline.cancelled():
        return
    exc = pipeline.exception()
    if exc is not None:
        logger.debug(
            "job.pipeline_error_after_cancel",
            error_type=type(exc).__name__,
            error_message=str(exc),
        )


def _fail(
    service: ThumbnailService, job: ThumbnailJob, error: str, start_time: float
) -> ThumbnailJob:
    result = write_fallback(service, job, error)
    final = service.transition(job.id, lambda j: j.mark_failed(result))
    logger.warning(
        "job.processing.failed",
        job_id=job.id,
        owner_id=job.owner_id,
        method=result.method.value,
        error_message=error,
        duration_seconds=round(time.monotonic() - start_time, 3),
    )
    return final


async def run_thumbnail_worker(service: ThumbnailService) -> None:
    """Main worker loop for thumbnail generation.

    Workflow:
    1. Remove temp files left by interrupted writes
    2. Wait for the next pending job (FIFO)
    3. Process it to a terminal state
    4. Prune old finished jobs
    5. Handle CancelledError for graceful shutdown (engine closed on exit)

    Args:
        service: Thumbnail service whose queue this worker drains
    """
    settings = service.settings
    service.bind_loop()
    service.materializer.cleanup_stale_temp_files()

    logger.info(
        "worker.started",
        queue_depth=service.queue_depth,
        job_timeout_seconds=settings.job_timeout_seconds,
        strategies=[s.name for s in settings.capture_strategies],
    )

    try:
        while True:
            try:
                job_id = await service.next_job(idle_timeout=settings.worker_idle_poll_seconds)
                if job_id is None:
                    service.prune()
                    continue

                await process_single_job(service, job_id)
                service.prune()

            except asyncio.CancelledError:
                # Propagate cancellation for graceful shutdown
                raise

            except Exception as e:
                # Unexpected error in the loop itself - log and continue with backoff
                logger.error(
                    "worker.error",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)

    except asyncio.CancelledError:
        logger.info("worker.stopped")
        raise

    finally:
        await service.close()
