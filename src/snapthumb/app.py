"""FastAPI application factory."""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from snapthumb.api.routes import thumbnails
from snapthumb.core.config import Settings, configure_logging
from snapthumb.services.thumbnail_service import ThumbnailService
from snapthumb.workers.thumbnail_worker import run_thumbnail_worker

logger = structlog.get_logger()


def create_resilient_worker(
    coro_func, service: ThumbnailService, worker_name: str, shutdown_event: asyncio.Event
):
    """Create a worker with automatic restart on failure.

    Args:
        coro_func: Worker coroutine function (e.g., run_thumbnail_worker)
        service: Thumbnail service whose queue the worker drains
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown

    Returns:
        Initial task handle (will be auto-recreated on crash)
    """
    RESTART_DELAY = 1  # Fixed 1 second delay between restarts

    def on_worker_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY,
                exc_info=exc,
            )
        else:
            # Worker stopped cleanly (unexpected for infinite loop workers)
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY)

            # Check again if shutdown was requested during sleep
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(coro_func(service))
            new_task.add_done_callback(on_worker_done)

        asyncio.create_task(restart_worker())

    task = asyncio.create_task(coro_func(service))
    task.add_done_callback(on_worker_done)
    return task


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, create the thumbnail service, start the worker
    - Shutdown: Stop the worker, close the rendering engine

    The worker automatically restarts if its loop ever dies.
    """
    settings: Optional[Settings] = getattr(app.state, "settings", None)
    if settings is None:
        settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    service: Optional[ThumbnailService] = getattr(app.state, "thumbnail_service", None)
    if service is None:
        service = ThumbnailService(settings)

    app.state.settings = settings
    app.state.thumbnail_service = service

    shutdown_event = asyncio.Event()
    worker_task = create_resilient_worker(
        run_thumbnail_worker, service, "thumbnail", shutdown_event
    )

    logger.info(
        "application.startup",
        artifact_dir=str(settings.artifact_dir),
        strategies=[s.name for s in settings.capture_strategies],
    )

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    worker_task.cancel()
    await asyncio.gather(worker_task, return_exceptions=True)

    # The worker closes the engine on exit; closing twice is a no-op
    await service.close()


def create_app(
    settings: Optional[Settings] = None, service: Optional[ThumbnailService] = None
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use (loaded from env vars when omitted)
        service: Pre-built thumbnail service (the lifespan builds one when omitted)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="snapthumb",
        description="Asynchronous page thumbnail generation",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.thumbnail_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(thumbnails.router)  # Router has prefix="/api" in definition

    # Artifacts are served from their stable per-owner URL
    app.mount(
        settings.artifact_url_prefix,
        StaticFiles(directory=settings.artifact_dir, check_dir=False),
        name="thumbnails",
    )

    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint.

        Returns:
            200: {"status": "healthy", "queue_depth": n, "engine_running": bool}
            503: {"status": "unavailable"} before the lifespan created the service
        """
        service = getattr(app.state, "thumbnail_service", None)
        if service is None:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {"status": "unavailable"}

        return {
            "status": "healthy",
            "queue_depth": service.queue_depth,
            "engine_running": bool(getattr(service.engine, "is_running", False)),
        }

    return app


# Create app instance for uvicorn
app = create_app()
