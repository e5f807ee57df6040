"""Background workers for async processing tasks."""

from snapthumb.workers.thumbnail_worker import process_single_job, run_thumbnail_worker

__all__ = [
    "process_single_job",
    "run_thumbnail_worker",
]
