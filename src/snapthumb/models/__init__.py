"""Domain entities for the thumbnail pipeline."""

from snapthumb.models.capture_strategy import DEFAULT_STRATEGIES, CaptureStrategy
from snapthumb.models.thumbnail_job import (
    InvalidStateTransition,
    JobStatus,
    ThumbnailJob,
    ThumbnailMethod,
    ThumbnailResult,
)

__all__ = [
    "CaptureStrategy",
    "DEFAULT_STRATEGIES",
    "InvalidStateTransition",
    "JobStatus",
    "ThumbnailJob",
    "ThumbnailMethod",
    "ThumbnailResult",
]
