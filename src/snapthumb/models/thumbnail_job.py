"""ThumbnailJob entity - one thumbnail generation request with lifecycle tracking."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Thumbnail job lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class ThumbnailMethod(str, Enum):
    """How the final artifact was produced."""

    CAPTURED = "captured"
    SYNTHESIZED = "synthesized"
    UNAVAILABLE = "unavailable"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid job state transition."""

    pass


class ThumbnailResult(BaseModel):
    """Outcome of a finished job."""

    success: bool
    path: str
    method: ThumbnailMethod
    error: Optional[str] = None
    strategy: Optional[str] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ThumbnailJob(BaseModel):
    """ThumbnailJob tracks one generation request from enqueue to its terminal state."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    owner_id: str
    source_url: str
    title: str = ""
    category: str = ""
    status: JobStatus = JobStatus.PENDING
    result: Optional[ThumbnailResult] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def mark_processing(self) -> None:
        """Transition from pending to processing.

        Raises:
            InvalidStateTransition: If current status is not pending
        """
        if self.status != JobStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark processing from {self.status.value}. Job must be in pending state."
            )
        self.status = JobStatus.PROCESSING
        self.started_at = utcnow()

    def mark_completed(self, result: ThumbnailResult) -> None:
        """Transition from processing to completed.

        Args:
            result: Successful result (success=True)

        Raises:
            InvalidStateTransition: If current status is not processing
            ValueError: If result does not describe a success
        """
        if self.status != JobStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. "
                "Job must be in processing state."
            )
        if not result.success:
            raise ValueError("Completed jobs require a successful result")
        self.status = JobStatus.COMPLETED
        self.result = result
        self.completed_at = utcnow()

    def mark_failed(self, result: ThumbnailResult) -> None:
        """Transition from any non-terminal state to failed.

        Args:
            result: Failure result describing the placeholder that was written

        Raises:
            InvalidStateTransition: If job is already in a terminal state
        """
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark failed from {self.status.value}. Job is already in a terminal state."
            )
        self.status = JobStatus.FAILED
        self.result = result
        self.completed_at = utcnow()

    def snapshot(self) -> "ThumbnailJob":
        """Detached deep copy handed to observers and pollers."""
        return self.model_copy(deep=True)
