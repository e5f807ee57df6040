"""State transition tests for ThumbnailJob model.

Tests focus on validating the job lifecycle state machine:
- Valid transitions between states
- Invalid transitions are rejected with clear error messages
- Failed state is reachable from any non-terminal state
"""

import pytest

from snapthumb.models.thumbnail_job import (
    InvalidStateTransition,
    JobStatus,
    ThumbnailJob,
    ThumbnailMethod,
    ThumbnailResult,
)


def captured_result() -> ThumbnailResult:
    return ThumbnailResult(
        success=True,
        path="/tmp/thumbnails/item-1.jpg",
        method=ThumbnailMethod.CAPTURED,
        strategy="high_fidelity",
    )


def failed_result() -> ThumbnailResult:
    return ThumbnailResult(
        success=False,
        path="/tmp/thumbnails/item-1.jpg",
        method=ThumbnailMethod.SYNTHESIZED,
        error="All 3 capture strategies failed",
    )


def test_valid_state_transitions():
    """Happy path: pending → processing → completed."""
    job = ThumbnailJob(owner_id="item-1", source_url="https://example.com")
    assert job.status == JobStatus.PENDING
    assert job.started_at is None

    job.mark_processing()
    assert job.status == JobStatus.PROCESSING
    assert job.started_at is not None

    job.mark_completed(captured_result())
    assert job.status == JobStatus.COMPLETED
    assert job.is_terminal
    assert job.result.method == ThumbnailMethod.CAPTURED
    assert job.completed_at >= job.started_at


def test_invalid_state_transition_raises_exception():
    """Cannot go directly from pending to completed without processing."""
    job = ThumbnailJob(owner_id="item-1", source_url="https://example.com")

    with pytest.raises(InvalidStateTransition) as exc_info:
        job.mark_completed(captured_result())

    error_message = str(exc_info.value)
    assert "pending" in error_message.lower()
    assert "processing" in error_message.lower()
    assert job.status == JobStatus.PENDING


def test_mark_completed_requires_successful_result():
    job = ThumbnailJob(owner_id="item-1", source_url="https://example.com")
    job.mark_processing()

    with pytest.raises(ValueError):
        job.mark_completed(failed_result())
    assert job.status == JobStatus.PROCESSING


def test_mark_failed_from_any_non_terminal_state():
    """Failures can occur before or during processing."""
    for initial_status in [JobStatus.PENDING, JobStatus.PROCESSING]:
        job = ThumbnailJob(
            owner_id="item-1",
            source_url="https://example.com",
            status=initial_status,
        )

        job.mark_failed(failed_result())
        assert job.status == JobStatus.FAILED
        assert job.result.method == ThumbnailMethod.SYNTHESIZED
        assert job.completed_at is not None


def test_cannot_transition_from_terminal_states():
    """Once a job reaches completed or failed, it stays there."""
    for terminal_status in [JobStatus.COMPLETED, JobStatus.FAILED]:
        job = ThumbnailJob(
            owner_id="item-1",
            source_url="https://example.com",
            status=terminal_status,
        )

        with pytest.raises(InvalidStateTransition):
            job.mark_failed(failed_result())
        with pytest.raises(InvalidStateTransition):
            job.mark_processing()
        with pytest.raises(InvalidStateTransition):
            job.mark_completed(captured_result())
        assert job.status == terminal_status


def test_snapshot_is_detached():
    job = ThumbnailJob(owner_id="item-1", source_url="https://example.com")
    snapshot = job.snapshot()

    job.mark_processing()

    assert snapshot.status == JobStatus.PENDING
    assert snapshot.id == job.id


def test_job_ids_are_unique():
    ids = {ThumbnailJob(owner_id="item-1", source_url="").id for _ in range(50)}
    assert len(ids) == 50
