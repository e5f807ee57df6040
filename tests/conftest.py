"""pytest fixtures for snapthumb tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- settings: Function-scoped Settings writing artifacts under tmp_path
- engine: A scriptable FakeEngine (see tests/fakes.py)
- service: A ThumbnailService wired to the fake engine
"""

import os

import pytest

from snapthumb.core.config import Settings
from snapthumb.services.thumbnail_service import ThumbnailService
from tests.fakes import FakeEngine


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings tuned for fast tests: no backoff, short ceiling, small thumbnails."""
    return Settings(  # type: ignore[call-arg]
        APP_ENV="test",
        LOG_LEVEL="WARNING",
        ARTIFACT_DIR=tmp_path / "thumbnails",
        THUMBNAIL_WIDTH=320,
        THUMBNAIL_HEIGHT=180,
        JOB_TIMEOUT_SECONDS=5.0,
        WORKER_IDLE_POLL_SECONDS=0.05,
        STRATEGY_MAX_ATTEMPTS=2,
        RETRY_BACKOFF_SECONDS=0,
        RETRY_BACKOFF_MAX_SECONDS=0,
    )


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def service(settings, engine) -> ThumbnailService:
    return ThumbnailService(settings, engine=engine)
