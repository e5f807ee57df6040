"""Tests for rendering engine error classification."""

import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from snapthumb.services.exceptions import (
    CaptureFailedError,
    EngineCrashedError,
    EngineDetachedError,
    NavigationTimeoutError,
    PermanentError,
    TransientError,
    classify_engine_error,
)


@pytest.mark.parametrize(
    "error,expected",
    [
        (PlaywrightTimeoutError("Timeout 30000ms exceeded."), NavigationTimeoutError),
        (asyncio.TimeoutError(), NavigationTimeoutError),
        (PlaywrightError("Navigation timeout of 15000 ms exceeded"), NavigationTimeoutError),
        (PlaywrightError("Navigating frame was detached"), EngineDetachedError),
        (PlaywrightError("Protocol error (Page.navigate): Session closed."), EngineDetachedError),
        (
            PlaywrightError("Target page, context or browser has been closed"),
            EngineCrashedError,
        ),
        (PlaywrightError("Page crashed"), EngineCrashedError),
        (ConnectionResetError("connection reset by peer"), EngineCrashedError),
        (PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://nope.invalid"), CaptureFailedError),
        (ValueError(""), CaptureFailedError),
    ],
)
def test_classify_engine_error(error, expected):
    classified = classify_engine_error(error)

    assert type(classified) is expected


def test_retryability_follows_hierarchy():
    assert isinstance(classify_engine_error(asyncio.TimeoutError()), TransientError)
    assert isinstance(classify_engine_error(PlaywrightError("Page crashed")), TransientError)
    assert isinstance(classify_engine_error(PlaywrightError("net::ERR_FAILED")), PermanentError)


def test_already_classified_errors_pass_through():
    original = EngineDetachedError("frame gone")

    assert classify_engine_error(original) is original


def test_classified_message_keeps_original_text():
    classified = classify_engine_error(PlaywrightError("net::ERR_CONNECTION_REFUSED"))

    assert "ERR_CONNECTION_REFUSED" in str(classified)
