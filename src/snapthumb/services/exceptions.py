"""Service error hierarchy for page capture and thumbnail encoding.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (navigation timeouts, engine detachment, crashes)
- PermanentError: Non-retryable errors (bad URLs, HTTP error pages, codec failures)
"""

import asyncio

from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Navigation did not settle in time
    - Control-protocol session detached mid-capture
    - Rendering engine process exited
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Malformed or unresolvable URL
    - HTTP error response for the page
    - Codec rejected the image data
    """

    pass


# Rendering engine errors
class NavigationTimeoutError(TransientError):
    """Page did not settle within the strategy's window."""

    pass


class EngineDetachedError(TransientError):
    """Control-protocol session or frame was lost mid-capture."""

    pass


class EngineCrashedError(TransientError):
    """Underlying browser process exited or disconnected."""

    pass


class EngineLaunchError(TransientError):
    """Browser process could not be started."""

    pass


class CaptureFailedError(PermanentError):
    """Page-level failure that retrying the same strategy will not fix."""

    pass


class CaptureExhaustedError(PermanentError):
    """Every capture strategy failed."""

    pass


# Image errors
class EncodeError(PermanentError):
    """Codec could not decode or encode image data."""

    pass


# Caller contract errors
class InvalidOwnerIdError(ValueError):
    """Owner id cannot be used as an artifact filename."""

    pass


DETACHED_MARKERS = (
    "frame was detached",
    "navigating frame was detached",
    "session closed",
    "target closed",
    "page was closed",
    "execution context was destroyed",
    "protocol error",
)

CRASH_MARKERS = (
    "browser has been closed",
    "browser closed",
    "connection closed",
    "target page, context or browser has been closed",
    "target crashed",
    "page crashed",
)

TIMEOUT_MARKERS = (
    "navigation timeout",
    "timeout",
    "timed out",
)


def classify_engine_error(exception: BaseException) -> ServiceError:
    """Classify a raw rendering engine exception into the error taxonomy.

    Args:
        exception: Original exception from Playwright or the event loop

    Returns:
        Classified ServiceError subclass instance

    Classification rules:
        - Already-classified ServiceError → returned unchanged
        - Crash/disconnect messages → EngineCrashedError
        - Detached frame/session messages → EngineDetachedError
        - Playwright/asyncio timeouts → NavigationTimeoutError
        - Connection-level OS errors → EngineCrashedError
        - Anything else → CaptureFailedError
    """
    if isinstance(exception, ServiceError):
        return exception

    error_message = str(exception)
    error_message_lower = error_message.lower()

    # Crash markers are checked first: "Target page, context or browser has been
    # closed" also contains "target" and must not be read as a detach.
    if any(marker in error_message_lower for marker in CRASH_MARKERS):
        return EngineCrashedError(f"Engine crashed: {error_message}")

    if any(marker in error_message_lower for marker in DETACHED_MARKERS):
        return EngineDetachedError(f"Engine detached: {error_message}")

    is_timeout = isinstance(exception, (PlaywrightTimeoutError, asyncio.TimeoutError, TimeoutError))
    if is_timeout or any(marker in error_message_lower for marker in TIMEOUT_MARKERS):
        return NavigationTimeoutError(f"Navigation timeout: {error_message}")

    if isinstance(exception, (ConnectionError, BrokenPipeError)):
        return EngineCrashedError(f"Connection error: {error_message}")

    return CaptureFailedError(f"Capture failed: {error_message or type(exception).__name__}")

