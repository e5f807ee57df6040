"""Rendering engine controller: one long-lived headless Chromium driven by Playwright.

The controller is a thin, restartable resource wrapper. It launches the browser
lazily, hands out one fresh browser context per capture (so concurrent or
consecutive captures never share tabs), and forgets its handle as soon as the
browser disconnects so the next call relaunches. It never retries; retry and
fallback policy belongs to the capture strategy set.
"""

import asyncio
import os
import shutil
from typing import Optional, Protocol

import structlog
from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from snapthumb.core.config import Settings
from snapthumb.models.capture_strategy import CaptureStrategy
from snapthumb.services.exceptions import (
    EngineCrashedError,
    EngineLaunchError,
    ServiceError,
    classify_engine_error,
)

logger = structlog.get_logger(__name__)

# Well-known browser locations, checked in order when no explicit path is configured.
CHROMIUM_CANDIDATE_PATHS = (
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "google-chrome-stable",
    "google-chrome",
    "chromium",
    "chromium-browser",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--disable-extensions",
    "--mute-audio",
    "--autoplay-policy=no-user-gesture-required",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class CaptureEngine(Protocol):
    """Seam the capture strategies depend on; tests substitute a fake."""

    async def capture(
        self, url: str, strategy: CaptureStrategy, page_script: Optional[str] = None
    ) -> bytes: ...

    async def restart(self) -> None: ...

    async def close(self) -> None: ...


def resolve_executable_path(configured: Optional[str] = None) -> Optional[str]:
    """Pick the browser binary: configured path, a known install, or Playwright's bundle.

    Returns:
        Absolute path to a browser executable, or None to use Playwright's
        bundled Chromium.
    """
    if configured:
        return configured
    for candidate in CHROMIUM_CANDIDATE_PATHS:
        if os.path.isabs(candidate):
            if os.path.exists(candidate):
                return candidate
        else:
            found = shutil.which(candidate)
            if found:
                return found
    return None


class RenderingEngine:
    """Owns a single lazily launched Chromium browser."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    def _on_disconnected(self, browser: Browser) -> None:
        if browser is self._browser:
            logger.warning("engine.disconnected")
            self._browser = None

    async def ensure_running(self) -> Browser:
        """Launch the browser if there is no connected instance.

        Raises:
            EngineLaunchError: If Playwright cannot start the browser
        """
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            # A stale handle from a crashed browser is dropped before relaunch
            await self._shutdown()

            executable_path = resolve_executable_path(self.settings.browser_executable_path)
            logger.info(
                "engine.launching",
                executable_path=executable_path or "bundled",
                headless=self.settings.browser_headless,
            )
            try:
                self._playwright = await async_playwright().start()
                browser = await self._playwright.chromium.launch(
                    headless=self.settings.browser_headless,
                    executable_path=executable_path,
                    args=BROWSER_ARGS,
                    timeout=self.settings.browser_launch_timeout_ms,
                )
            except PlaywrightError as e:
                await self._shutdown()
                raise EngineLaunchError(f"Browser launch failed: {e}") from e
            except OSError as e:
                await self._shutdown()
                raise EngineLaunchError(f"Browser launch failed: {e}") from e

            browser.on("disconnected", self._on_disconnected)
            self._browser = browser
            logger.info("engine.launched", version=browser.version)
            return browser

    async def capture(
        self,
        url: str,
        strategy: CaptureStrategy,
        page_script: Optional[str] = None,
    ) -> bytes:
        """Navigate to url with the strategy's viewport and wait policy, then screenshot.

        Args:
            url: Page to capture
            strategy: Viewport, wait condition, settle delay and timeout
            page_script: Optional JavaScript evaluated after settling, before the
                screenshot (best effort; failures are logged and ignored)

        Returns:
            PNG bytes of the visible viewport

        Raises:
            ServiceError: Classified navigation/engine failure
        """
        browser = await self.ensure_running()

        try:
            context = await browser.new_context(
                viewport=strategy.viewport,
                device_scale_factor=1,
                user_agent=USER_AGENT,
                java_script_enabled=True,
                accept_downloads=False,
                ignore_https_errors=True,
            )
        except PlaywrightError as e:
            raise self._handle_failure(e) from e

        try:
            page = await context.new_page()
            page.set_default_timeout(strategy.timeout_ms)

            response = await page.goto(
                url,
                wait_until=strategy.wait_until,
                timeout=strategy.timeout_ms,
            )
            if response is not None and response.status >= 400:
                logger.info("engine.http_error_page", url=url, status=response.status)

            if strategy.settle_ms:
                await page.wait_for_timeout(strategy.settle_ms)

            if page_script:
                try:
                    await page.evaluate(page_script)
                except PlaywrightError as e:
                    logger.debug("engine.page_script_failed", url=url, error_message=str(e))

            return await page.screenshot(
                type="png",
                full_page=False,
                timeout=strategy.timeout_ms,
            )

        except PlaywrightError as e:
            raise self._handle_failure(e) from e

        finally:
            try:
                await asyncio.wait_for(
                    context.close(), timeout=self.settings.browser_cleanup_timeout_seconds
                )
            except PlaywrightError:
                # Context dies with the browser; nothing left to release
                pass
            except asyncio.TimeoutError:
                logger.warning("engine.context_close_timeout", url=url)

    def _handle_failure(self, exc: Exception) -> ServiceError:
        classified = classify_engine_error(exc)
        if isinstance(classified, EngineCrashedError) or not self.is_running:
            # Failed control call on a dead browser: forget it so the next call relaunches
            self._browser = None
            if not isinstance(classified, EngineCrashedError):
                classified = EngineCrashedError(str(classified))
        return classified

    async def restart(self) -> None:
        """Force re-creation of the browser process on next use."""
        async with self._lock:
            logger.info("engine.restarting")
            await self._shutdown()

    async def close(self) -> None:
        async with self._lock:
            await self._shutdown()
            logger.info("engine.closed")

    async def _shutdown(self) -> None:
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        timeout = self.settings.browser_cleanup_timeout_seconds
        if browser is not None:
            try:
                await asyncio.wait_for(browser.close(), timeout=timeout)
            except PlaywrightError as e:
                logger.debug("engine.close_failed", error_message=str(e))
            except asyncio.TimeoutError:
                logger.warning("engine.close_timeout", timeout_seconds=timeout)
        if playwright is not None:
            try:
                await asyncio.wait_for(playwright.stop(), timeout=timeout)
            except PlaywrightError as e:
                logger.debug("engine.playwright_stop_failed", error_message=str(e))
            except asyncio.TimeoutError:
                logger.warning("engine.playwright_stop_timeout", timeout_seconds=timeout)
