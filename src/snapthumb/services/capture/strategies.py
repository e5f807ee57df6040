"""Ordered capture strategies with per-strategy retry and strategy-level fallback.

Strategies run in order until one yields an image. Each strategy is retried on
transient failures (navigation timeout, detachment, engine crash) with
exponential backoff; a crash also forces the engine to relaunch before the next
attempt. Permanent failures skip straight to the next strategy.
"""

import time
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from snapthumb.models.capture_strategy import CaptureStrategy
from snapthumb.services.capture.engine import CaptureEngine
from snapthumb.services.exceptions import (
    CaptureFailedError,
    EngineCrashedError,
    ServiceError,
    TransientError,
    classify_engine_error,
)

logger = structlog.get_logger(__name__)

# Generic overlay removal: cookie banners, consent modals, sign-in walls and
# high z-index fixed layers. Matches attribute/class substrings, never site rules.
OVERLAY_REMOVAL_SCRIPT = """
() => {
  const patterns = [
    'cookie', 'consent', 'gdpr', 'onetrust', 'didomi', 'privacy-banner',
    'modal', 'overlay', 'popup', 'lightbox', 'backdrop', 'paywall',
    'authwall', 'auth-wall', 'sign-in', 'signin', 'login-wall', 'newsletter', 'subscribe'
  ];
  const matches = (el) => {
    const haystack = [
      el.id || '',
      typeof el.className === 'string' ? el.className : '',
      el.getAttribute('aria-label') || '',
      el.getAttribute('data-testid') || ''
    ].join(' ').toLowerCase();
    return patterns.some((p) => haystack.includes(p));
  };
  let removed = 0;
  document.querySelectorAll('[role="dialog"], [aria-modal="true"]').forEach((el) => {
    el.remove();
    removed++;
  });
  const viewportArea = window.innerWidth * window.innerHeight;
  document.querySelectorAll('body *').forEach((el) => {
    if (!el.isConnected) return;
    const style = window.getComputedStyle(el);
    const positioned = style.position === 'fixed' || style.position === 'sticky';
    if (!positioned) return;
    const z = parseInt(style.zIndex, 10) || 0;
    const rect = el.getBoundingClientRect();
    const coverage = (rect.width * rect.height) / viewportArea;
    if (matches(el) || (z >= 1000 && coverage > 0.25)) {
      el.remove();
      removed++;
    }
  });
  for (const root of [document.documentElement, document.body]) {
    if (!root) continue;
    root.style.setProperty('overflow', 'auto', 'important');
    root.classList.remove('modal-open', 'overflow-hidden', 'no-scroll');
  }
  return removed;
}
"""


@dataclass
class CaptureOutcome:
    """Raw image produced by a strategy."""

    image: bytes
    strategy: CaptureStrategy
    attempts: int


class CaptureStrategySet:
    """Runs capture strategies in order against one rendering engine."""

    def __init__(
        self,
        engine: CaptureEngine,
        strategies: Sequence[CaptureStrategy],
        max_attempts: int = 2,
        backoff_base: float = 1.0,
        backoff_max: float = 8.0,
        page_script: Optional[str] = OVERLAY_REMOVAL_SCRIPT,
    ):
        if not strategies:
            raise ValueError("At least one capture strategy is required")
        self.engine = engine
        self.strategies = list(strategies)
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.page_script = page_script

    async def capture(self, url: str) -> Optional[CaptureOutcome]:
        """Try every strategy in order; return the first image, or None when all fail."""
        for index, strategy in enumerate(self.strategies, start=1):
            try:
                outcome = await self.run_strategy(url, strategy)
            except ServiceError as e:
                logger.warning(
                    "capture.strategy_failed",
                    url=url,
                    strategy=strategy.name,
                    position=index,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                continue

            logger.info(
                "capture.strategy_succeeded",
                url=url,
                strategy=strategy.name,
                position=index,
                attempts=outcome.attempts,
                image_bytes=len(outcome.image),
            )
            return outcome

        logger.warning("capture.exhausted", url=url, strategies=len(self.strategies))
        return None

    async def run_strategy(self, url: str, strategy: CaptureStrategy) -> CaptureOutcome:
        """Run one strategy with retries on transient errors.

        Raises:
            ServiceError: The last classified error once retries are exhausted,
                or the first permanent error
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_exception_type(TransientError),
            reraise=True,
        )
        attempts = 0
        image = b""
        async for attempt in retrying:
            with attempt:
                attempts = attempt.retry_state.attempt_number
                image = await self._attempt(url, strategy, attempts)
        return CaptureOutcome(image=image, strategy=strategy, attempts=attempts)

    async def _attempt(self, url: str, strategy: CaptureStrategy, attempt_number: int) -> bytes:
        start_time = time.monotonic()
        try:
            image = await self.engine.capture(url, strategy, self.page_script)
        except Exception as e:
            classified = classify_engine_error(e)
            logger.info(
                "capture.attempt_failed",
                url=url,
                strategy=strategy.name,
                attempt=attempt_number,
                error_type=type(classified).__name__,
                error_message=str(classified),
                duration_seconds=round(time.monotonic() - start_time, 3),
            )
            if isinstance(classified, EngineCrashedError):
                await self.engine.restart()
            if classified is e:
                raise
            raise classified from e

        if not image:
            raise CaptureFailedError(f"Strategy {strategy.name} returned an empty image")
        return image
