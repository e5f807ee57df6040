"""Test doubles shared across the suite."""

import asyncio
from io import BytesIO
from typing import Optional

from PIL import Image

from snapthumb.models.capture_strategy import CaptureStrategy


def make_png(width: int = 1280, height: int = 800, color=(20, 120, 200)) -> bytes:
    """Raw PNG bytes shaped like a browser screenshot."""
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeEngine:
    """In-memory CaptureEngine.

    Args:
        image: Bytes returned by a successful capture
        failures: strategy name -> exceptions raised by successive calls
            (consumed in order; once empty, captures succeed)
        always: strategy name -> exception raised on every call
        hang: Sleep forever inside capture (for hard-ceiling tests)
        cleanup_delay: Seconds spent releasing the page once capture ends,
            however it ends (a browser that is slow to close its context)
    """

    def __init__(
        self,
        image: Optional[bytes] = None,
        failures: Optional[dict[str, list[BaseException]]] = None,
        always: Optional[dict[str, BaseException]] = None,
        hang: bool = False,
        cleanup_delay: float = 0.0,
    ):
        self.image = make_png() if image is None else image
        self.failures = {name: list(errors) for name, errors in (failures or {}).items()}
        self.always = dict(always or {})
        self.hang = hang
        self.cleanup_delay = cleanup_delay
        self.calls: list[tuple[str, str]] = []
        self.page_scripts: list[Optional[str]] = []
        self.restarts = 0
        self.closed = 0
        self.is_running = False

    async def capture(
        self, url: str, strategy: CaptureStrategy, page_script: Optional[str] = None
    ) -> bytes:
        self.calls.append((url, strategy.name))
        self.page_scripts.append(page_script)
        self.is_running = True
        try:
            if self.hang:
                await asyncio.sleep(3600)
            if strategy.name in self.always:
                raise self.always[strategy.name]
            pending = self.failures.get(strategy.name)
            if pending:
                raise pending.pop(0)
            return self.image
        finally:
            if self.cleanup_delay:
                await asyncio.sleep(self.cleanup_delay)

    async def restart(self) -> None:
        self.restarts += 1
        self.is_running = False

    async def close(self) -> None:
        self.closed += 1
        self.is_running = False

    def strategies_called(self) -> list[str]:
        return [name for _, name in self.calls]
