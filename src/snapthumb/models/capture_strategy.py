"""CaptureStrategy entity - one attempt profile for capturing a page."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

WaitUntil = Literal["networkidle", "load", "domcontentloaded", "commit"]


class CaptureStrategy(BaseModel):
    """Viewport, navigation-completion heuristic, settle delay and timeout for one attempt."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=50)
    viewport_width: int = Field(gt=0, le=4096)
    viewport_height: int = Field(gt=0, le=4096)
    wait_until: WaitUntil = "load"
    settle_ms: int = Field(default=1000, ge=0)
    timeout_ms: int = Field(default=30_000, gt=0)

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}


# Ordered from highest fidelity to most resilient.
DEFAULT_STRATEGIES: tuple[CaptureStrategy, ...] = (
    CaptureStrategy(
        name="high_fidelity",
        viewport_width=2048,
        viewport_height=1536,
        wait_until="networkidle",
        settle_ms=3000,
        timeout_ms=45_000,
    ),
    CaptureStrategy(
        name="standard",
        viewport_width=1920,
        viewport_height=1080,
        wait_until="load",
        settle_ms=2000,
        timeout_ms=30_000,
    ),
    CaptureStrategy(
        name="resilient",
        viewport_width=1600,
        viewport_height=1200,
        wait_until="domcontentloaded",
        settle_ms=1000,
        timeout_ms=15_000,
    ),
)
