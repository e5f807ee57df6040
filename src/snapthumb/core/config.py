"""Application configuration using Pydantic BaseSettings."""

import logging
from pathlib import Path

import structlog
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from snapthumb.models.capture_strategy import DEFAULT_STRATEGIES, CaptureStrategy

# Category -> (gradient start, gradient end). Keys match the catalog's built-in categories.
DEFAULT_CATEGORY_COLORS: dict[str, tuple[str, str]] = {
    "AI & Machine Learning": ("#8B5CF6", "#5B21B6"),
    "Web Development": ("#3B82F6", "#1E40AF"),
    "Design": ("#EC4899", "#9D174D"),
    "Productivity": ("#10B981", "#047857"),
    "Marketing": ("#F59E0B", "#B45309"),
    "Business": ("#EF4444", "#991B1B"),
    "Education": ("#06B6D4", "#0E7490"),
    "Technology": ("#6366F1", "#3730A3"),
    "default": ("#6B7280", "#374151"),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    cors_origins: str = Field(default="http://localhost:5173", alias="CORS_ORIGINS")

    # Artifact storage
    artifact_dir: Path = Field(default=Path("data/thumbnails"), alias="ARTIFACT_DIR")
    artifact_url_prefix: str = Field(default="/thumbnails", alias="ARTIFACT_URL_PREFIX")

    # Canonical thumbnail format
    thumbnail_width: int = Field(default=640, alias="THUMBNAIL_WIDTH")
    thumbnail_height: int = Field(default=360, alias="THUMBNAIL_HEIGHT")
    thumbnail_quality: int = Field(default=85, alias="THUMBNAIL_QUALITY")

    # Job processing
    job_timeout_seconds: float = Field(default=300.0, alias="JOB_TIMEOUT_SECONDS")
    job_cancel_grace_seconds: float = Field(default=1.0, alias="JOB_CANCEL_GRACE_SECONDS")
    job_retention_seconds: float = Field(default=3600.0, alias="JOB_RETENTION_SECONDS")
    worker_idle_poll_seconds: float = Field(default=5.0, alias="WORKER_IDLE_POLL_SECONDS")

    # Capture strategies (JSON list in the environment)
    capture_strategies: list[CaptureStrategy] = Field(
        default_factory=lambda: list(DEFAULT_STRATEGIES), alias="CAPTURE_STRATEGIES"
    )
    strategy_max_attempts: int = Field(default=2, alias="STRATEGY_MAX_ATTEMPTS")
    retry_backoff_seconds: float = Field(default=1.0, alias="RETRY_BACKOFF_SECONDS")
    retry_backoff_max_seconds: float = Field(default=8.0, alias="RETRY_BACKOFF_MAX_SECONDS")

    # Rendering engine
    browser_executable_path: str | None = Field(default=None, alias="BROWSER_EXECUTABLE_PATH")
    browser_headless: bool = Field(default=True, alias="BROWSER_HEADLESS")
    browser_launch_timeout_ms: int = Field(default=90_000, alias="BROWSER_LAUNCH_TIMEOUT_MS")
    browser_cleanup_timeout_seconds: float = Field(
        default=5.0, alias="BROWSER_CLEANUP_TIMEOUT_SECONDS"
    )

    # Synthesis
    title_max_length: int = Field(default=50, alias="TITLE_MAX_LENGTH")
    category_colors: dict[str, tuple[str, str]] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_COLORS), alias="CATEGORY_COLORS"
    )
    font_path: str | None = Field(default=None, alias="FONT_PATH")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def thumbnail_size(self) -> tuple[int, int]:
        return (self.thumbnail_width, self.thumbnail_height)

    @field_validator("thumbnail_quality")
    @classmethod
    def validate_quality(cls, v: int) -> int:
        if not 1 <= v <= 95:
            raise ValueError("THUMBNAIL_QUALITY must be between 1 and 95")
        return v

    @field_validator("thumbnail_width", "thumbnail_height", "strategy_max_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @model_validator(mode="after")
    def validate_required_config(self) -> "Settings":
        """Validate cross-field configuration on startup.

        Fails fast with clear error messages if the capture or synthesis
        configuration cannot work.
        """
        problems = []

        if not self.capture_strategies:
            problems.append("CAPTURE_STRATEGIES: at least one capture strategy is required")

        if "default" not in self.category_colors:
            problems.append("CATEGORY_COLORS: a 'default' entry is required")

        if self.job_timeout_seconds <= 0:
            problems.append("JOB_TIMEOUT_SECONDS: must be greater than zero")

        if self.job_cancel_grace_seconds < 0:
            problems.append("JOB_CANCEL_GRACE_SECONDS: must not be negative")

        if self.browser_cleanup_timeout_seconds <= 0:
            problems.append("BROWSER_CLEANUP_TIMEOUT_SECONDS: must be greater than zero")

        if self.title_max_length < 4:
            problems.append("TITLE_MAX_LENGTH: must leave room for the ellipsis (>= 4)")

        if problems:
            error_msg = "CRITICAL: Invalid thumbnail configuration:\n\n" + "\n".join(
                f"  - {p}" for p in problems
            )
            raise ValueError(error_msg)

        return self


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        # JSON output for production (log aggregation)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        # Console output for development (human-readable)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
