"""
Configuration management for the task scraper.

This module uses pydantic-settings to manage the process-wide knobs of the
fetch engine:
- Request and response body ceilings
- Retry policy of the default transport
- Transport defaults (timeout, fixed or rotating User-Agent)
- Logging

Configuration is loaded from environment variables (``SCRAPER_`` prefix) or a
``.env`` file.
"""
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskscraper import DEFAULT_MAX_BODY_SIZE, __version__

DEFAULT_USER_AGENT = f"Task-Scraper/{__version__}"


class LogLevel(str, Enum):
    """Log levels supported by the application."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ScraperSettings(BaseSettings):
    """Settings for a scraper instance and its default transport."""
    # Body ceilings
    max_request_body_size: int = DEFAULT_MAX_BODY_SIZE
    max_response_body_size: int = DEFAULT_MAX_BODY_SIZE

    # Transport
    user_agent: str = DEFAULT_USER_AGENT
    rotate_user_agent: bool = False  # random common browser User-Agent per request
    request_timeout: float = 30.0  # seconds

    # Retry policy (0 disables retries)
    retry_max_attempts: int = Field(default=3, ge=0, le=10)
    retry_min_delay: float = Field(default=1.0, ge=0)  # seconds
    retry_max_delay: float = Field(default=30.0, ge=0)  # seconds

    # Logging
    log_level: LogLevel = LogLevel.INFO
    structured_logging: bool = True

    model_config = SettingsConfigDict(
        env_prefix="SCRAPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_default=True,
    )

    @field_validator("max_request_body_size", "max_response_body_size")
    @classmethod
    def _default_non_positive_sizes(cls, v: int) -> int:
        """Non-positive ceilings fall back to the default instead of failing."""
        if v <= 0:
            return DEFAULT_MAX_BODY_SIZE
        return v

    @field_validator("retry_max_delay")
    @classmethod
    def _max_delay_not_below_min(cls, v: float, info) -> float:
        min_delay = info.data.get("retry_min_delay")
        if min_delay is not None and v < min_delay:
            return min_delay
        return v


def load_settings() -> ScraperSettings:
    """Load settings from environment variables and .env file."""
    return ScraperSettings()
