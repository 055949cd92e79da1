"""delayq configuration with sensible defaults for development."""

from __future__ import annotations

import logging
from datetime import timedelta
from enum import StrEnum
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_CONCURRENCY = 10


class LogFormat(StrEnum):
    """Output format for the root log handler."""

    TEXT = "text"
    JSON = "json"


def _seconds(value: Any) -> Any:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return value


class Settings(BaseSettings):
    """
    Process-wide delayq settings.

    All settings can be overridden via environment variables with DELAYQ_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="DELAYQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False
    log_format: LogFormat = LogFormat.TEXT

    # Redis URL for the backing store
    redis_url: str = "redis://localhost:6379"

    # Queue defaults
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    handler_timeout: float | None = Field(default=None, gt=0)
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)


class QueueConfig(BaseModel):
    """
    Configuration for one delay queue instance.

    Built once before the queue starts. Durations are seconds and also accept
    `timedelta`.

    Attributes:
        queue_name: Key prefix for the queue's schedule index and payload table.
        poll_interval: Seconds between poller ticks.
        handler_timeout: Deadline for a single handler call (None = unbounded).
        concurrency: Maximum simultaneous handler executions.
        logger: Logger for queue events (defaults to each module's logger).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    queue_name: str = Field(min_length=1)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    handler_timeout: float | None = Field(default=None, gt=0)
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    logger: logging.Logger | logging.LoggerAdapter | None = None

    @field_validator("poll_interval", "handler_timeout", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> Any:
        return _seconds(value)

    @classmethod
    def from_settings(
        cls,
        queue_name: str,
        settings: Settings | None = None,
        **overrides: Any,
    ) -> QueueConfig:
        """
        Build a config from process settings, with explicit overrides.

        Overrides are applied as given, so `handler_timeout=None` clears a
        timeout set through DELAYQ_HANDLER_TIMEOUT.
        """
        settings = settings or get_settings()
        values: dict[str, Any] = {
            "queue_name": queue_name,
            "poll_interval": settings.poll_interval,
            "handler_timeout": settings.handler_timeout,
            "concurrency": settings.concurrency,
        }
        values.update(overrides)
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
