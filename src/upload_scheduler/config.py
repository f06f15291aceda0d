"""Scheduler configuration loaded from environment variables.

Every value can be overridden with an ``UPLOAD_SCHEDULER_`` prefixed variable
(or a ``.env`` file), e.g. ``UPLOAD_SCHEDULER_CONCURRENCY_LIMIT=2``.
"""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from upload_scheduler.backoff import DEFAULT_BASE_DELAY, DEFAULT_MAX_DELAY, BackoffPolicy


class SchedulerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="UPLOAD_SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    concurrency_limit: int = Field(default=5, ge=1, description="Maximum number of tasks processed at once")
    backoff_base_delay: float = Field(default=DEFAULT_BASE_DELAY, gt=0, description="Finalize retry base delay in seconds")
    backoff_max_delay: float = Field(default=DEFAULT_MAX_DELAY, gt=0, description="Finalize retry delay cap in seconds")
    finalize_max_attempts: int = Field(default=3, ge=1, description="Total finalize attempts, including the first")
    operation_timeout: Optional[float] = Field(default=None, gt=0, description="Timeout for each remote call in seconds, disabled when unset")

    @model_validator(mode="after")
    def check_backoff_bounds(self) -> "SchedulerSettings":
        if self.backoff_max_delay < self.backoff_base_delay:
            raise ValueError("backoff_max_delay must not be lower than backoff_base_delay")
        return self

    @property
    def backoff(self) -> BackoffPolicy:
        return BackoffPolicy(base_delay=self.backoff_base_delay, max_delay=self.backoff_max_delay)
