"""OutboxSettings — tuning knobs shared by the processor, cleaner and worker."""

from __future__ import annotations

from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field


class OutboxSettings(BaseModel):
    """Configuration for outbox dispatch, retry and retention.

    Retry delays follow ``base * multiplier ** min(attempt - 1, max_exponent)``.
    With the default ``retry_base_delay_seconds=0`` a failed message is due
    again on the very next cycle.
    """

    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(default=50, ge=1)
    lease_seconds: float = Field(default=30.0, gt=0)

    max_attempts: int = Field(default=5, ge=1)
    retry_base_delay_seconds: float = Field(default=0.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1)
    retry_max_exponent: int = Field(default=6, ge=0)

    poll_interval: float = Field(default=5.0, gt=0)
    cleanup_interval: float = Field(default=86_400.0, gt=0)
    days_to_keep: int = Field(default=7, ge=0)

    @property
    def lease(self) -> timedelta:
        return timedelta(seconds=self.lease_seconds)

    def retry_delay(self, attempt: int) -> timedelta:
        """Delay before the next try after *attempt* failed attempts."""
        if attempt < 1 or self.retry_base_delay_seconds == 0:
            return timedelta(0)
        exponent = min(attempt - 1, self.retry_max_exponent)
        return timedelta(
            seconds=self.retry_base_delay_seconds * (self.retry_multiplier**exponent)
        )
