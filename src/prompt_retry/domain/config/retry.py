"""Retry configuration model."""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class RetryConfig(BaseModel):
    """Configuration for retrying LLM calls on rate limits and overloads.

    Attributes:
        attempts: Total number of attempts, the first call included
        min_delay_ms: Base delay before the first retry, in milliseconds
        max_delay_ms: Upper bound for any single delay, in milliseconds
        jitter: Random jitter factor (0.0-1.0), applied as +/- fraction of the delay
    """

    attempts: int = Field(3, ge=1)
    min_delay_ms: int = Field(1000, ge=0)  # Allow 0 for tests
    max_delay_ms: int = Field(60000, ge=0)
    jitter: float = Field(0.2, ge=0.0, le=1.0)

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,  # minDelayMs / maxDelayMs
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "RetryConfig":
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("max_delay_ms must be greater than or equal to min_delay_ms")
        return self

    @classmethod
    def default(cls) -> "RetryConfig":
        """Preset for general use."""
        return cls(attempts=3, min_delay_ms=1000, max_delay_ms=60000, jitter=0.2)

    @classmethod
    def rate_limit_recovery(cls) -> "RetryConfig":
        """Preset for providers with tight rate limits (more attempts, longer delays)."""
        return cls(attempts=5, min_delay_ms=5000, max_delay_ms=60000, jitter=0.3)
