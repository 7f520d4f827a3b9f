"""Retry attempt model"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RetryAttemptRecord:
    """Diagnostic record of a single scheduled retry.

    One record is produced per retry taken. Records are only used for logging
    and the optional ``on_retry`` hook; they are never returned to the caller.
    """

    attempt: int
    delay_ms: int
    error_message: str
    provider: Optional[str] = None
    model_id: Optional[str] = None

    def describe(self) -> str:
        """Format as a key=value log payload"""
        parts = [f"attempt={self.attempt}", f"delay={self.delay_ms}ms"]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.model_id:
            parts.append(f"model={self.model_id}")
        parts.append(f"error={self.error_message!r}")
        return " ".join(parts)
