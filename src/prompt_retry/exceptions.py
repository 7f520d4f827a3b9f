"""Exceptions raised by prompt-retry itself.

Errors coming from the wrapped operation are never wrapped; these only cover
failures that originate in the retry machinery or its configuration.
"""

from typing import Optional


class RetryCancelledError(Exception):
    """Raised when the cancellation signal fires while waiting to retry."""

    def __init__(
        self,
        message: str = "Retry cancelled",
        *,
        attempt: Optional[int] = None,
        delay_ms: Optional[int] = None,
    ):
        super().__init__(message)
        self.attempt = attempt
        self.delay_ms = delay_ms


class ConfigurationError(Exception):
    """Configuration validation error."""

    pass
