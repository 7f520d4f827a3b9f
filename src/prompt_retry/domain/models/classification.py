"""Error classification result"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ErrorClassification:
    """Outcome of classifying a failed LLM call.

    Attributes:
        retryable: Whether the failure is a transient rate limit or overload
        message: Human-readable message extracted from the error
        retry_after_ms: Provider-suggested delay in milliseconds, if any
    """

    retryable: bool
    message: str
    retry_after_ms: Optional[int] = None
