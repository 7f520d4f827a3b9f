"""Error classifiers"""

from prompt_retry.domain.classifiers.error_classifier import (
    classify_error,
    extract_error_message,
    extract_status_code,
    get_retry_after_ms,
    is_rate_limit_message,
    is_retryable_error,
    is_retryable_status_code,
)

__all__ = [
    "classify_error",
    "extract_error_message",
    "extract_status_code",
    "get_retry_after_ms",
    "is_rate_limit_message",
    "is_retryable_error",
    "is_retryable_status_code",
]
