"""
prompt-retry - retry-with-backoff for LLM provider calls.

Classifies provider errors as transient (rate limits, overloads) or fatal and
re-invokes async LLM calls with exponential backoff.
"""

from prompt_retry.domain.classifiers.error_classifier import classify_error
from prompt_retry.domain.config import AppConfig, RetryConfig, get_retry_config
from prompt_retry.domain.models import ErrorClassification, RetryAttemptRecord
from prompt_retry.exceptions import ConfigurationError, RetryCancelledError
from prompt_retry.infrastructure.retry import (
    calculate_backoff_ms,
    run_with_retry,
    with_prompt_retry,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AppConfig",
    "ConfigurationError",
    "ErrorClassification",
    "RetryAttemptRecord",
    "RetryCancelledError",
    "RetryConfig",
    "calculate_backoff_ms",
    "classify_error",
    "get_retry_config",
    "run_with_retry",
    "with_prompt_retry",
]
