"""Domain models"""

from prompt_retry.domain.models.classification import ErrorClassification
from prompt_retry.domain.models.retry_attempt import RetryAttemptRecord

__all__ = ["ErrorClassification", "RetryAttemptRecord"]
