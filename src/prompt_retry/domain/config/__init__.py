"""Configuration models with Pydantic validation."""

from prompt_retry.domain.config.app import AppConfig
from prompt_retry.domain.config.providers import ModelsConfig, ProviderConfig
from prompt_retry.domain.config.resolver import get_retry_config
from prompt_retry.domain.config.retry import RetryConfig

__all__ = [
    "AppConfig",
    "ModelsConfig",
    "ProviderConfig",
    "RetryConfig",
    "get_retry_config",
]
