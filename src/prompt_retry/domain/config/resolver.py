"""Resolve the retry policy configured for a provider."""

from collections.abc import Mapping
from typing import Any, Optional, Union

from prompt_retry.domain.config.app import AppConfig
from prompt_retry.domain.config.retry import RetryConfig


def get_retry_config(
    provider: str,
    config: Union[AppConfig, Mapping, None] = None,
) -> Optional[RetryConfig]:
    """Look up ``models.providers[provider].retry``.

    Args:
        provider: Provider id
        config: Application config, a plain nested mapping, or None

    Returns:
        RetryConfig for the provider, or None when retry is not configured
    """
    if config is None:
        return None

    if isinstance(config, AppConfig):
        provider_config = config.models.providers.get(provider)
        return provider_config.retry if provider_config else None

    retry: Any = config
    for key in ("models", "providers", provider, "retry"):
        if not isinstance(retry, Mapping):
            return None
        retry = retry.get(key)
    if retry is None:
        return None
    if isinstance(retry, RetryConfig):
        return retry
    return RetryConfig.model_validate(retry)
