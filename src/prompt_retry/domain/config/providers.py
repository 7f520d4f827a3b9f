"""Per-provider model configuration."""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from prompt_retry.domain.config.retry import RetryConfig


class ProviderConfig(BaseModel):
    """Configuration for a single LLM provider.

    Attributes:
        retry: Retry policy for calls to this provider (None disables retry)
    """

    retry: Optional[RetryConfig] = None

    model_config = ConfigDict(extra="forbid")


class ModelsConfig(BaseModel):
    """Provider configurations keyed by provider id."""

    providers: Dict[str, ProviderConfig] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")
