"""Main application configuration model."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from prompt_retry.domain.config.providers import ModelsConfig


class AppConfig(BaseModel):
    """Main application configuration.

    This is the root configuration model that aggregates all configuration sections.
    Validation is performed at load time to fail fast on configuration errors.

    Attributes:
        default_provider: Provider id used when none is given explicitly
        models: Model and provider configuration
    """

    default_provider: Optional[str] = None
    models: ModelsConfig = Field(default_factory=ModelsConfig)

    model_config = ConfigDict(
        validate_assignment=True,  # Validate on attribute assignment
        extra="forbid",  # Reject unknown fields
        json_schema_extra={
            "example": {
                "default_provider": "anthropic",
                "models": {
                    "providers": {
                        "anthropic": {
                            "retry": {
                                "attempts": 5,
                                "minDelayMs": 5000,
                                "maxDelayMs": 60000,
                                "jitter": 0.3,
                            },
                        },
                        "openai": {
                            "retry": {
                                "attempts": 3,
                                "minDelayMs": 1000,
                                "maxDelayMs": 60000,
                                "jitter": 0.2,
                            },
                        },
                    },
                },
            }
        },
    )
