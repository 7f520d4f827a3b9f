"""Mock LLM provider for testing and simulating provider failures"""

import asyncio
from typing import Any, Dict, Optional

from prompt_retry.infrastructure.llm.base import LLMProvider


class MockProviderError(Exception):
    """Error raised by the mock provider, shaped like an SDK status error"""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.retry_after = retry_after


class MockLLMProvider(LLMProvider):
    """Mock LLM provider that returns predefined responses"""

    def __init__(self, config: Dict[str, Any] = None):
        """Initialize mock provider

        Args:
            config: Optional configuration with:
                - delay: Simulated API delay in seconds (default: 0)
                - responses: Dict mapping prompts to responses
                - failures: Number of initial calls that fail (default: 0)
                - error: Message of the simulated failure
                - status: Optional HTTP status attached to the failure
                - retry_after: Optional retry hint in seconds attached to the failure
        """
        if config is None:
            config = {}
        super().__init__(config)
        self.delay = config.get("delay", 0)
        self.responses = config.get("responses", {})
        self.failures = config.get("failures", 0)
        self.error = config.get("error", "429 Too Many Requests")
        self.status = config.get("status")
        self.retry_after = config.get("retry_after")
        self.calls = 0

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate mock provider configuration"""
        if "delay" in config and not isinstance(config["delay"], (int, float)):
            raise ValueError("delay must be a number")
        if "delay" in config and config["delay"] < 0:
            raise ValueError("delay must be non-negative")
        if "failures" in config and (
            not isinstance(config["failures"], int) or config["failures"] < 0
        ):
            raise ValueError("failures must be a non-negative integer")

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate mock response, failing the first ``failures`` calls

        Raises:
            MockProviderError: While simulated failures remain
        """
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.calls <= self.failures:
            raise MockProviderError(self.error, status=self.status, retry_after=self.retry_after)

        if prompt in self.responses:
            return self.responses[prompt]
        return "Mock LLM response"
