"""LLM providers"""

from prompt_retry.infrastructure.llm.base import LLMProvider
from prompt_retry.infrastructure.llm.mock import MockLLMProvider, MockProviderError

__all__ = ["LLMProvider", "MockLLMProvider", "MockProviderError"]
