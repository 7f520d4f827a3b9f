"""Base LLM provider interface"""

from abc import ABC, abstractmethod
from typing import Any, Dict


class LLMProvider(ABC):
    """Async LLM call used as the operation wrapped by ``run_with_retry``"""

    def __init__(self, config: Dict[str, Any]):
        """Store and validate provider configuration

        Raises:
            ValueError: If configuration is invalid
        """
        self.config = config
        self._validate_config(config)

    @abstractmethod
    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Reject unusable configuration with ValueError"""

    @abstractmethod
    async def generate(self, prompt: str, **kwargs) -> str:
        """Return the completion for ``prompt``; provider errors propagate as raised"""
