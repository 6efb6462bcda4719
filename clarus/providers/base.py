"""
Base LLM provider interface.

Defines the abstract interface that all provider implementations must follow.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class ProviderError(Exception):
    """A provider call failed (non-2xx, network error, malformed body)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ProviderCapabilities:
    """Describes what features a provider supports."""
    supports_system_prompt: bool = True
    supports_json_mode: bool = False
    max_context_tokens: int = 128000


@dataclass
class LLMResponse:
    """Standardized response from any LLM provider."""
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    metadata: dict = field(default_factory=dict)


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All provider implementations must inherit from this class and implement
    the required methods, so the analysis pipeline can swap providers and
    tests can substitute a mock.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name (e.g., 'openrouter', 'openai')."""
        pass

    @property
    @abstractmethod
    def capabilities(self) -> ProviderCapabilities:
        """Return the provider's capabilities."""
        pass

    @abstractmethod
    async def complete_async(
        self,
        user_prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion from the model.

        Args:
            user_prompt: The user message/prompt
            system_prompt: Optional system prompt for context
            model: Specific model to use (defaults to provider's default)
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature (0.0 = deterministic)
            json_mode: Request JSON-formatted response if supported

        Returns:
            LLMResponse with the generated text and metadata

        Raises:
            ProviderError: If the provider rejects the request or is unreachable
        """
        pass
