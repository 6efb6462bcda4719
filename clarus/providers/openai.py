"""
OpenAI-compatible provider implementation.

Talks to any OpenAI-compatible chat completions endpoint through the
OpenAI SDK. Used for OpenRouter (the default, which fronts Gemini, Claude
and GPT models) and for OpenAI directly.
"""

import openai
from openai import AsyncOpenAI

from .base import LLMProvider, LLMResponse, ProviderCapabilities, ProviderError

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenAIProvider(LLMProvider):
    """
    Chat-completions provider with JSON mode support.
    """

    def __init__(
        self,
        api_key: str,
        default_model: str = "google/gemini-2.5-flash",
        base_url: str | None = None,
        default_headers: dict[str, str] | None = None,
        timeout: float = 120.0,
        provider_name: str = "openai",
    ):
        """
        Initialize the provider.

        Args:
            api_key: API key for the endpoint
            default_model: Default model to use
            base_url: Endpoint base URL (None for api.openai.com)
            default_headers: Extra headers sent with every request
            timeout: Client-side request timeout in seconds
            provider_name: Name reported in logs and usage records
        """
        client_kwargs = {
            "api_key": api_key,
            "base_url": base_url,
            "default_headers": default_headers,
            "timeout": timeout,
            "max_retries": 0,  # fallback across models replaces SDK retries
        }
        self.async_client = AsyncOpenAI(**client_kwargs)
        self._default_model = default_model
        self._name = provider_name

    @property
    def name(self) -> str:
        return self._name

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_system_prompt=True,
            supports_json_mode=True,
            max_context_tokens=128000,
        )

    def _build_request(
        self,
        user_prompt: str,
        system_prompt: str | None,
        model: str | None,
        max_tokens: int,
        temperature: float,
        json_mode: bool,
    ) -> dict:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        kwargs = {
            "model": model or self._default_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    def _to_response(self, response, model: str) -> LLMResponse:
        if not response.choices:
            raise ProviderError(f"No choices returned by {model}")
        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            text=choice.message.content or "",
            model=getattr(response, "model", None) or model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            metadata={
                "finish_reason": choice.finish_reason,
                "provider": self._name,
            }
        )

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
        Generate a completion.

        Args:
            user_prompt: The user message
            system_prompt: Optional system prompt
            model: Model to use (defaults to instance default)
            max_tokens: Maximum response tokens
            temperature: Sampling temperature
            json_mode: Request JSON-formatted response

        Returns:
            LLMResponse with generated text
        """
        kwargs = self._build_request(user_prompt, system_prompt, model, max_tokens, temperature, json_mode)
        try:
            response = await self.async_client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            raise ProviderError(f"{kwargs['model']} returned HTTP {e.status_code}", e.status_code) from e
        except openai.APIError as e:
            raise ProviderError(f"{kwargs['model']} request failed: {e}") from e
        return self._to_response(response, kwargs["model"])
