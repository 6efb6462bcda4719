"""
Provider factory for creating LLM provider instances.

Handles provider selection based on configuration and available API keys.
"""

from enum import Enum

from .base import LLMProvider
from .openai import OpenAIProvider, OPENROUTER_BASE_URL


class ProviderType(Enum):
    """Available LLM provider types."""
    OPENROUTER = "openrouter"
    OPENAI = "openai"


def create_provider(
    provider_type: ProviderType | str,
    api_key: str,
    default_model: str | None = None,
    **kwargs,
) -> LLMProvider:
    """
    Create an LLM provider instance.

    Args:
        provider_type: The provider to create (openrouter, openai)
        api_key: API key for the provider
        default_model: Optional default model override
        **kwargs: Additional provider-specific arguments (app_url, app_title)

    Returns:
        Configured LLMProvider instance

    Raises:
        ValueError: If provider_type is unknown
    """
    if isinstance(provider_type, str):
        try:
            provider_type = ProviderType(provider_type.lower())
        except ValueError:
            raise ValueError(
                f"Unknown provider: {provider_type}. "
                f"Available: {[p.value for p in ProviderType]}"
            )

    if provider_type == ProviderType.OPENROUTER:
        return OpenAIProvider(
            api_key=api_key,
            default_model=default_model or "google/gemini-2.5-flash",
            base_url=OPENROUTER_BASE_URL,
            default_headers={
                "HTTP-Referer": kwargs.get("app_url") or "http://localhost",
                "X-Title": kwargs.get("app_title") or "Clarus",
            },
            provider_name="openrouter",
        )
    elif provider_type == ProviderType.OPENAI:
        return OpenAIProvider(
            api_key=api_key,
            default_model=default_model or "gpt-4o-mini",
            provider_name="openai",
        )
    else:
        raise ValueError(f"Unknown provider type: {provider_type}")


def get_provider_from_env(
    openrouter_key: str | None = None,
    openai_key: str | None = None,
    preferred_provider: str | None = None,
    app_url: str | None = None,
) -> LLMProvider | None:
    """
    Create a provider from available environment keys.

    Args:
        openrouter_key: OpenRouter API key (or None if not set)
        openai_key: OpenAI API key (or None if not set)
        preferred_provider: Preferred provider name (openrouter, openai)
        app_url: Public app URL sent to OpenRouter as HTTP-Referer

    Returns:
        Configured LLMProvider or None if no keys available
    """
    providers = {
        ProviderType.OPENROUTER: openrouter_key,
        ProviderType.OPENAI: openai_key,
    }

    if preferred_provider:
        try:
            pref_type = ProviderType(preferred_provider.lower())
            if providers.get(pref_type):
                return create_provider(pref_type, providers[pref_type], app_url=app_url)
        except ValueError:
            pass  # Invalid provider name, fall through to default order

    # Default order: OpenRouter > OpenAI
    for provider_type, api_key in providers.items():
        if api_key:
            return create_provider(provider_type, api_key, app_url=app_url)

    return None
