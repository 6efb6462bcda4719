"""
LLM Provider abstraction layer.

Supports OpenAI-compatible endpoints (OpenRouter, OpenAI) behind a unified
interface, plus ordered model fallback for pipeline calls.
"""

from .base import LLMProvider, LLMResponse, ProviderCapabilities, ProviderError
from .openai import OpenAIProvider
from .factory import create_provider, get_provider_from_env, ProviderType
from .fallback import (
    ModelDescriptor,
    AttemptResult,
    AllModelsFailedError,
    CallContext,
    attempt_call,
    build_models,
)

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ProviderCapabilities",
    "ProviderError",
    "OpenAIProvider",
    "create_provider",
    "get_provider_from_env",
    "ProviderType",
    "ModelDescriptor",
    "AttemptResult",
    "AllModelsFailedError",
    "CallContext",
    "attempt_call",
    "build_models",
]
