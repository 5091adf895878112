"""AI generation backends behind one contract."""

from __future__ import annotations

import os

from feedpress.ai.providers.base import (
    AIProvider,
    GenerationOptions,
    GenerationResponse,
)
from feedpress.models import ProviderName

API_KEY_ENV_VARS: dict[ProviderName, str] = {
    ProviderName.OPENAI: "OPENAI_API_KEY",
    ProviderName.ANTHROPIC: "ANTHROPIC_API_KEY",
    ProviderName.DEEPSEEK: "DEEPSEEK_API_KEY",
    ProviderName.GEMINI: "GEMINI_API_KEY",
}


def env_api_key(provider: ProviderName | str) -> str:
    """Return the provider's API key from the environment, or ``""``."""
    return os.environ.get(API_KEY_ENV_VARS[ProviderName(provider)], "").strip()


def create_provider(
    provider: ProviderName | str,
    *,
    api_key: str,
    model: str,
) -> AIProvider:
    """Create a backend for the given provider name.

    Raises:
        ValueError: If the provider is unknown.
    """
    if isinstance(provider, str):
        provider = ProviderName(provider)

    from feedpress.ai.providers.anthropic import AnthropicProvider
    from feedpress.ai.providers.gemini import GeminiProvider
    from feedpress.ai.providers.openai import DeepSeekProvider, OpenAIProvider

    providers: dict[ProviderName, type[AIProvider]] = {
        ProviderName.OPENAI: OpenAIProvider,
        ProviderName.ANTHROPIC: AnthropicProvider,
        ProviderName.DEEPSEEK: DeepSeekProvider,
        ProviderName.GEMINI: GeminiProvider,
    }

    if provider in providers:
        return providers[provider](api_key=api_key, model=model)

    raise ValueError(f"Unknown AI provider: {provider!r}")


__all__ = [
    "API_KEY_ENV_VARS",
    "AIProvider",
    "GenerationOptions",
    "GenerationResponse",
    "create_provider",
    "env_api_key",
]
