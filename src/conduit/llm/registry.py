"""Model backend factory."""

from __future__ import annotations

from typing import Literal

from pydantic import SecretStr

from conduit.llm.anthropic import AnthropicProvider
from conduit.llm.base import LLMProvider
from conduit.llm.openai import OpenAIProvider

ProviderName = Literal["anthropic", "openai"]


def create_llm_provider(
    provider: ProviderName,
    api_key: str | SecretStr | None = None,
) -> LLMProvider:
    """Create a single model backend instance.

    Raises:
        ValueError: If provider name is unknown.
    """
    key = api_key.get_secret_value() if isinstance(api_key, SecretStr) else api_key

    if provider == "anthropic":
        return AnthropicProvider(api_key=key)
    if provider == "openai":
        return OpenAIProvider(api_key=key)

    raise ValueError(f"Unknown LLM provider: {provider}")
