"""LLM provider factory."""

from __future__ import annotations

from typing import Literal

from pydantic import SecretStr

from stateset.llm.anthropic import AnthropicProvider
from stateset.llm.base import LLMProvider

ProviderName = Literal["anthropic"]


def create_llm_provider(
    provider: ProviderName,
    api_key: str | SecretStr | None = None,
) -> LLMProvider:
    """Create a single LLM provider instance.

    Raises:
        ValueError: If provider name is unknown.
    """
    key = api_key.get_secret_value() if isinstance(api_key, SecretStr) else api_key

    if provider == "anthropic":
        return AnthropicProvider(api_key=key)

    raise ValueError(f"Unknown LLM provider: {provider}")
