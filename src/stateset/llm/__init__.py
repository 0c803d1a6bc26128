"""LLM provider abstraction layer."""

from stateset.llm.anthropic import AnthropicProvider
from stateset.llm.base import LLMProvider
from stateset.llm.registry import ProviderName, create_llm_provider
from stateset.llm.retry import RetryConfig, is_retryable_error, with_retry
from stateset.llm.types import (
    CompletionResponse,
    Message,
    Role,
    TextContent,
    Usage,
)

__all__ = [
    "AnthropicProvider",
    "CompletionResponse",
    "LLMProvider",
    "Message",
    "ProviderName",
    "RetryConfig",
    "Role",
    "TextContent",
    "Usage",
    "create_llm_provider",
    "is_retryable_error",
    "with_retry",
]
