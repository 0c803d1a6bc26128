"""Abstract LLM provider interface."""

from abc import ABC, abstractmethod

from stateset.llm.types import CompletionResponse, Message


class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g., 'anthropic')."""
        ...

    @property
    @abstractmethod
    def default_model(self) -> str:
        """Default model for this provider."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> CompletionResponse:
        """Generate a completion.

        Args:
            messages: Conversation history, ending with the new user message.
            model: Model to use (defaults to provider's default).
            system: System prompt.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature. None = use API default.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None
