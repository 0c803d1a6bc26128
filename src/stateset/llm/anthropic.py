"""Anthropic Claude LLM provider."""

import logging
from typing import Any

import anthropic

from stateset.llm.base import LLMProvider
from stateset.llm.retry import RetryConfig, with_retry
from stateset.llm.types import CompletionResponse, Message, Role, TextContent, Usage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider."""

    def __init__(self, api_key: str | None = None, retry: RetryConfig | None = None):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._retry = retry or RetryConfig(max_retries=3)

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return DEFAULT_MODEL

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        return [{"role": msg.role.value, "content": msg.get_text()} for msg in messages]

    def _build_request_kwargs(
        self,
        messages: list[Message],
        model: str | None,
        system: str | None,
        max_tokens: int,
        temperature: float | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": self._convert_messages(messages),
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if system:
            kwargs["system"] = system
        return kwargs

    def _parse_response(self, response: anthropic.types.Message) -> CompletionResponse:
        content = [
            TextContent(text=block.text)
            for block in response.content
            if block.type == "text"
        ]
        usage = response.usage
        return CompletionResponse(
            message=Message(role=Role.ASSISTANT, content=content),
            usage=Usage(
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                cache_read_input_tokens=getattr(usage, "cache_read_input_tokens", None),
                cache_creation_input_tokens=getattr(
                    usage, "cache_creation_input_tokens", None
                ),
            ),
            stop_reason=response.stop_reason,
            model=response.model,
            raw=response.model_dump(),
        )

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> CompletionResponse:
        kwargs = self._build_request_kwargs(messages, model, system, max_tokens, temperature)
        model_name = kwargs["model"]

        async def _make_request() -> anthropic.types.Message:
            logger.debug("llm_request", extra={"llm.model": model_name})
            response = await self._client.messages.create(**kwargs)
            logger.debug(
                "llm_response",
                extra={
                    "llm.model": model_name,
                    "llm.input_tokens": response.usage.input_tokens,
                    "llm.output_tokens": response.usage.output_tokens,
                },
            )
            return response

        response = await with_retry(
            _make_request,
            config=self._retry,
            operation_name=f"Anthropic {model_name}",
        )
        return self._parse_response(response)

    async def aclose(self) -> None:
        await self._client.close()
