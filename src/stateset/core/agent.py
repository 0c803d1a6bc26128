"""Session-bound chat agent consumed by the events runner."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from stateset.llm.types import Message, Role, Usage

if TYPE_CHECKING:
    from stateset.config import StatesetConfig
    from stateset.llm import LLMProvider
    from stateset.sessions import SessionStore

logger = logging.getLogger(__name__)

OnUsageCallback = Callable[[Usage], None]


@dataclass
class ChatCallbacks:
    """Hooks invoked while a chat call runs."""

    on_usage: OnUsageCallback | None = None


class EventAgent(Protocol):
    """The agent capability the events runner drives.

    Implementations are not safe for concurrent use: at most one ``chat``
    may be in flight per instance.
    """

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    def set_system_prompt(self, text: str) -> None: ...

    def use_session_store(self, store: SessionStore) -> None: ...

    async def chat(
        self, message: str, callbacks: ChatCallbacks | None = None
    ) -> str: ...


@dataclass
class AgentConfig:
    """Per-agent model settings resolved from ``StatesetConfig``."""

    model: str | None = None
    max_tokens: int = 4096
    temperature: float | None = None
    history_messages: int = 40


class Agent:
    """Single-session agent backed by an ``LLMProvider``.

    The provider is created on ``connect()`` and released on
    ``disconnect()``. Conversation history lives in the attached
    ``SessionStore`` so a reconnected agent resumes where it left off.
    """

    def __init__(
        self,
        provider_factory: Callable[[], LLMProvider],
        config: AgentConfig | None = None,
    ) -> None:
        self._provider_factory = provider_factory
        self._config = config or AgentConfig()
        self._provider: LLMProvider | None = None
        self._store: SessionStore | None = None
        self._system_prompt = ""
        self._in_flight = False

    @property
    def connected(self) -> bool:
        return self._provider is not None

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    async def connect(self) -> None:
        if self._provider is not None:
            return
        self._provider = self._provider_factory()
        logger.debug(
            "agent_connected",
            extra={"session.id": self._store.session_id if self._store else None},
        )

    async def disconnect(self) -> None:
        provider, self._provider = self._provider, None
        if provider is not None:
            await provider.aclose()

    def set_system_prompt(self, text: str) -> None:
        self._system_prompt = text

    def use_session_store(self, store: SessionStore) -> None:
        self._store = store

    async def chat(self, message: str, callbacks: ChatCallbacks | None = None) -> str:
        """Send ``message`` with the session history and return the reply text.

        Raises:
            RuntimeError: If the agent is not connected or another chat is
                already running on this instance.
        """
        if self._provider is None:
            raise RuntimeError("Agent is not connected")
        if self._in_flight:
            raise RuntimeError("Agent does not support concurrent chat calls")

        self._in_flight = True
        try:
            history: list[Message] = []
            if self._store is not None and self._config.history_messages:
                history = await self._store.load_messages(self._config.history_messages)

            user_message = Message(role=Role.USER, content=message)
            response = await self._provider.complete(
                [*history, user_message],
                model=self._config.model,
                system=self._system_prompt or None,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
            )
            text = response.message.get_text()

            if self._store is not None:
                await self._store.append_message(user_message)
                await self._store.append_message(
                    Message(role=Role.ASSISTANT, content=text)
                )

            if callbacks and callbacks.on_usage and response.usage:
                callbacks.on_usage(response.usage)

            return text
        finally:
            self._in_flight = False


def create_agent_factory(
    config: StatesetConfig,
    model_alias: str = "default",
) -> Callable[[str], Agent]:
    """Build a ``session_id -> Agent`` factory from configuration.

    Raises:
        ConfigError: If the model alias is unknown.
    """
    from stateset.llm import create_llm_provider
    from stateset.sessions import SessionStore

    model = config.get_model(model_alias)
    api_key = config.resolve_api_key()
    agent_config = AgentConfig(
        model=model.model,
        max_tokens=model.max_tokens,
        temperature=model.temperature,
        history_messages=model.history_messages,
    )

    def factory(session_id: str) -> Agent:
        agent = Agent(
            lambda: create_llm_provider(model.provider, api_key),
            agent_config,
        )
        agent.use_session_store(SessionStore(session_id))
        return agent

    return factory
