"""Shared test fixtures and factories."""

import asyncio
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from stateset.config.paths import ENV_VAR, get_stateset_home
from stateset.core.agent import ChatCallbacks
from stateset.events.results import EventResultLogger
from stateset.llm.base import LLMProvider
from stateset.llm.types import CompletionResponse, Message, Role, Usage

# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def stateset_home(tmp_path: Path, monkeypatch) -> Path:
    """Point STATESET_HOME at a per-test directory."""
    home = tmp_path / "stateset-home"
    monkeypatch.setenv(ENV_VAR, str(home))
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    get_stateset_home.cache_clear()
    yield get_stateset_home()
    get_stateset_home.cache_clear()


@pytest.fixture
def events_dir(tmp_path: Path) -> Path:
    return tmp_path / "events"


@pytest.fixture
def results(tmp_path: Path) -> EventResultLogger:
    return EventResultLogger(tmp_path / "events-log" / "log.jsonl")


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})


# =============================================================================
# Agent Fakes
# =============================================================================


class FakeAgent:
    """In-memory agent backend that records every call."""

    def __init__(
        self,
        session_id: str = "default",
        *,
        response: str | Callable[[str], str] = "ok",
        delay: float = 0.0,
        fail_on: str | None = None,
        usage: Usage | None = None,
        disconnect_delay: float = 0.0,
    ):
        self.session_id = session_id
        self.response = response
        self.delay = delay
        self.fail_on = fail_on
        self.usage = usage
        self.disconnect_delay = disconnect_delay
        self.connected = False
        self.connect_count = 0
        self.disconnect_count = 0
        self.system_prompts: list[str] = []
        self.messages: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: asyncio.Event | None = None
        self.store = None

    async def connect(self) -> None:
        self.connect_count += 1
        self.connected = True

    async def disconnect(self) -> None:
        if self.disconnect_delay:
            await asyncio.sleep(self.disconnect_delay)
        self.disconnect_count += 1
        self.connected = False

    def set_system_prompt(self, text: str) -> None:
        self.system_prompts.append(text)

    def use_session_store(self, store) -> None:
        self.store = store

    async def chat(self, message: str, callbacks: ChatCallbacks | None = None) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            self.messages.append(message)
            if self.fail_on is not None and self.fail_on in message:
                raise RuntimeError("chat failed")
            if callbacks and callbacks.on_usage and self.usage:
                callbacks.on_usage(self.usage)
            if callable(self.response):
                return self.response(message)
            return self.response
        finally:
            self.in_flight -= 1


class FakeAgentFactory:
    """``session_id -> FakeAgent`` factory that remembers what it built."""

    def __init__(self, **agent_kwargs):
        self.agent_kwargs = agent_kwargs
        self.created: list[FakeAgent] = []

    def __call__(self, session_id: str) -> FakeAgent:
        agent = FakeAgent(session_id, **self.agent_kwargs)
        self.created.append(agent)
        return agent

    def for_session(self, session_id: str) -> list[FakeAgent]:
        return [agent for agent in self.created if agent.session_id == session_id]

    @property
    def messages(self) -> list[str]:
        return [message for agent in self.created for message in agent.messages]


@pytest.fixture
def agent_factory() -> FakeAgentFactory:
    return FakeAgentFactory()


class MockLLMProvider(LLMProvider):
    """Mock LLM provider for testing."""

    def __init__(self, responses: list[str] | None = None, usage: Usage | None = None):
        self.responses = responses or ["Mock response"]
        self.usage = usage or Usage(input_tokens=10, output_tokens=5)
        self.calls: list[dict] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "mock"

    @property
    def default_model(self) -> str:
        return "mock-model"

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> CompletionResponse:
        self.calls.append(
            {
                "messages": list(messages),
                "model": model,
                "system": system,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        text = self.responses[min(len(self.calls) - 1, len(self.responses) - 1)]
        return CompletionResponse(
            message=Message(role=Role.ASSISTANT, content=text),
            usage=self.usage,
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def mock_llm() -> MockLLMProvider:
    return MockLLMProvider()


# =============================================================================
# Helpers
# =============================================================================


async def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def read_log(path: Path) -> list[dict]:
    import json

    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class FakeChangeSource:
    """Directory change source driven by the test through a queue."""

    def __init__(self, fail_starts: int = 0):
        self.queue: asyncio.Queue[set[str] | Exception] = asyncio.Queue()
        self.fail_starts = fail_starts
        self.starts = 0

    async def __call__(self, directory: Path, stop_event: asyncio.Event):
        self.starts += 1
        if self.fail_starts > 0:
            self.fail_starts -= 1
            raise OSError("inotify watch limit reached")
        while not stop_event.is_set():
            item = await self.queue.get()
            if isinstance(item, Exception):
                raise item
            yield item

    def notify(self, path: Path) -> None:
        self.queue.put_nowait({str(path)})
