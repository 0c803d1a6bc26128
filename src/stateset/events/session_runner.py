"""Per-session serialized execution of fired events."""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from rich.console import Console

from stateset.core.agent import ChatCallbacks, EventAgent
from stateset.core.prompt import build_system_prompt
from stateset.core.signals import is_silent
from stateset.events.results import EventResultLogger
from stateset.events.types import ResponseEvent, describe_schedule
from stateset.llm.types import Usage
from stateset.memory import load_memory

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 32


@dataclass(frozen=True)
class QueuedEvent:
    filename: str
    event: ResponseEvent


def format_event_message(filename: str, event: ResponseEvent) -> str:
    """Tag the event text with its origin: ``[EVENT:<file>:<type>:<schedule>] <text>``."""
    return f"[EVENT:{filename}:{event.type}:{describe_schedule(event)}] {event.text}"


class SessionAgentRunner:
    """Runs events for one session, one at a time, in arrival order.

    Work is held in a FIFO drained by a single worker task, so the agent never
    sees two concurrent ``chat`` calls. ``enqueue`` refuses new work once
    ``max_pending`` items are queued or running; callers retry later.
    """

    def __init__(
        self,
        session_id: str,
        agent: EventAgent,
        results: EventResultLogger,
        *,
        timezone: str | None = None,
        show_usage: bool = False,
        stdout: bool = False,
        max_pending: int = DEFAULT_MAX_PENDING,
        console: Console | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_id = session_id
        self._agent = agent
        self._results = results
        self._timezone = timezone
        self._show_usage = show_usage
        self._stdout = stdout
        self._max_pending = max_pending
        self._console = console or Console()
        self._clock = clock

        self._queue: deque[QueuedEvent] = deque()
        self._worker: asyncio.Task | None = None
        self._pending = 0
        self._connected = False
        self._closed = False
        self.last_used = clock()

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def connected(self) -> bool:
        return self._connected

    def is_idle(self) -> bool:
        return self._pending == 0

    def touch(self) -> None:
        self.last_used = self._clock()

    def enqueue(self, item: QueuedEvent) -> bool:
        """Queue an event. Returns False without queueing when the runner is full."""
        if self._closed or self._pending >= self._max_pending:
            return False

        self._pending += 1
        self.touch()
        self._queue.append(item)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(
                self._drain(), name=f"session-runner:{self._session_id}"
            )
        return True

    async def join(self) -> None:
        """Wait until everything queued so far has finished."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    async def ensure_connected(self) -> None:
        if self._connected:
            return
        await self._agent.connect()
        self._connected = True

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        await self._agent.disconnect()

    async def close(self) -> None:
        """Drop queued work, stop the worker and disconnect the agent.

        Errors from the agent's disconnect are logged, not raised.
        """
        self._closed = True
        self._queue.clear()
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._pending = 0
        try:
            await self.disconnect()
        except Exception as e:
            logger.warning(
                "session_runner_disconnect_failed",
                extra={"session.id": self._session_id, "error.message": str(e)},
            )

    async def _drain(self) -> None:
        while self._queue:
            item = self._queue.popleft()
            try:
                await self._run(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "event_execution_failed",
                    extra={
                        "session.id": self._session_id,
                        "event.filename": item.filename,
                        "error.message": str(e),
                    },
                )
            finally:
                self._pending = max(0, self._pending - 1)
                self.touch()

    async def _run(self, item: QueuedEvent) -> None:
        await self.ensure_connected()

        memory = load_memory(self._session_id)
        self._agent.set_system_prompt(
            build_system_prompt(self._session_id, memory, self._timezone)
        )

        usage: Usage | None = None

        def on_usage(reported: Usage) -> None:
            nonlocal usage
            if self._show_usage:
                usage = reported

        response = await self._agent.chat(
            format_event_message(item.filename, item.event),
            ChatCallbacks(on_usage=on_usage),
        )
        output = response.strip()
        silent = is_silent(output)

        self._results.record(
            session_id=self._session_id,
            filename=item.filename,
            event=item.event,
            response=output,
            silent=silent,
            usage=usage,
        )
        logger.info(
            "event_executed",
            extra={
                "session.id": self._session_id,
                "event.filename": item.filename,
                "event.type": item.event.type,
                "event.silent": silent,
            },
        )

        if self._stdout:
            if not silent:
                self._console.print(
                    f"\n[EVENT:{item.filename}] ({self._session_id})\n{output}\n",
                    markup=False,
                    highlight=False,
                )
            if usage is not None:
                self._console.print(f"  {usage.summary()}", markup=False, style="dim")
