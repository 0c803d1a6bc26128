"""Events runner: turns files in the events directory into agent runs.

Each ``*.json`` file in the events directory describes one trigger:

- ``immediate`` files fire once as soon as they are seen and are deleted.
  Files older than the runner's start time are leftovers from a previous
  process and are deleted without firing.
- ``one-shot`` files fire once at their ``at`` time and are deleted. Due
  times are checked by a single poller rather than one timer per file.
- ``periodic`` files fire on their cron schedule until the file is removed.

Changing a file cancels whatever it had scheduled before the new content is
applied. Deleting it cancels the schedule. Fired events are routed to a
per-session runner drawn from a bounded pool; when no runner can take the
work it is retried after a fixed delay instead of being dropped.
"""

import asyncio
import functools
import logging
import os
import stat
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Any, assert_never

import aiofiles
from rich.console import Console

from stateset.config.models import ConfigError, EventsConfig, StatesetConfig
from stateset.config.paths import get_events_log_path, get_events_path
from stateset.core.agent import EventAgent
from stateset.events.cron import CronJob, InvalidCronError, schedule_cron
from stateset.events.pool import RunnerPool
from stateset.events.results import EventResultLogger
from stateset.events.session_runner import QueuedEvent, SessionAgentRunner
from stateset.events.types import (
    EventParseError,
    ImmediateEvent,
    OneShotEvent,
    PeriodicEvent,
    ResponseEvent,
    parse_event,
    parse_trigger_time,
)
from stateset.events.watcher import ChangeSource, DirectoryWatcher
from stateset.sessions import DEFAULT_SESSION_ID, sanitize_session_id

logger = logging.getLogger(__name__)


@dataclass
class EventsRunnerOptions:
    default_session: str = DEFAULT_SESSION_ID
    model: str = "default"
    show_usage: bool = False
    stdout: bool = False


@dataclass
class _PendingOneShot:
    event: OneShotEvent
    due: float


class EventsRunner:
    """Watches the events directory and dispatches triggers to session runners.

    Example:
        runner = EventsRunner(options, agent_factory=create_agent_factory(config))
        await runner.start()
        ...
        await runner.stop()
    """

    def __init__(
        self,
        options: EventsRunnerOptions | None = None,
        *,
        agent_factory: Callable[[str], EventAgent],
        events_dir: Path | None = None,
        results: EventResultLogger | None = None,
        config: EventsConfig | None = None,
        timezone: str | None = None,
        start_time: float | None = None,
        watch_source: ChangeSource | None = None,
        console: Console | None = None,
    ):
        self._options = options or EventsRunnerOptions()
        self._agent_factory = agent_factory
        self._events_dir = events_dir or get_events_path()
        self._results = results or EventResultLogger(get_events_log_path())
        self._config = config or EventsConfig()
        self._timezone = timezone
        self._start_time = time.time() if start_time is None else start_time
        self._console = console

        self._running = False
        self._known_files: set[str] = set()
        self._one_shots: dict[str, _PendingOneShot] = {}
        self._crons: dict[str, CronJob] = {}
        self._retry_handles: dict[str, asyncio.TimerHandle] = {}
        self._handling: dict[str, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()
        self._poller: asyncio.Task | None = None

        self._watcher = DirectoryWatcher(
            self._events_dir,
            self._on_file_change,
            debounce=self._config.debounce_seconds,
            restart_delay=self._config.watcher_restart_seconds,
            source=watch_source,
        )
        self._pool = RunnerPool(
            self._create_session_runner,
            max_runners=self._config.max_runners,
            idle_ttl=self._config.idle_ttl_seconds,
            cleanup_interval=self._config.cleanup_interval_seconds,
        )

    @property
    def events_dir(self) -> Path:
        return self._events_dir

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pool(self) -> RunnerPool:
        return self._pool

    @property
    def watcher(self) -> DirectoryWatcher:
        return self._watcher

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        await self._pool.start()
        await self._watcher.start()
        logger.info(
            "events_runner_started",
            extra={
                "file.path": str(self._events_dir),
                "session.default": self._options.default_session,
            },
        )

    async def stop(self) -> None:
        """Stop watching, cancel every timer and force-close all session runners."""
        was_running, self._running = self._running, False

        await self._watcher.stop()

        for handle in self._retry_handles.values():
            handle.cancel()
        self._retry_handles.clear()

        tasks = [*self._handling.values(), *self._tasks]
        if self._poller is not None:
            tasks.append(self._poller)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._handling.clear()
        self._tasks.clear()
        self._poller = None
        self._one_shots.clear()

        await asyncio.gather(*(job.aclose() for job in self._crons.values()))
        self._crons.clear()
        self._known_files.clear()

        await self._pool.shutdown()
        if was_running:
            logger.info("events_runner_stopped", extra={"file.path": str(self._events_dir)})

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "known_files": sorted(self._known_files),
            "pending_one_shots": sorted(self._one_shots),
            "periodic": sorted(self._crons),
            "session_runners": self._pool.session_ids,
            "pending_retries": sorted(self._retry_handles),
        }

    def _create_session_runner(self, session_id: str) -> SessionAgentRunner:
        return SessionAgentRunner(
            session_id,
            self._agent_factory(session_id),
            self._results,
            timezone=self._timezone,
            show_usage=self._options.show_usage,
            stdout=self._options.stdout,
            max_pending=self._config.max_pending_per_runner,
            console=self._console,
        )

    # File handling

    def _on_file_change(self, filename: str) -> None:
        if not self._running:
            return
        previous = self._handling.pop(filename, None)
        if previous is not None and not previous.done():
            previous.cancel()
        task = asyncio.create_task(self._process_change(filename))
        self._handling[filename] = task
        task.add_done_callback(functools.partial(self._on_handling_done, filename))

    def _on_handling_done(self, filename: str, task: asyncio.Task) -> None:
        if self._handling.get(filename) is task:
            del self._handling[filename]
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "event_file_handling_failed",
                extra={"event.filename": filename, "error.message": str(task.exception())},
            )

    async def _process_change(self, filename: str) -> None:
        if not os.path.lexists(self._events_dir / filename):
            self._handle_delete(filename)
            return

        if filename in self._known_files:
            self._cancel_scheduled(filename)

        await self._handle_file(filename)

    def _handle_delete(self, filename: str) -> None:
        if filename not in self._known_files:
            return
        self._cancel_scheduled(filename)
        self._known_files.discard(filename)
        logger.debug("event_file_removed", extra={"event.filename": filename})

    def _cancel_scheduled(self, filename: str) -> None:
        self._one_shots.pop(filename, None)
        job = self._crons.pop(filename, None)
        if job is not None:
            job.stop()
        handle = self._retry_handles.pop(filename, None)
        if handle is not None:
            handle.cancel()

    def _rejection_reason(self, st: os.stat_result) -> str | None:
        if stat.S_ISLNK(st.st_mode):
            return "symlink"
        if not stat.S_ISREG(st.st_mode):
            return "not_regular_file"
        if st.st_size > self._config.max_event_file_bytes:
            return "too_large"
        return None

    async def _handle_file(self, filename: str) -> None:
        path = self._events_dir / filename
        try:
            st = path.lstat()
        except FileNotFoundError:
            self._handle_delete(filename)
            return

        reason = self._rejection_reason(st)
        if reason is not None:
            logger.warning(
                "event_file_rejected",
                extra={"event.filename": filename, "reject.reason": reason},
            )
            self._delete_file(filename)
            return

        event = await self._read_event(filename)
        if event is None:
            return

        self._known_files.add(filename)
        match event:
            case ImmediateEvent():
                self._handle_immediate(filename, event)
            case OneShotEvent():
                self._handle_one_shot(filename, event)
            case PeriodicEvent():
                self._handle_periodic(filename, event)
            case _:
                assert_never(event)

    async def _read_event(self, filename: str) -> ResponseEvent | None:
        """Read and parse with backoff; partially written files get another chance."""
        path = self._events_dir / filename
        attempts = self._config.parse_attempts
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                async with aiofiles.open(path, "rb") as f:
                    content = await f.read()
                return parse_event(content, filename, self._config.max_event_file_bytes)
            except FileNotFoundError:
                self._handle_delete(filename)
                return None
            except (OSError, EventParseError) as e:
                last_error = e
                if attempt < attempts - 1:
                    await asyncio.sleep(self._config.parse_retry_base_seconds * 2**attempt)

        logger.error(
            "event_parse_failed",
            extra={"event.filename": filename, "error.message": str(last_error)},
        )
        self._delete_file(filename)
        return None

    def _handle_immediate(self, filename: str, event: ImmediateEvent) -> None:
        try:
            mtime = (self._events_dir / filename).stat().st_mtime
        except OSError:
            self._known_files.discard(filename)
            return

        if mtime < self._start_time:
            logger.info("stale_immediate_event_skipped", extra={"event.filename": filename})
            self._delete_file(filename)
            return

        self._execute(filename, event, delete_after=True)

    def _handle_one_shot(self, filename: str, event: OneShotEvent) -> None:
        due = parse_trigger_time(event.at)
        if due is None or due <= time.time():
            logger.info(
                "one_shot_event_missed",
                extra={"event.filename": filename, "event.at": event.at},
            )
            self._delete_file(filename)
            return

        self._one_shots[filename] = _PendingOneShot(event=event, due=due)
        self._ensure_poller()
        logger.debug(
            "one_shot_event_scheduled",
            extra={"event.filename": filename, "event.at": event.at},
        )

    def _handle_periodic(self, filename: str, event: PeriodicEvent) -> None:
        try:
            job = schedule_cron(
                event.schedule,
                event.timezone,
                functools.partial(self._execute, filename, event, delete_after=False),
                name=filename,
            )
        except InvalidCronError as e:
            logger.error(
                "event_invalid_cron",
                extra={
                    "event.filename": filename,
                    "event.schedule": event.schedule,
                    "error.message": str(e),
                },
            )
            self._delete_file(filename)
            return

        self._crons[filename] = job
        logger.debug(
            "periodic_event_scheduled",
            extra={"event.filename": filename, "event.schedule": event.schedule},
        )

    def _ensure_poller(self) -> None:
        if self._poller is None or self._poller.done():
            self._poller = asyncio.create_task(self._poll_one_shots())

    async def _poll_one_shots(self) -> None:
        while self._running and self._one_shots:
            await asyncio.sleep(self._config.one_shot_poll_seconds)
            now = time.time()
            due = [name for name, entry in self._one_shots.items() if entry.due <= now]
            for filename in due:
                entry = self._one_shots.pop(filename)
                self._execute(filename, entry.event, delete_after=True)

    def _delete_file(self, filename: str) -> None:
        try:
            (self._events_dir / filename).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(
                "event_file_delete_failed",
                extra={"event.filename": filename, "error.message": str(e)},
            )
        self._known_files.discard(filename)

    # Dispatch

    def _execute(self, filename: str, event: ResponseEvent, *, delete_after: bool) -> None:
        if not self._running:
            return
        session_id = sanitize_session_id(event.session or self._options.default_session)
        self._spawn(self._dispatch(filename, event, session_id))
        if delete_after:
            self._delete_file(filename)

    async def _dispatch(self, filename: str, event: ResponseEvent, session_id: str) -> None:
        runner = await self._pool.get_or_create(session_id)
        if runner is not None and runner.enqueue(QueuedEvent(filename, event)):
            return

        logger.warning(
            "event_dispatch_deferred",
            extra={
                "event.filename": filename,
                "session.id": session_id,
                "defer.reason": "pool_full" if runner is None else "queue_full",
            },
        )
        self._schedule_retry(filename, event, session_id)

    def _schedule_retry(self, filename: str, event: ResponseEvent, session_id: str) -> None:
        if not self._running or filename in self._retry_handles:
            return
        loop = asyncio.get_running_loop()
        self._retry_handles[filename] = loop.call_later(
            self._config.dispatch_retry_seconds,
            self._retry_dispatch,
            filename,
            event,
            session_id,
        )

    def _retry_dispatch(self, filename: str, event: ResponseEvent, session_id: str) -> None:
        self._retry_handles.pop(filename, None)
        if not self._running:
            return
        self._spawn(self._dispatch(filename, event, session_id))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("event_dispatch_failed", extra={"error.message": str(task.exception())})


def validate_events_prereqs(config: StatesetConfig) -> None:
    """Check the configuration can run events before anything is started.

    Raises:
        ConfigError: If no Anthropic API key is configured.
    """
    if config.resolve_api_key() is None:
        raise ConfigError(
            "No Anthropic API key configured. Set ANTHROPIC_API_KEY or [anthropic] api_key"
        )
    config.get_model("default")
