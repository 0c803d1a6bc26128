"""Directory watcher for event files.

Watches one directory (non-recursively) and reports debounced per-file
changes. The watcher does not distinguish create, modify and delete: the
callback receives a filename and the consumer checks what is on disk.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from pathlib import Path

from watchfiles import awatch

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.1
DEFAULT_RESTART_DELAY_SECONDS = 2.0

# Yields batches of changed paths until ``stop_event`` is set.
ChangeSource = Callable[[Path, asyncio.Event], AsyncIterator[set[str]]]


async def watchfiles_source(
    directory: Path, stop_event: asyncio.Event
) -> AsyncIterator[set[str]]:
    """Change source backed by ``watchfiles`` (inotify/FSEvents/kqueue/polling)."""
    async for changes in awatch(
        directory, stop_event=stop_event, recursive=False, debounce=50, step=25
    ):
        yield {path for _change, path in changes}


class DirectoryWatcher:
    """Delivers debounced change notifications for ``*.json`` files in a directory.

    On start the directory is created (mode 0700) if missing and every existing
    file is reported once, so files present at boot are handled even if the
    OS watch misses them. If the change source fails or ends while the watcher
    is running, it is restarted after ``restart_delay`` and the directory is
    rescanned. Restarts repeat for as long as failures continue.
    """

    def __init__(
        self,
        directory: Path,
        on_change: Callable[[str], None],
        *,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        restart_delay: float = DEFAULT_RESTART_DELAY_SECONDS,
        suffix: str = ".json",
        source: ChangeSource | None = None,
    ):
        self._directory = directory
        self._on_change = on_change
        self._debounce = debounce
        self._restart_delay = restart_delay
        self._suffix = suffix
        self._source = source or watchfiles_source
        self._running = False
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._debounce_handles: dict[str, asyncio.TimerHandle] = {}
        self._restart_handle: asyncio.TimerHandle | None = None
        self.restart_count = 0

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._ensure_directory()
        self._scan()
        self._start_watch()
        logger.info("events_watcher_started", extra={"file.path": str(self._directory)})

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None
        for handle in self._debounce_handles.values():
            handle.cancel()
        self._debounce_handles.clear()

        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("events_watcher_stopped", extra={"file.path": str(self._directory)})

    def _ensure_directory(self) -> None:
        self._directory.mkdir(mode=0o700, parents=True, exist_ok=True)

    def _scan(self) -> None:
        for path in sorted(self._directory.iterdir()):
            if path.name.endswith(self._suffix):
                self._notify(path.name)

    def _notify(self, filename: str) -> None:
        existing = self._debounce_handles.pop(filename, None)
        if existing is not None:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_handles[filename] = loop.call_later(
            self._debounce, self._deliver, filename
        )

    def _deliver(self, filename: str) -> None:
        self._debounce_handles.pop(filename, None)
        if not self._running:
            return
        try:
            self._on_change(filename)
        except Exception:
            logger.exception("events_watcher_callback_failed", extra={"event.filename": filename})

    def _start_watch(self) -> None:
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch(self._stop_event))

    async def _watch(self, stop_event: asyncio.Event) -> None:
        try:
            async for changes in self._source(self._directory, stop_event):
                for raw_path in changes:
                    name = Path(raw_path).name
                    if name.endswith(self._suffix):
                        self._notify(name)
                if not self._directory.is_dir():
                    raise FileNotFoundError(f"Events directory removed: {self._directory}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._running:
                return
            logger.warning(
                "events_watcher_error",
                extra={"error.message": str(e), "file.path": str(self._directory)},
            )
        else:
            if not self._running or stop_event.is_set():
                return
            logger.warning("events_watcher_closed", extra={"file.path": str(self._directory)})
        self._schedule_restart()

    def _schedule_restart(self) -> None:
        if not self._running or self._restart_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._restart_handle = loop.call_later(self._restart_delay, self._restart)

    def _restart(self) -> None:
        self._restart_handle = None
        if not self._running:
            return
        self.restart_count += 1
        logger.info(
            "events_watcher_restarting",
            extra={"file.path": str(self._directory), "watcher.restarts": self.restart_count},
        )
        try:
            self._ensure_directory()
            self._scan()
        except OSError as e:
            logger.warning(
                "events_watcher_restart_failed",
                extra={"error.message": str(e), "file.path": str(self._directory)},
            )
            self._schedule_restart()
            return
        self._start_watch()
