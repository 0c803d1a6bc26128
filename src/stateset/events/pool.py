"""Bounded pool of per-session runners with idle eviction."""

import asyncio
import logging
import time
from collections.abc import Callable

from stateset.events.session_runner import SessionAgentRunner

logger = logging.getLogger(__name__)

DEFAULT_MAX_RUNNERS = 16
DEFAULT_IDLE_TTL_SECONDS = 15 * 60
DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60

RunnerFactory = Callable[[str], SessionAgentRunner]


class RunnerPool:
    """Keeps at most ``max_runners`` live session runners.

    Only idle runners (no queued or running work) are ever evicted. When the
    pool is full and every runner is busy, ``get_or_create`` returns None and
    the caller is expected to retry later.
    """

    def __init__(
        self,
        factory: RunnerFactory,
        *,
        max_runners: int = DEFAULT_MAX_RUNNERS,
        idle_ttl: float = DEFAULT_IDLE_TTL_SECONDS,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._max_runners = max_runners
        self._idle_ttl = idle_ttl
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._runners: dict[str, SessionAgentRunner] = {}
        self._closing: set[asyncio.Task] = set()
        self._running = False
        self._task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._runners)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._runners

    def get(self, session_id: str) -> SessionAgentRunner | None:
        return self._runners.get(session_id)

    @property
    def session_ids(self) -> list[str]:
        return list(self._runners)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop())

    async def get_or_create(self, session_id: str) -> SessionAgentRunner | None:
        """Return the runner for ``session_id``, creating it if there is room.

        At capacity the least recently used idle runner is evicted first and
        closed in the background, so the caller can enqueue on the new runner
        before anything else gets a turn. Returns None when the pool is full
        of busy runners.
        """
        runner = self._runners.get(session_id)
        if runner is not None:
            runner.touch()
            return runner

        evicted: SessionAgentRunner | None = None
        if len(self._runners) >= self._max_runners:
            evicted = self._pop_lru_idle()
            if evicted is None:
                logger.debug(
                    "runner_pool_saturated",
                    extra={"session.id": session_id, "pool.size": len(self._runners)},
                )
                return None

        runner = self._factory(session_id)
        self._runners[session_id] = runner

        if evicted is not None:
            logger.info(
                "session_runner_evicted",
                extra={"session.id": evicted.session_id, "evict.reason": "capacity"},
            )
            self._close_in_background(evicted)
        return runner

    async def cleanup(self) -> None:
        """Close runners idle past the TTL, then trim idle runners down to capacity."""
        now = self._clock()
        expired = [
            runner
            for runner in self._runners.values()
            if runner.is_idle() and now - runner.last_used > self._idle_ttl
        ]
        for runner in expired:
            self._runners.pop(runner.session_id, None)
            logger.info(
                "session_runner_evicted",
                extra={"session.id": runner.session_id, "evict.reason": "idle"},
            )
            self._close_in_background(runner)

        while len(self._runners) > self._max_runners:
            runner = self._pop_lru_idle()
            if runner is None:
                logger.warning(
                    "runner_pool_over_capacity",
                    extra={"pool.size": len(self._runners), "pool.max": self._max_runners},
                )
                break
            logger.info(
                "session_runner_evicted",
                extra={"session.id": runner.session_id, "evict.reason": "capacity"},
            )
            self._close_in_background(runner)

        await self.wait_closed()

    async def wait_closed(self) -> None:
        """Wait for every evicted runner to finish closing."""
        while self._closing:
            await asyncio.wait(list(self._closing))

    async def shutdown(self) -> None:
        """Close every runner regardless of pending work and empty the pool.

        Runners evicted earlier whose close is still in flight are awaited too.
        """
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        runners = list(self._runners.values())
        self._runners.clear()
        for runner in runners:
            self._close_in_background(runner)
        await self.wait_closed()

    def _close_in_background(self, runner: SessionAgentRunner) -> None:
        task = asyncio.create_task(runner.close(), name=f"close-runner:{runner.session_id}")
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    def _pop_lru_idle(self) -> SessionAgentRunner | None:
        idle = [runner for runner in self._runners.values() if runner.is_idle()]
        if not idle:
            return None
        oldest = min(idle, key=lambda runner: runner.last_used)
        return self._runners.pop(oldest.session_id)

    async def _cleanup_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._cleanup_interval)
            try:
                await self.cleanup()
            except Exception as e:
                logger.error("runner_pool_cleanup_failed", extra={"error.message": str(e)})
