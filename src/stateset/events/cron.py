"""Cron scheduling on the asyncio event loop.

``schedule_cron(expression, timezone, callback)`` returns a ``CronJob`` that
calls ``callback`` at every occurrence of the expression until ``stop()``.
Expressions are evaluated in the given IANA timezone so "0 8 * * *" means
8 AM local time across DST changes.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

logger = logging.getLogger(__name__)


class InvalidCronError(ValueError):
    """Raised for a malformed cron expression or unknown timezone."""


def resolve_timezone(name: str) -> ZoneInfo:
    """Look up an IANA timezone.

    Raises:
        InvalidCronError: If the name is not a known timezone.
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidCronError(f"Unknown timezone: {name!r}") from e


def validate_cron(expression: str, timezone: str) -> ZoneInfo:
    """Check that ``expression`` is valid cron syntax and ``timezone`` exists.

    Returns:
        The resolved timezone.

    Raises:
        InvalidCronError: If either part is invalid.
    """
    tz = resolve_timezone(timezone)
    if not expression.strip() or not croniter.is_valid(expression):
        raise InvalidCronError(f"Invalid cron expression: {expression!r}")
    return tz


def next_fire_time(
    expression: str, timezone: str, after: datetime | None = None
) -> datetime:
    """Next occurrence of ``expression`` strictly after ``after`` (default: now), in UTC.

    Raises:
        InvalidCronError: If the expression or timezone is invalid.
    """
    tz = validate_cron(expression, timezone)
    base = (after or datetime.now(UTC)).astimezone(tz)
    next_local = croniter(expression, base).get_next(datetime)
    return next_local.astimezone(UTC)


class CronJob:
    """A live cron registration driven by one asyncio task."""

    def __init__(
        self,
        expression: str,
        timezone: str,
        callback: Callable[[], None],
        name: str | None = None,
    ) -> None:
        self._tz = validate_cron(expression, timezone)
        self.expression = expression
        self.timezone = timezone
        self._callback = callback
        self._name = name or expression
        self._task: asyncio.Task[None] | None = None
        self.fire_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_run(self) -> datetime:
        """The next scheduled fire time in UTC."""
        base = datetime.now(UTC).astimezone(self._tz)
        return croniter(self.expression, base).get_next(datetime).astimezone(UTC)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"cron:{self._name}")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def aclose(self) -> None:
        """Stop the job and wait for its task to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            fire_at = self.next_run()
            delay = (fire_at - datetime.now(UTC)).total_seconds()
            await asyncio.sleep(max(delay, 0.0))
            # Sleep can wake a hair early; never fire before the occurrence
            while (remaining := (fire_at - datetime.now(UTC)).total_seconds()) > 0:
                await asyncio.sleep(remaining)
            self.fire_count += 1
            try:
                self._callback()
            except Exception:
                logger.exception("cron_callback_failed", extra={"cron.name": self._name})


def schedule_cron(
    expression: str,
    timezone: str,
    callback: Callable[[], None],
    name: str | None = None,
) -> CronJob:
    """Register and start a cron job on the running loop.

    Raises:
        InvalidCronError: If the expression or timezone is invalid.
    """
    job = CronJob(expression, timezone, callback, name=name)
    job.start()
    return job
