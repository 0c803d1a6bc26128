"""Retry helpers for transient LLM API failures."""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

TRANSIENT_PATTERN = re.compile(
    r"overloaded|rate.?limit|too many requests|"
    r"429|500|502|503|504|529|"
    r"service.?unavailable|server error|internal error|"
    r"connection.?error|timed? ?out",
    re.IGNORECASE,
)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504, 529})

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    enabled: bool = True
    max_retries: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Backoff delay (seconds) before retry number ``attempt + 1``."""
        return min(self.base_delay * (2**attempt), self.max_delay)


def is_retryable_error(error: Exception) -> bool:
    """Check whether an API error is worth retrying.

    Rate limits, 5xx responses, overloaded errors and connection/timeout
    failures are retryable; everything else (bad request, auth) is not.
    """
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code in TRANSIENT_STATUS_CODES

    error_type = type(error).__name__.lower()
    if any(t in error_type for t in ("timeout", "connection", "overloaded", "ratelimit")):
        return True

    return bool(TRANSIENT_PATTERN.search(str(error)))


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "API call",
) -> T:
    """Execute an async function with exponential backoff retry.

    Raises:
        The last exception once retries are exhausted, or immediately for
        non-retryable errors.
    """
    config = config or RetryConfig()

    if not config.enabled:
        return await func()

    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt >= config.max_retries:
                logger.warning(
                    "retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt + 1,
                        "error.message": str(e),
                        "error.type": type(e).__name__,
                    },
                )
                raise

            delay = config.delay_for(attempt)
            logger.info(
                "retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_attempts": config.max_retries + 1,
                    "retry_delay_s": round(delay, 1),
                    "error.message": str(e),
                },
            )
            attempt += 1
            await asyncio.sleep(delay)
