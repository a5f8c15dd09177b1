"""Bounded exponential backoff around Last.fm calls.

This is the only retry mechanism in the project: no jitter, no circuit
breaker. Delays start at ``initial_delay_s`` and double after every retry up
to ``max_delay_s``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from cratedigger.logging import get_logger, log_warning

from .errors import RemoteAPIError, TransportError

logger = get_logger(__name__)

_HTTP_SERVER_ERROR_THRESHOLD = 500
_HTTP_TOO_MANY_REQUESTS = 429

T = typ.TypeVar("T")
SleepFn: typ.TypeAlias = typ.Callable[[float], typ.Awaitable[None]]


def is_retryable(exc: BaseException) -> bool:
    """Return True when ``exc`` is worth retrying.

    Server errors, HTTP 429 and Last.fm's rate-limit error code are transient.
    Everything else, including requests that never got a response, is fatal.
    """
    if isinstance(exc, TransportError):
        status = exc.status_code
        return status is not None and (
            status >= _HTTP_SERVER_ERROR_THRESHOLD or status == _HTTP_TOO_MANY_REQUESTS
        )
    if isinstance(exc, RemoteAPIError):
        return exc.is_rate_limited
    return False


@dataclasses.dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry a remote call while its failures are retryable.

    Attributes
    ----------
    max_attempts
        Total attempts including the first one.
    initial_delay_s
        Delay before the first retry.
    max_delay_s
        Upper bound for any single delay.
    sleep
        Awaitable used for backoff; tests inject a recorder.

    """

    max_attempts: int
    initial_delay_s: float = 1.0
    max_delay_s: float = 30.0
    sleep: SleepFn = asyncio.sleep

    @classmethod
    def for_pages(cls, *, sleep: SleepFn = asyncio.sleep) -> RetryPolicy:
        """Policy for recent-track page fetches: 8 attempts, 1 s up to 30 s."""
        return cls(max_attempts=8, initial_delay_s=1.0, max_delay_s=30.0, sleep=sleep)

    @classmethod
    def for_lookups(cls, *, sleep: SleepFn = asyncio.sleep) -> RetryPolicy:
        """Policy for similarity and top-track lookups: 6 attempts, 1 s up to 20 s."""
        return cls(max_attempts=6, initial_delay_s=1.0, max_delay_s=20.0, sleep=sleep)

    def delays(self) -> list[float]:
        """Return the backoff delays slept between consecutive attempts."""
        delays: list[float] = []
        delay = self.initial_delay_s
        for _ in range(max(self.max_attempts - 1, 0)):
            delays.append(min(delay, self.max_delay_s))
            delay = min(delay * 2, self.max_delay_s)
        return delays

    async def call(self, fn: typ.Callable[[], typ.Awaitable[T]], *, label: str) -> T:
        """Await ``fn()`` and retry retryable failures.

        Raises
        ------
        Exception
            The first non-retryable error, or the last retryable one once
            ``max_attempts`` attempts have failed.

        """
        attempts = max(self.max_attempts, 1)
        delay = self.initial_delay_s
        attempt = 1
        while True:
            try:
                return await fn()
            except Exception as exc:
                if not is_retryable(exc) or attempt >= attempts:
                    raise
                wait_s = min(delay, self.max_delay_s)
                log_warning(
                    logger,
                    "[remote.call.retry] call=%s attempt=%d max_attempts=%d "
                    "delay_seconds=%.3f error=%s",
                    label,
                    attempt,
                    attempts,
                    wait_s,
                    exc,
                )
            await self.sleep(wait_s)
            delay = min(delay * 2, self.max_delay_s)
            attempt += 1
