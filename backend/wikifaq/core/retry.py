"""
Retry policy for flaky async operations (LLM calls).

Wraps tenacity's ``AsyncRetrying`` so callers get an outcome object back
instead of an exception: generation exhaustion is an expected result that the
pipeline turns into a failure reason, not a crash.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried operation."""

    value: Optional[T]
    error: Optional[BaseException]
    attempts: int

    @property
    def ok(self) -> bool:
        return self.error is None


class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    Attempt ``n`` (1-based) that fails waits ``base_delay * 2 ** (n - 1)``
    seconds before the next one, so the defaults give 1s, 2s, 4s.
    Each attempt is optionally capped by ``timeout`` seconds.

    Usage:
    ------
    policy = RetryPolicy(max_attempts=3, timeout=120)
    outcome = await policy.run(lambda: client.call(...), label="Albert Einstein")
    if not outcome.ok:
        ...
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        timeout: Optional[float] = None,
        sleep: Optional[SleepFn] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep or asyncio.sleep

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=self.timeout)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "operation",
    ) -> RetryOutcome[T]:
        """Run ``operation`` until it succeeds or attempts are exhausted."""
        attempts = 0
        value: Optional[T] = None

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, min=0),
            retry=retry_if_exception_type(Exception),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    try:
                        value = await self._attempt(operation)
                    except Exception as e:
                        logger.warning(
                            f"{label}: attempt {attempts}/{self.max_attempts} failed: "
                            f"{type(e).__name__}: {e}"
                        )
                        raise
        except Exception as e:
            logger.error(f"{label}: giving up after {attempts} attempts")
            return RetryOutcome(value=None, error=e, attempts=attempts)

        return RetryOutcome(value=value, error=None, attempts=attempts)
