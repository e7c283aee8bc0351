"""Retry policy for external calls made while executing a command."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from notion_agent.services.exceptions import TransientExternalError
from notion_agent.utils.logging import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


def is_transient(error: BaseException) -> bool:
    """Timeouts, rate limits and 5xx are worth another attempt."""
    return isinstance(error, (TransientExternalError, asyncio.TimeoutError))


@dataclass
class RetryPolicy:
    """
    Bounded retries with linear backoff.

    `max_attempts` counts the first try, so the default of 3 means up to two
    retries. Attempt n (1-based) that fails transiently waits
    `backoff_base * n` seconds before attempt n+1. Each attempt is bounded by
    `timeout` when set; hitting it counts as a transient failure.

    Attributes:
        max_attempts: Total attempts including the first
        backoff_base: Seconds multiplied by the attempt number
        timeout: Per-attempt limit in seconds, None for no limit
        retryable: Predicate deciding whether an error is retried
        sleep: Awaitable sleep, replaceable in tests
    """

    max_attempts: int = 3
    backoff_base: float = 1.0
    timeout: Optional[float] = None
    retryable: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def backoff(self, attempt: int) -> float:
        return self.backoff_base * attempt

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        on_attempt: Optional[Callable[[int], None]] = None,
    ) -> T:
        """
        Run an operation under this policy.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            on_attempt: Optional callback receiving the attempt number before each try

        Returns:
            The operation's result

        Raises:
            The last error, when it is not retryable or attempts are exhausted
        """
        attempt = 1
        while True:
            if on_attempt is not None:
                on_attempt(attempt)
            try:
                if self.timeout is not None:
                    return await asyncio.wait_for(operation(), timeout=self.timeout)
                return await operation()
            except Exception as e:
                if not self.retryable(e) or attempt >= self.max_attempts:
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "command_retry",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay=delay,
                    error=str(e) or type(e).__name__,
                )
                await self.sleep(delay)
                attempt += 1
