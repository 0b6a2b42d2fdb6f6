"""
Retry Policy

The orchestrator never retries by hand: every batched ticker fetch goes
through `attempt_with_retry`, which runs the operation under a tenacity
`AsyncRetrying` built from a `RetryPolicy`.

Backoff is linear: the k-th retry waits k * backoff_base seconds, so the
defaults (2 retries, 1.0s base) sleep 1s then 2s before giving up.

Usage:
    policy = RetryPolicy(max_attempts=3, backoff_base=1.0)
    raw = await attempt_with_retry(policy, lambda: adapter.fetch_tickers(wanted), logger=logger)
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from core.exceptions import TickerFetchFailed

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """
    Retry configuration for one fetch operation.

    Attributes:
        max_attempts: Total attempts including the first one (>= 1)
        backoff_base: Linear backoff unit in seconds
        retry_on: Exception types that trigger another attempt
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    max_attempts: int = Field(3, ge=1, description="Total attempts including the first")
    backoff_base: float = Field(1.0, ge=0, description="Linear backoff unit in seconds")
    retry_on: Tuple[Type[BaseException], ...] = (TickerFetchFailed,)

    @classmethod
    def from_retries(cls, retries: int, backoff_base: float) -> "RetryPolicy":
        """Build a policy from a count of *additional* attempts (the settings' form)."""
        return cls(max_attempts=retries + 1, backoff_base=backoff_base)

    def backoff_schedule(self) -> list:
        """Sleeps between attempts, in order (e.g., [1.0, 2.0] for the defaults)."""
        return [self.backoff_base * k for k in range(1, self.max_attempts)]

    def build(self, *, logger: logging.Logger, sleep: Optional[SleepFn] = None) -> AsyncRetrying:
        """Return a configured tenacity AsyncRetrying instance."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff_base, increment=self.backoff_base),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=sleep or asyncio.sleep,
            reraise=True,
        )


async def attempt_with_retry(
    policy: RetryPolicy,
    operation: Callable[[], Awaitable[T]],
    *,
    logger: logging.Logger,
    sleep: Optional[SleepFn] = None
) -> T:
    """
    Run an async operation under the policy.

    Args:
        policy: Attempt count and backoff
        operation: Zero-argument coroutine factory, called once per attempt
        logger: Receives a WARNING before each backoff sleep
        sleep: Replacement for asyncio.sleep (tests pass a recorder)

    Returns:
        Whatever the first successful attempt returns

    Raises:
        The last attempt's exception once the budget is spent, or any
        exception outside policy.retry_on immediately.
    """
    retrying = policy.build(logger=logger, sleep=sleep)
    return await retrying(operation)
