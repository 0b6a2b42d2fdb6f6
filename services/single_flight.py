"""
Single-Flight Gate

At most one in-flight task per key. A caller that arrives while a task for
its key is running gets that task back instead of starting another one.

Callers should await the returned task through asyncio.shield() so that their
own cancellation (a deadline, a client disconnect) never cancels the work
other callers are waiting on.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

from core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Per-key task registry.

    Example:
        >>> flights = SingleFlight()
        >>> task, started = flights.run("binance", lambda: refresh("binance"))
        >>> outcome = await asyncio.shield(task)
    """

    def __init__(self):
        self._inflight: Dict[str, "asyncio.Task[T]"] = {}

    def get(self, key: str) -> Optional["asyncio.Task[T]"]:
        """The running task for a key, if any."""
        task = self._inflight.get(key)
        if task is None or task.done():
            return None
        return task

    def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> Tuple["asyncio.Task[T]", bool]:
        """
        Return the in-flight task for key, or start one from factory.

        Returns:
            (task, started): started is False when an existing task was joined
        """
        task = self.get(key)
        if task is not None:
            logger.debug(f"Joining in-flight task for {key}")
            return task, False

        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        task.add_done_callback(lambda done, key=key: self._forget(key, done))
        return task, True

    def _forget(self, key: str, task: "asyncio.Task[T]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the result as retrieved even if every waiter gave up on it
        if not task.cancelled():
            task.exception()

    async def cancel_all(self) -> None:
        """Cancel every in-flight task and wait for them to finish."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    def __len__(self) -> int:
        return sum(1 for task in self._inflight.values() if not task.done())

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
