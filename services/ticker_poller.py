"""
Ticker Poller

Background service that refreshes the default exchanges and instruments on a
fixed interval, independently of incoming queries. It goes through the same
orchestrator (and so the same per-exchange single-flight gate) as queries,
so a poll and a query never refresh one exchange twice at the same time.
"""

import asyncio
import contextlib
from typing import Callable, List, Optional

from core.exceptions import AllSourcesUnavailable
from core.logging import get_logger
from core.schemas import FetchStatus
from services.fetch_orchestrator import FetchOrchestrator


class TickerPoller:
    """
    Interval producer of refreshes.

    Args:
        orchestrator: Performs the refreshes
        exchanges / instruments: Zero-argument callables returning what to poll
        interval: Seconds between the start of one cycle and the next
        ttl_ms: Freshness window handed to the orchestrator
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        exchanges: Callable[[], List[str]],
        instruments: Callable[[], List[str]],
        interval: float,
        ttl_ms: int
    ) -> None:
        self._logger = get_logger(__name__)
        self._orchestrator = orchestrator
        self._exchanges = exchanges
        self._instruments = instruments
        self._interval = interval
        self._ttl_ms = ttl_ms
        self._running = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.cycles = 0

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    async def start(self) -> None:
        if self._running.is_set():
            return
        if self._interval <= 0:
            self._logger.info("Ticker poller disabled (interval <= 0)")
            return
        self._running.set()
        self._logger.info(f"Starting ticker poller (every {self._interval}s)...")
        self._task = asyncio.create_task(self._run(), name="ticker_poller")

    async def stop(self) -> None:
        if not self._running.is_set():
            return
        self._logger.info("Stopping ticker poller...")
        self._running.clear()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    # ============================================
    # Core Loop
    # ============================================

    async def poll_once(self) -> None:
        """Run one refresh cycle; failures are logged, never raised."""
        exchanges = self._exchanges()
        instruments = self._instruments()
        try:
            outcomes = await self._orchestrator.ensure_fresh(exchanges, instruments, self._ttl_ms)
        except AllSourcesUnavailable as e:
            self._logger.error(f"Poll cycle failed: {e}")
            return
        finally:
            self.cycles += 1

        degraded = [name for name, outcome in outcomes.items() if outcome.status != FetchStatus.OK]
        if degraded:
            self._logger.warning(f"Poll cycle degraded for: {', '.join(degraded)}")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while self._running.is_set():
            cycle_start = loop.time()
            try:
                await self.poll_once()
            except Exception as e:
                self._logger.error(f"Ticker poller cycle error: {e}")
            elapsed = loop.time() - cycle_start
            await asyncio.sleep(max(0.0, self._interval - elapsed))
