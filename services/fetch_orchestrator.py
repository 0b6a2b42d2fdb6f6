"""
Fetch Orchestrator

Keeps the ticker cache fresh for a set of exchanges and instruments. It is
the only component that writes to the cache.

Per exchange, one refresh cycle is:

    1. Resolve the requested instruments the exchange lists (cached catalog).
       Catalog failure -> outcome "failed", other exchanges carry on.
    2. If every resolved instrument is fresh, stop (no network call).
    3. One batched fetch_tickers() call, retried under the RetryPolicy
       (linear backoff).
    4. Retries exhausted -> sequential per-instrument fetch_ticker() calls
       spaced by fallback_delay; each failure is logged and skipped.
    5. Normalize what came back and write it to the cache, stamped with the
       local clock at receipt.

Exchanges refresh in parallel. Each exchange's refresh runs behind a
single-flight gate, so concurrent callers (queries, the poller) share one
outstanding refresh per exchange. The catalog lookup belongs to that shared
refresh, so a caller giving up at its deadline never abandons it. Every
network call carries request_timeout; a timeout is a failed attempt.

If every requested exchange ends "failed", ensure_fresh raises
AllSourcesUnavailable. Anything less is a partial success reported through
the per-exchange outcomes.
"""

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel

from core.exceptions import (
    AllSourcesUnavailable,
    ArbitrageScannerError,
    MarketsUnavailable,
    TickerFetchFailed,
)
from core.exchange_interface import ExchangeInterface
from core.exchange_manager import ExchangeManager
from core.logging import get_logger
from core.retry import RetryPolicy, SleepFn, attempt_with_retry
from core.schemas import ExchangeRefreshOutcome, FetchStatus
from services.single_flight import SingleFlight
from storage.ticker_cache import TickerCache

logger = get_logger(__name__)

# instrument -> (raw ticker, observed_at_epoch_millis)
Received = Dict[str, Tuple[BaseModel, int]]


def _status_for(stored: int, wanted: int) -> FetchStatus:
    if stored == wanted:
        return FetchStatus.OK
    if stored == 0:
        return FetchStatus.FAILED
    return FetchStatus.PARTIAL


class FetchOrchestrator:
    """
    Parallel, retrying, single-flight ticker refresher.

    Args:
        manager: Registry of exchange adapters
        cache: The ticker cache to populate (its clock stamps observations)
        retry_policy: Batch attempt budget and backoff
        fallback_delay: Seconds between per-instrument fallback requests
        request_timeout: Seconds allowed for any single network call
        sleep: Replacement for asyncio.sleep in backoff and fallback pacing

    Example:
        >>> orchestrator = FetchOrchestrator(manager, cache, retry_policy=RetryPolicy())
        >>> outcomes = await orchestrator.ensure_fresh(["binance", "okx"], ["BTC/USDT"], ttl_ms=2000)
        >>> outcomes["okx"].status
        <FetchStatus.OK: 'ok'>
    """

    # Times a caller re-joins other callers' refreshes before reporting
    # whatever the cache holds
    MAX_JOINS = 3

    def __init__(
        self,
        manager: ExchangeManager,
        cache: TickerCache,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        fallback_delay: float = 0.1,
        request_timeout: float = 10,
        sleep: Optional[SleepFn] = None
    ):
        self.manager = manager
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.fallback_delay = fallback_delay
        self.request_timeout = request_timeout
        self._sleep = sleep or asyncio.sleep
        self._flights: SingleFlight[ExchangeRefreshOutcome] = SingleFlight()

    # ============================================
    # Public API
    # ============================================

    async def ensure_fresh(
        self,
        exchanges: Iterable[str],
        instruments: Iterable[str],
        ttl_ms: int,
        deadline: Optional[float] = None
    ) -> Dict[str, ExchangeRefreshOutcome]:
        """
        Make the cache fresh for every (exchange, instrument) that can be fetched.

        Args:
            exchanges: Registered exchange ids
            instruments: Canonical instruments
            ttl_ms: Entries younger than this are not refetched
            deadline: Seconds to wait; exchanges still refreshing afterwards are
                      reported "pending" and keep refreshing in the background

        Returns:
            Outcome per exchange

        Raises:
            AllSourcesUnavailable: If every exchange's outcome is "failed"
        """
        exchanges = list(dict.fromkeys(exchanges))
        instruments = list(dict.fromkeys(instruments))
        if not exchanges:
            return {}

        waiters = {
            name: asyncio.ensure_future(self._refresh_exchange(name, instruments, ttl_ms))
            for name in exchanges
        }

        try:
            done, pending = await asyncio.wait(waiters.values(), timeout=deadline)
        except asyncio.CancelledError:
            for waiter in waiters.values():
                waiter.cancel()
            raise

        outcomes: Dict[str, ExchangeRefreshOutcome] = {}
        for name, waiter in waiters.items():
            if waiter in done:
                outcomes[name] = waiter.result()
            else:
                # Only this caller's wait is cancelled; the shared refresh continues
                waiter.cancel()
                outcomes[name] = ExchangeRefreshOutcome(
                    exchange=name,
                    status=FetchStatus.PENDING,
                    error=f"Refresh still running after {deadline}s deadline"
                )
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if all(outcome.status == FetchStatus.FAILED for outcome in outcomes.values()):
            logger.error(f"All requested exchanges failed: {', '.join(outcomes)}")
            raise AllSourcesUnavailable(outcomes)

        return outcomes

    async def refresh_exchange(self, exchange: str, instruments: Iterable[str], ttl_ms: int) -> ExchangeRefreshOutcome:
        """Refresh one exchange without the all-failed check."""
        return await self._refresh_exchange(exchange, list(dict.fromkeys(instruments)), ttl_ms)

    async def close(self) -> None:
        """Cancel refreshes still in flight (application shutdown)."""
        await self._flights.cancel_all()

    # ============================================
    # Per-Exchange Refresh
    # ============================================

    def _stale(self, exchange: str, instruments: List[str], ttl_ms: int) -> List[str]:
        return [i for i in instruments if not self.cache.is_fresh(exchange, i, ttl_ms)]

    async def _supported(self, exchange: ExchangeInterface) -> Set[str]:
        try:
            return await asyncio.wait_for(
                exchange.list_supported_instruments(),
                timeout=self.request_timeout
            )
        except asyncio.TimeoutError as e:
            raise MarketsUnavailable(exchange.name, e) from e

    async def _refresh_exchange(
        self,
        name: str,
        instruments: List[str],
        ttl_ms: int
    ) -> ExchangeRefreshOutcome:
        """
        One caller's view of an exchange refresh: start or join the shared one.

        Catalog resolution happens inside the shared refresh, so a caller that
        stops waiting never stops the refresh itself.
        """
        try:
            exchange = self.manager.get_exchange(name)
        except ArbitrageScannerError as e:
            logger.error(f"Cannot refresh {name}: {e}")
            return ExchangeRefreshOutcome(exchange=name, status=FetchStatus.FAILED, error=str(e))

        joined: List[ExchangeRefreshOutcome] = []
        for _ in range(self.MAX_JOINS + 1):
            task, started = self._flights.run(name, partial(self._refresh, exchange, instruments, ttl_ms))
            outcome = await asyncio.shield(task)
            if started:
                return self._merge(outcome, joined)
            joined.append(outcome)

        # Kept joining other callers' refreshes; report what they covered for us
        attempted = {i for o in joined for i in o.refreshed + o.missing}
        refreshed = [i for i in instruments if i in attempted and self.cache.is_fresh(name, i, ttl_ms)]
        missing = [i for i in instruments if i in attempted and i not in refreshed]
        return ExchangeRefreshOutcome(
            exchange=name,
            status=_status_for(len(refreshed), len(refreshed) + len(missing)),
            refreshed=refreshed,
            missing=missing,
            error=joined[-1].error
        )

    @staticmethod
    def _merge(own: ExchangeRefreshOutcome, joined: List[ExchangeRefreshOutcome]) -> ExchangeRefreshOutcome:
        """Fold instruments refreshed by joined refreshes into this caller's outcome."""
        if not joined:
            return own
        covered = [i for o in joined for i in o.refreshed]
        refreshed = list(dict.fromkeys(covered + own.refreshed))
        if not refreshed:
            return own
        missing = [i for i in own.missing if i not in refreshed]
        return own.model_copy(update={
            "status": _status_for(len(refreshed), len(refreshed) + len(missing)),
            "refreshed": refreshed,
            "missing": missing,
            "skipped_fresh": False
        })

    async def _refresh(
        self,
        exchange: ExchangeInterface,
        instruments: List[str],
        ttl_ms: int
    ) -> ExchangeRefreshOutcome:
        """The shared refresh: resolve catalog, skip fresh, batch with retry, fall back, store."""
        name = exchange.name
        try:
            supported = await self._supported(exchange)
        except MarketsUnavailable as e:
            logger.warning(f"Skipping {name}: {e}")
            return ExchangeRefreshOutcome(
                exchange=name,
                status=FetchStatus.FAILED,
                missing=list(instruments),
                error=str(e)
            )

        instruments = self._stale(name, [i for i in instruments if i in supported], ttl_ms)
        if not instruments:
            return ExchangeRefreshOutcome(exchange=name, status=FetchStatus.OK, skipped_fresh=True)

        error: Optional[str] = None
        try:
            received = await attempt_with_retry(
                self.retry_policy,
                partial(self._fetch_batch, exchange, instruments),
                logger=logger,
                sleep=self._sleep
            )
        except TickerFetchFailed as e:
            error = str(e)
            logger.warning(
                f"Batch ticker fetch for {name} failed after "
                f"{self.retry_policy.max_attempts} attempt(s); "
                f"falling back to {len(instruments)} single requests"
            )
            received = await self._fetch_individually(exchange, instruments)
        except Exception as e:
            logger.exception(f"Unexpected error refreshing {name}: {e}")
            return ExchangeRefreshOutcome(
                exchange=name,
                status=FetchStatus.FAILED,
                missing=list(instruments),
                error=str(e)
            )

        stored = self._store(exchange, received)
        missing = [i for i in instruments if i not in stored]
        status = _status_for(len(stored), len(instruments))

        if status == FetchStatus.FAILED:
            logger.error(f"No tickers obtained from {name} for {', '.join(instruments)}")
        elif missing:
            logger.warning(f"{name}: missing tickers for {', '.join(missing)}")
        else:
            logger.debug(f"{name}: refreshed {len(stored)} ticker(s)")

        return ExchangeRefreshOutcome(
            exchange=name,
            status=status,
            refreshed=stored,
            missing=missing,
            error=error if missing else None
        )

    # ============================================
    # Network Calls
    # ============================================

    async def _call(self, exchange: ExchangeInterface, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run one adapter call under request_timeout; a timeout is a failed attempt."""
        try:
            return await asyncio.wait_for(fn(*args), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise TickerFetchFailed(exchange.name, e) from e

    async def _fetch_batch(self, exchange: ExchangeInterface, instruments: List[str]) -> Received:
        raw = await self._call(exchange, exchange.fetch_tickers, instruments)
        observed_at = self.cache.now()
        return {instrument: (ticker, observed_at) for instrument, ticker in raw.items()}

    async def _fetch_individually(self, exchange: ExchangeInterface, instruments: List[str]) -> Received:
        received: Received = {}
        for index, instrument in enumerate(instruments):
            if index:
                await self._sleep(self.fallback_delay)
            try:
                raw = await self._call(exchange, exchange.fetch_ticker, instrument)
            except TickerFetchFailed as e:
                logger.warning(f"Fallback fetch of {instrument} on {exchange.name} failed: {e}")
                continue
            if raw is None:
                logger.warning(f"{exchange.name} returned no ticker for {instrument}")
                continue
            received[instrument] = (raw, self.cache.now())
        return received

    # ============================================
    # Normalize & Store
    # ============================================

    def _store(self, exchange: ExchangeInterface, received: Received) -> List[str]:
        """Normalize and cache received tickers; returns the instruments stored."""
        stored = []
        for instrument, (raw, observed_at) in received.items():
            try:
                ticker = exchange.normalize(instrument, raw, observed_at)
            except (ValueError, TypeError) as e:
                logger.warning(f"Discarding malformed {exchange.name} ticker for {instrument}: {e}")
                continue
            if ticker is None:
                logger.debug(f"Discarding {exchange.name} ticker for {instrument}: no last price")
                continue
            self.cache.put(exchange.name, instrument, ticker)
            stored.append(instrument)
        return stored
