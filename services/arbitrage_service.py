"""
Arbitrage Service

The core-facing contract of the scanner. It wires the exchange manager,
ticker cache, fetch orchestrator, opportunity engine and poller together and
validates caller input at the boundary.

Operations:
    - ensure_fresh(exchanges, instruments, ttl_ms, deadline) -> outcomes per exchange
    - query(instruments, exchanges, filters, limit)          -> OpportunityResult
    - get_ticker_snapshot(exchanges, instruments)            -> cached tickers (no fetch)
    - scan(...)                                              -> ensure_fresh + query

Input handling:
    - An empty selection falls back to the configured defaults
    - Unknown exchanges and malformed instruments are dropped with a warning
    - limit is clamped to [1, max_limit]

Usage:
    service = ArbitrageService.from_settings(settings)
    await service.start()
    scan = await service.scan(instruments=["BTC/USDT"], exchanges=["binance", "okx"])
    await service.stop()
"""

import math
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from core.exceptions import InvalidInstrument, UnknownExchange
from core.exchange_manager import ExchangeManager
from core.logging import get_logger
from core.retry import RetryPolicy
from core.schemas import (
    ExchangeRefreshOutcome,
    NormalizedTicker,
    OpportunityQuery,
    OpportunityResult,
    normalize_instrument,
    parse_exchange,
)
from services.fetch_orchestrator import FetchOrchestrator
from services.opportunity_engine import SnapshotKey, find_opportunities
from services.ticker_poller import TickerPoller
from storage.ticker_cache import TickerCache

logger = get_logger(__name__)


class ScanResult(BaseModel):
    """What scan() returns: the selection used, refresh outcomes and the ranking."""

    exchanges: List[str]
    instruments: List[str]
    outcomes: Dict[str, ExchangeRefreshOutcome] = Field(default_factory=dict)
    result: OpportunityResult


class ArbitrageService:
    """
    Facade over the scanner core.

    Args:
        manager: Exchange adapters
        cache: Ticker cache (a new one is created if omitted)
        orchestrator: Refresher (built around manager and cache if omitted)
        default_instruments / default_exchanges: Used for empty selections
        ttl_ms: Default freshness window
        default_limit / max_limit: Result size default and ceiling
        deadline: Default seconds a call waits for refreshes (None = no limit)
        poll_interval: Background refresh period in seconds (0 = no poller)
    """

    def __init__(
        self,
        manager: ExchangeManager,
        cache: Optional[TickerCache] = None,
        orchestrator: Optional[FetchOrchestrator] = None,
        *,
        default_instruments: Iterable[str] = ("BTC/USDT", "ETH/USDT", "SOL/USDT"),
        default_exchanges: Iterable[str] = ("binance", "kucoin", "bybit"),
        ttl_ms: int = 2000,
        default_limit: int = 50,
        max_limit: int = 200,
        deadline: Optional[float] = None,
        poll_interval: float = 0
    ):
        self.manager = manager
        self.cache = cache if cache is not None else TickerCache()
        self.orchestrator = orchestrator or FetchOrchestrator(manager, self.cache)
        self.ttl_ms = ttl_ms
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.deadline = deadline

        self.default_instruments = self._valid_instruments(default_instruments)
        self.default_exchanges = self._known_exchanges(default_exchanges)

        self.poller = TickerPoller(
            self.orchestrator,
            exchanges=lambda: self.default_exchanges,
            instruments=lambda: self.default_instruments,
            interval=poll_interval,
            ttl_ms=ttl_ms
        )

    @classmethod
    def from_settings(cls, settings, manager: Optional[ExchangeManager] = None) -> "ArbitrageService":
        """Build the whole stack from a Settings object."""
        manager = manager or ExchangeManager()
        cache = TickerCache()
        orchestrator = FetchOrchestrator(
            manager,
            cache,
            retry_policy=RetryPolicy.from_retries(settings.retry_attempts, settings.retry_backoff_base),
            fallback_delay=settings.fallback_delay,
            request_timeout=settings.request_timeout
        )
        return cls(
            manager,
            cache,
            orchestrator,
            default_instruments=settings.symbols_list,
            default_exchanges=settings.exchanges_list,
            ttl_ms=settings.cache_ttl_ms,
            default_limit=settings.default_limit,
            max_limit=settings.max_limit,
            deadline=settings.deadline_seconds,
            poll_interval=settings.poll_interval
        )

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        await self.manager.initialize_all()
        await self.poller.start()

    async def stop(self) -> None:
        await self.poller.stop()
        await self.orchestrator.close()
        await self.manager.shutdown_all()

    # ============================================
    # Boundary Validation
    # ============================================

    def _valid_instruments(self, values: Iterable[str]) -> List[str]:
        instruments: List[str] = []
        for value in values:
            try:
                instrument = normalize_instrument(value)
            except InvalidInstrument as e:
                logger.warning(f"Ignoring instrument: {e}")
                continue
            if instrument not in instruments:
                instruments.append(instrument)
        return instruments

    def _known_exchanges(self, values: Iterable[str]) -> List[str]:
        exchanges: List[str] = []
        for value in values:
            try:
                exchange = parse_exchange(value)
            except UnknownExchange as e:
                logger.warning(f"Ignoring exchange: {e}")
                continue
            if not self.manager.has_exchange(exchange):
                logger.warning(f"Ignoring exchange '{exchange}': not enabled")
                continue
            if exchange not in exchanges:
                exchanges.append(exchange)
        return exchanges

    @staticmethod
    def _spread_threshold(value: Optional[float]) -> Optional[float]:
        if value is not None and math.isnan(value):
            logger.warning("Ignoring minSpreadPct=NaN; using the default positive-spread filter")
            return None
        return value

    def resolve_instruments(self, values: Optional[Iterable[str]]) -> List[str]:
        """Caller selection, or the defaults when it is empty."""
        values = [v for v in (values or []) if v and v.strip()]
        if not values:
            return list(self.default_instruments)
        return self._valid_instruments(values)

    def resolve_exchanges(self, values: Optional[Iterable[str]]) -> List[str]:
        """Caller selection, or the defaults when it is empty."""
        values = [v for v in (values or []) if v and v.strip()]
        if not values:
            return list(self.default_exchanges)
        return self._known_exchanges(values)

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            limit = self.default_limit
        return max(1, min(int(limit), self.max_limit))

    # ============================================
    # Core Contract
    # ============================================

    async def ensure_fresh(
        self,
        exchanges: Optional[Iterable[str]] = None,
        instruments: Optional[Iterable[str]] = None,
        ttl_ms: Optional[int] = None,
        deadline: Optional[float] = None
    ) -> Dict[str, ExchangeRefreshOutcome]:
        """
        Refresh the cache for the selection.

        Raises:
            AllSourcesUnavailable: If every selected exchange failed
        """
        return await self.orchestrator.ensure_fresh(
            self.resolve_exchanges(exchanges),
            self.resolve_instruments(instruments),
            ttl_ms=self.ttl_ms if ttl_ms is None else ttl_ms,
            deadline=self.deadline if deadline is None else deadline
        )

    def query(
        self,
        instruments: Optional[Iterable[str]] = None,
        exchanges: Optional[Iterable[str]] = None,
        min_quote_volume: float = 0,
        min_spread_percent: Optional[float] = None,
        limit: Optional[int] = None
    ) -> OpportunityResult:
        """Rank opportunities from whatever is cached right now (no fetch)."""
        return self._rank(
            self.resolve_instruments(instruments),
            self.resolve_exchanges(exchanges),
            min_quote_volume,
            min_spread_percent,
            limit
        )

    def _rank(
        self,
        instruments: List[str],
        exchanges: List[str],
        min_quote_volume: float,
        min_spread_percent: Optional[float],
        limit: Optional[int]
    ) -> OpportunityResult:
        query = OpportunityQuery(
            instruments=instruments,
            exchanges=exchanges,
            min_quote_volume=max(0.0, min_quote_volume or 0.0),
            min_spread_percent=self._spread_threshold(min_spread_percent),
            limit=self.clamp_limit(limit)
        )
        snapshot = self.cache.snapshot(query.exchanges, query.instruments)
        return find_opportunities(snapshot, query, generated_at_epoch_millis=self.cache.now())

    def get_ticker_snapshot(
        self,
        exchanges: Optional[Iterable[str]] = None,
        instruments: Optional[Iterable[str]] = None
    ) -> Dict[SnapshotKey, NormalizedTicker]:
        """Cached tickers for the selection, stale ones included."""
        return self.cache.snapshot(
            self.resolve_exchanges(exchanges),
            self.resolve_instruments(instruments)
        )

    async def scan(
        self,
        instruments: Optional[Iterable[str]] = None,
        exchanges: Optional[Iterable[str]] = None,
        min_quote_volume: float = 0,
        min_spread_percent: Optional[float] = None,
        limit: Optional[int] = None,
        ttl_ms: Optional[int] = None,
        deadline: Optional[float] = None
    ) -> ScanResult:
        """
        ensure_fresh followed by query over the same selection.

        Raises:
            AllSourcesUnavailable: If every selected exchange failed
        """
        used_exchanges = self.resolve_exchanges(exchanges)
        used_instruments = self.resolve_instruments(instruments)

        outcomes = await self.orchestrator.ensure_fresh(
            used_exchanges,
            used_instruments,
            ttl_ms=self.ttl_ms if ttl_ms is None else ttl_ms,
            deadline=self.deadline if deadline is None else deadline
        )
        result = self._rank(
            used_instruments,
            used_exchanges,
            min_quote_volume,
            min_spread_percent,
            limit
        )
        return ScanResult(
            exchanges=used_exchanges,
            instruments=used_instruments,
            outcomes=outcomes,
            result=result
        )
