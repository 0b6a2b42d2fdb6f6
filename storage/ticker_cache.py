"""
Ticker Cache

In-memory, time-boxed store of the most recent NormalizedTicker per
(exchange, instrument).

Rules:
    - Latest-per-key only, no history; put() overwrites unconditionally
    - Freshness is decided by the caller's TTL: fresh iff now - observed <= ttl
    - Entries are never evicted on failure; stale data stays readable
    - The fetch orchestrator is the only writer

The cache is a plain object owned by the service that creates it (no
module-level instance), and it takes a Clock so tests can move time by hand.
"""

from typing import Dict, Iterable, Optional, Tuple

from core.schemas import NormalizedTicker
from core.utils.time import Clock, age_ms, system_clock

CacheKey = Tuple[str, str]


class TickerCache:
    """
    Latest NormalizedTicker per (exchange, instrument).

    Example:
        >>> cache = TickerCache()
        >>> cache.put("binance", "BTC/USDT", ticker)
        >>> cache.is_fresh("binance", "BTC/USDT", ttl_ms=2000)
        True
    """

    def __init__(self, clock: Clock = system_clock):
        self._clock = clock
        self._entries: Dict[str, Dict[str, NormalizedTicker]] = {}

    def now(self) -> int:
        """Current time according to the cache's clock (epoch ms)."""
        return self._clock()

    # ============================================
    # Reads
    # ============================================

    def get(self, exchange: str, instrument: str) -> Optional[NormalizedTicker]:
        return self._entries.get(exchange, {}).get(instrument)

    def get_snapshot(self, exchange: str) -> Dict[str, NormalizedTicker]:
        """Copy of every cached ticker for one exchange, keyed by instrument."""
        return dict(self._entries.get(exchange, {}))

    def snapshot(
        self,
        exchanges: Iterable[str],
        instruments: Iterable[str]
    ) -> Dict[CacheKey, NormalizedTicker]:
        """
        Consistent copy of the requested (exchange, instrument) entries.

        Keys with no cached ticker are absent. Tickers are immutable, so the
        copy cannot be changed by later writes.
        """
        wanted = list(instruments)
        view: Dict[CacheKey, NormalizedTicker] = {}
        for exchange in exchanges:
            per_exchange = self._entries.get(exchange, {})
            for instrument in wanted:
                ticker = per_exchange.get(instrument)
                if ticker is not None:
                    view[(exchange, instrument)] = ticker
        return view

    def is_fresh(self, exchange: str, instrument: str, ttl_ms: int) -> bool:
        ticker = self.get(exchange, instrument)
        if ticker is None:
            return False
        return self.now() - ticker.observed_at_epoch_millis <= ttl_ms

    def age_ms(self, exchange: str, instrument: str) -> Optional[int]:
        """Age of the cached entry in ms, or None when nothing is cached."""
        ticker = self.get(exchange, instrument)
        if ticker is None:
            return None
        return age_ms(ticker.observed_at_epoch_millis, self.now())

    # ============================================
    # Writes
    # ============================================

    def put(self, exchange: str, instrument: str, ticker: NormalizedTicker) -> None:
        self._entries.setdefault(exchange, {})[instrument] = ticker

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return sum(len(per_exchange) for per_exchange in self._entries.values())

    def __repr__(self) -> str:
        return f"<TickerCache(entries={len(self)}, exchanges={list(self._entries)})>"
