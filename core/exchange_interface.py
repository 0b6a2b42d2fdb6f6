"""
Exchange Interface — Abstract Contract for All Exchanges

This module defines the abstract base class that all exchange adapters must implement.
By enforcing a consistent interface, we ensure:
- The orchestrator talks to every exchange the same way
- New exchanges can be added without modifying core logic
- Exchange-specific payloads never leak past the adapter

Design Philosophy:
    "Program to an interface, not an implementation"

    The fetch orchestrator works with ExchangeInterface, not specific exchange
    implementations. An adapter owns three things: its market catalog, its
    ticker endpoints, and the explicit mapping from its raw ticker schema to
    NormalizedTicker.

Example:
    exchange = manager.get_exchange("okx")
    supported = await exchange.list_supported_instruments()
    raw = await exchange.fetch_tickers(["BTC/USDT"] if "BTC/USDT" in supported else [])
    ticker = exchange.normalize("BTC/USDT", raw["BTC/USDT"], observed_at_epoch_millis=now)

Capabilities System:
    Each exchange declares which features it supports via the `capabilities` dict.

    Example:
        capabilities = {
            "batch_tickers": True,   # One call answers many instruments
            "single_ticker": True,   # Per-instrument fallback endpoint exists
            "ticker_fees": False     # Taker fee reported in ticker/catalog payloads
        }
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Set

from pydantic import BaseModel

from core.schemas import NormalizedTicker


class ExchangeInterface(ABC):
    """
    Abstract Base Class for Exchange Adapters

    Class Attributes:
        name: Unique identifier for the exchange (lowercase, e.g., "binance", "okx")
        capabilities: Dictionary indicating which features this exchange supports

    Abstract Methods (MUST be implemented by all exchanges):
        - list_supported_instruments: Market catalog, as canonical instruments
        - fetch_tickers: One batched ticker call
        - fetch_ticker: One single-instrument ticker call
        - normalize: Raw ticker -> NormalizedTicker

    Optional Methods (can be overridden):
        - initialize: Setup connections, sessions, etc.
        - shutdown: Cleanup connections
        - health_check: Verify exchange API is accessible

    Error contract:
        - Catalog failures raise MarketsUnavailable
        - Ticker failures raise TickerFetchFailed (adapters never retry)
    """

    # ============================================
    # Class Attributes (must be set by subclasses)
    # ============================================

    name: str
    """Unique exchange identifier (lowercase). Example: "binance", "okx" """

    capabilities: Dict[str, bool] = {
        "batch_tickers": False,
        "single_ticker": False,
        "ticker_fees": False
    }
    """Dictionary indicating which features this exchange supports"""

    # ============================================
    # Market Catalog
    # ============================================

    @abstractmethod
    async def list_supported_instruments(self) -> Set[str]:
        """
        Return the instruments this exchange currently lists.

        Returns:
            Set of canonical "BASE/QUOTE" instruments

        Raises:
            MarketsUnavailable: If the catalog cannot be loaded

        Notes:
            - Implementations cache the catalog with its own TTL
            - Concurrent callers must trigger at most one load
        """
        ...

    # ============================================
    # Ticker Fetching
    # ============================================

    @abstractmethod
    async def fetch_tickers(self, instruments: Iterable[str]) -> Dict[str, BaseModel]:
        """
        Fetch raw tickers for many instruments in one batched call.

        Args:
            instruments: Non-empty collection of supported instruments

        Returns:
            Mapping instrument -> raw ticker for whichever instruments the
            exchange answered; instruments it omitted are simply absent

        Raises:
            TickerFetchFailed: On transport or protocol errors
        """
        ...

    @abstractmethod
    async def fetch_ticker(self, instrument: str) -> Optional[BaseModel]:
        """
        Fetch the raw ticker for a single instrument.

        Returns:
            The raw ticker, or None if the exchange has no data for it

        Raises:
            TickerFetchFailed: On transport or protocol errors
        """
        ...

    @abstractmethod
    def normalize(
        self,
        instrument: str,
        raw: BaseModel,
        observed_at_epoch_millis: int
    ) -> Optional[NormalizedTicker]:
        """
        Map this exchange's raw ticker onto NormalizedTicker.

        Returns:
            NormalizedTicker, or None when the raw ticker has no last price
        """
        ...

    # ============================================
    # Optional Lifecycle Methods
    # ============================================

    async def initialize(self) -> None:
        """
        Initialize the exchange adapter.

        Called by ExchangeManager.initialize_all(). Should be idempotent.
        """
        pass

    async def shutdown(self) -> None:
        """
        Shutdown the exchange adapter and cleanup resources.

        Called by ExchangeManager.shutdown_all(). Should not raise.
        """
        pass

    async def health_check(self) -> bool:
        """
        Check if the exchange API is accessible and healthy.

        Returns:
            bool: True if exchange is accessible, False otherwise
        """
        return True

    # ============================================
    # Helper Methods
    # ============================================

    def supports(self, feature: str) -> bool:
        """
        Check if this exchange supports a specific feature.

        Example:
            >>> exchange.supports("batch_tickers")
            True
        """
        return self.capabilities.get(feature, False)

    def __repr__(self) -> str:
        """String representation of the exchange."""
        return f"<{self.__class__.__name__}(name='{self.name}')>"
