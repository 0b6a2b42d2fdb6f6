"""
Exchange Manager — Central Registry for Exchange Adapters

This module provides a centralized manager for all exchange adapters.
The ExchangeManager acts as a registry and factory for exchange instances.

Design Benefits:
    - Single source of truth for available exchanges
    - Easy to add new exchanges without modifying the orchestrator or API routes
    - Centralized lifecycle management (initialize/shutdown)
    - Boundary filtering of unknown exchange ids

Architecture Pattern:
    This is a Registry/Factory pattern where:
    - ExchangeManager maintains a registry of exchange instances
    - The orchestrator requests exchanges by id
    - All exchanges conform to ExchangeInterface

Example Usage:
    manager = ExchangeManager()           # every known exchange, built from settings
    await manager.initialize_all()

    okx = manager.get_exchange("okx")
    supported = await okx.list_supported_instruments()

    # Tests and embedders can inject their own adapters:
    manager = ExchangeManager(exchanges={"binance": FakeExchange("binance")})
"""

from typing import Dict, Iterable, List, Optional, Tuple
from core.exceptions import UnknownExchange
from core.exchange_interface import ExchangeInterface
from core.logging import get_logger

logger = get_logger(__name__)


class ExchangeManager:
    """
    Central Manager for Exchange Adapters

    Attributes:
        exchanges: Dictionary mapping exchange ids to exchange instances
                  Example: {"binance": BinanceExchange(), "okx": OkxExchange()}

    Example:
        >>> manager = ExchangeManager(enabled=["binance", "okx"])
        >>> await manager.initialize_all()
        >>> manager.list_exchanges()
        ['binance', 'okx']
        >>> await manager.shutdown_all()
    """

    def __init__(
        self,
        exchanges: Optional[Dict[str, ExchangeInterface]] = None,
        enabled: Optional[Iterable[str]] = None
    ):
        """
        Initialize the Exchange Manager and register exchanges.

        Args:
            exchanges: Pre-built adapters keyed by id (skips the factory)
            enabled: Subset of known exchange ids to build (default: all known)

        Note:
            Exchange instances are created but not initialized here.
            Call initialize_all() to set up connections.
        """
        if exchanges is None:
            # Import here to avoid circular imports
            # Each exchange module imports from core, so we can't import at module level
            from exchanges import create_exchange, EXCHANGE_CLASSES

            names = list(enabled) if enabled is not None else list(EXCHANGE_CLASSES)
            exchanges = {}
            for name in names:
                exchange = create_exchange(name)
                exchanges[exchange.name] = exchange

        self.exchanges: Dict[str, ExchangeInterface] = {
            name.lower(): exchange for name, exchange in exchanges.items()
        }

        logger.info(
            f"ExchangeManager initialized with {len(self.exchanges)} exchange(s): "
            f"{', '.join(self.exchanges.keys())}"
        )

    # ============================================
    # Exchange Retrieval Methods
    # ============================================

    def get_exchange(self, name: str) -> ExchangeInterface:
        """
        Get an exchange adapter by id.

        Args:
            name: Exchange id (case-insensitive)

        Returns:
            ExchangeInterface: The requested exchange instance

        Raises:
            UnknownExchange: If the exchange is not registered (a ValueError)
        """
        name = name.lower()

        if name not in self.exchanges:
            available = ", ".join(self.exchanges.keys())
            logger.error(f"Exchange '{name}' not found. Available: {available}")
            raise UnknownExchange(name)

        return self.exchanges[name]

    def has_exchange(self, name: str) -> bool:
        """Check if an exchange is registered (case-insensitive)."""
        return name.lower() in self.exchanges

    def list_exchanges(self) -> List[str]:
        """
        Get a list of all registered exchange ids.

        Example:
            >>> manager.list_exchanges()
            ['binance', 'kucoin', 'bybit', 'okx', 'mexc', 'gateio']
        """
        return list(self.exchanges.keys())

    def filter_known(self, names: Iterable[str]) -> Tuple[List[str], List[str]]:
        """
        Split requested ids into registered and unknown ones.

        Order is preserved and duplicates are dropped.

        Returns:
            (known, unknown): known ids lowercased, unknown ids as given

        Example:
            >>> manager.filter_known(["Binance", "ftx", "okx", "binance"])
            (['binance', 'okx'], ['ftx'])
        """
        known: List[str] = []
        unknown: List[str] = []
        for name in names:
            normalized = name.strip().lower()
            if normalized in self.exchanges:
                if normalized not in known:
                    known.append(normalized)
            else:
                unknown.append(name)
        return known, unknown

    # ============================================
    # Lifecycle Management
    # ============================================

    async def initialize_all(self) -> None:
        """
        Initialize all registered exchanges.

        Failures are logged and skipped; adapters also initialize lazily
        on first use, so a failed exchange can recover later.
        """
        logger.info("Initializing all exchanges...")

        for name, exchange in self.exchanges.items():
            try:
                logger.debug(f"Initializing {name}...")
                await exchange.initialize()
                logger.info(f"✓ {name} initialized successfully")
            except Exception as e:
                logger.error(f"✗ Failed to initialize {name}: {e}")

        logger.info("All exchanges initialized")

    async def shutdown_all(self) -> None:
        """
        Shutdown all exchanges gracefully.

        This should be called when the application is shutting down.
        """
        logger.info("Shutting down all exchanges...")

        for name, exchange in self.exchanges.items():
            try:
                logger.debug(f"Shutting down {name}...")
                await exchange.shutdown()
                logger.info(f"✓ {name} shut down successfully")
            except Exception as e:
                logger.error(f"✗ Error shutting down {name}: {e}")

        logger.info("All exchanges shut down")

    # ============================================
    # Health Check Methods
    # ============================================

    async def health_check_all(self) -> Dict[str, bool]:
        """
        Check health status of all exchanges.

        Returns:
            Dict[str, bool]: Dictionary mapping exchange ids to health status

        Example:
            >>> await manager.health_check_all()
            {'binance': True, 'okx': False}
        """
        logger.debug("Running health check on all exchanges...")

        health_status = {}
        for name, exchange in self.exchanges.items():
            try:
                is_healthy = await exchange.health_check()
                health_status[name] = is_healthy
                logger.debug(f"{name}: {'healthy' if is_healthy else 'unhealthy'}")
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                health_status[name] = False

        return health_status

    # ============================================
    # Capability Queries
    # ============================================

    def get_exchanges_with_feature(self, feature: str) -> List[str]:
        """
        Get list of exchanges that support a specific feature.

        Example:
            >>> manager.get_exchanges_with_feature("ticker_fees")
            ['kucoin', 'gateio']
        """
        return [
            name for name, exchange in self.exchanges.items()
            if exchange.supports(feature)
        ]

    # ============================================
    # Utility Methods
    # ============================================

    def __repr__(self) -> str:
        """String representation of the manager."""
        return f"<ExchangeManager(exchanges={list(self.exchanges.keys())})>"

    def __len__(self) -> int:
        """Number of registered exchanges."""
        return len(self.exchanges)
