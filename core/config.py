"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Validates all required settings
- Provides type-safe access to configuration values
- Converts comma-separated strings to lists (symbols, exchanges, origins)
- Per-exchange tables (rate limits, default fees) are read as JSON objects

Usage:
    from core.config import settings

    # Access configuration values
    print(settings.cache_ttl_ms)
    print(settings.symbols_list)  # Returns a list of "BASE/QUOTE" strings
"""

from typing import Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Application Settings

    This class defines all configuration parameters for the application.
    Values are automatically loaded from environment variables or .env file.

    Attributes:
        default_symbols: Instruments scanned when a request names none
        default_exchanges: Exchanges scanned when a request names none
        cache_ttl_ms: How long a cached ticker counts as fresh
        market_catalog_ttl: How long an exchange's market list is reused (seconds)
        retry_attempts: Additional batch attempts after the first failure
        retry_backoff_base: Linear backoff unit in seconds (k-th retry waits k * base)
        fallback_delay: Pause between per-instrument fallback requests (seconds)
        request_timeout: Timeout for one HTTP request in seconds
        rate_limits_ms: Minimum spacing between calls to each exchange
        taker_fee_rates: Default taker fee per exchange when the venue doesn't report one
        default_limit / max_limit: Result count default and ceiling
        poll_interval: Background refresh period (0 disables the poller)
        query_deadline: Max seconds a request waits for refreshes (0 = no deadline)
        app_host / app_port: FastAPI server binding
        environment / debug / log_level: Runtime mode
        cors_origins: Comma-separated list of allowed CORS origins
    """

    # ============================================
    # Scan Defaults
    # ============================================

    default_symbols: str = Field(
        default="BTC/USDT,ETH/USDT,SOL/USDT",
        description="Comma-separated list of BASE/QUOTE instruments"
    )

    default_exchanges: str = Field(
        default="binance,kucoin,bybit",
        description="Comma-separated list of exchange ids"
    )

    default_limit: int = Field(
        default=50,
        description="Number of opportunities returned when the caller gives no limit"
    )

    max_limit: int = Field(
        default=200,
        description="Upper bound on the number of opportunities per response"
    )

    # ============================================
    # Caching Configuration
    # ============================================

    cache_ttl_ms: int = Field(
        default=2000,
        description="Ticker freshness window in milliseconds"
    )

    market_catalog_ttl: int = Field(
        default=3600,
        description="Market catalog TTL in seconds"
    )

    # ============================================
    # Fetching, Retries & Rate Limiting
    # ============================================

    retry_attempts: int = Field(
        default=2,
        description="Additional batch attempts after the first failure"
    )

    retry_backoff_base: float = Field(
        default=1.0,
        description="Linear backoff unit in seconds"
    )

    fallback_delay: float = Field(
        default=0.1,
        description="Delay between per-instrument fallback requests (seconds)"
    )

    request_timeout: int = Field(
        default=10,
        description="HTTP request timeout in seconds"
    )

    rate_limits_ms: Dict[str, int] = Field(
        default_factory=lambda: {
            "binance": 50,
            "kucoin": 100,
            "bybit": 50,
            "okx": 110,
            "mexc": 50,
            "gateio": 100,
        },
        description="Minimum spacing between requests per exchange (ms)"
    )

    taker_fee_rates: Dict[str, float] = Field(
        default_factory=lambda: {
            "binance": 0.001,
            "kucoin": 0.001,
            "bybit": 0.001,
            "okx": 0.001,
            "mexc": 0.0005,
            "gateio": 0.002,
        },
        description="Default taker fee per exchange, as a fraction"
    )

    # ============================================
    # Background Polling
    # ============================================

    poll_interval: float = Field(
        default=0,
        description="Seconds between background refreshes (0 = disabled)"
    )

    query_deadline: float = Field(
        default=0,
        description="Max seconds a request waits for refreshes (0 = wait for completion)"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # CORS Configuration
    # ============================================

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # Look for .env file in the project root
        env_file=".env",
        # Ignore extra fields in .env that aren't defined here
        extra="ignore",
        # Case-insensitive environment variable matching
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def symbols_list(self) -> List[str]:
        """
        Convert comma-separated symbols string to a list.

        Returns:
            List of instrument strings (e.g., ["BTC/USDT", "ETH/USDT", "SOL/USDT"])

        Example:
            >>> settings.symbols_list
            ['BTC/USDT', 'ETH/USDT', 'SOL/USDT']
        """
        return [s.strip().upper() for s in self.default_symbols.split(",") if s.strip()]

    @property
    def exchanges_list(self) -> List[str]:
        """
        Convert comma-separated exchanges string to a list.

        Example:
            >>> settings.exchanges_list
            ['binance', 'kucoin', 'bybit']
        """
        return [e.strip().lower() for e in self.default_exchanges.split(",") if e.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Convert comma-separated CORS origins string to a list.

        Returns:
            List of allowed origin URLs (e.g., ["http://localhost:3000", "https://myapp.com"])
        """
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def deadline_seconds(self) -> Optional[float]:
        """query_deadline as an optional value (None when disabled)."""
        return self.query_deadline if self.query_deadline > 0 else None

    def rate_limit_for(self, exchange: str) -> int:
        """Minimum request spacing for an exchange in ms (0 if unconfigured)."""
        return self.rate_limits_ms.get(exchange, 0)

    def taker_fee_for(self, exchange: str) -> Optional[float]:
        """Configured default taker fee for an exchange, if any."""
        return self.taker_fee_rates.get(exchange)


# ============================================
# Global Settings Instance
# ============================================

# Create a single instance of settings to be imported throughout the application
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration() -> None:
    """
    Validate critical configuration settings on application startup.

    Raises:
        ValueError: If required configuration is missing or invalid

    This function is called during application initialization to ensure
    the configuration is valid before starting the server.
    """
    # Import here to avoid circular import
    # (logging.py imports config.py, so we can't import at module level)
    from core.logging import logger
    from core.schemas import normalize_instrument, parse_exchange

    if not settings.symbols_list:
        raise ValueError("DEFAULT_SYMBOLS must contain at least one instrument")

    # InvalidInstrument / UnknownExchange are ValueErrors
    for symbol in settings.symbols_list:
        normalize_instrument(symbol)

    if not settings.exchanges_list:
        raise ValueError("DEFAULT_EXCHANGES must contain at least one exchange")

    for exchange in settings.exchanges_list:
        parse_exchange(exchange)

    if settings.cache_ttl_ms < 0:
        raise ValueError(f"Invalid CACHE_TTL_MS: {settings.cache_ttl_ms}. Must be >= 0")

    if settings.retry_attempts < 0:
        raise ValueError(f"Invalid RETRY_ATTEMPTS: {settings.retry_attempts}. Must be >= 0")

    if settings.retry_backoff_base < 0 or settings.fallback_delay < 0:
        raise ValueError("RETRY_BACKOFF_BASE and FALLBACK_DELAY must be >= 0")

    if settings.request_timeout <= 0:
        raise ValueError(f"Invalid REQUEST_TIMEOUT: {settings.request_timeout}. Must be > 0")

    if not (1 <= settings.default_limit <= settings.max_limit):
        raise ValueError(
            f"DEFAULT_LIMIT ({settings.default_limit}) must be between 1 and "
            f"MAX_LIMIT ({settings.max_limit})"
        )

    # Validate port number
    if not (1 <= settings.app_port <= 65535):
        raise ValueError(f"Invalid port number: {settings.app_port}. Must be between 1 and 65535")

    # Validate log level
    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if settings.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{settings.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    # Log successful validation
    logger.info("Configuration validated successfully")
    logger.info(f"Default instruments: {', '.join(settings.symbols_list)}")
    logger.info(f"Default exchanges: {', '.join(settings.exchanges_list)}")
    logger.info(f"Ticker TTL: {settings.cache_ttl_ms}ms | Catalog TTL: {settings.market_catalog_ttl}s")
    logger.info(
        f"Retries: {settings.retry_attempts} x {settings.retry_backoff_base}s "
        f"| Fallback delay: {settings.fallback_delay}s"
    )
    logger.info(f"Server: {settings.app_host}:{settings.app_port}")
    logger.info(f"Log level: {settings.log_level.upper()}")
    logger.info(
        f"Poller: {'every ' + str(settings.poll_interval) + 's' if settings.poll_interval > 0 else 'disabled'}"
    )
