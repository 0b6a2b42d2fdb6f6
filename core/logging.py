"""
Scanner Logging

Every module logs through a child of the "arbscanner" logger:

    from core.logging import get_logger

    logger = get_logger(__name__)

What goes to which level:
    DEBUG    - Per-request detail ("API Request: okx /api/v5/market/tickers")
    INFO     - Lifecycle ("Initialized exchange: binance")
    WARNING  - Degradation (retry scheduled, fallback engaged, catalog unavailable)
    ERROR    - An exchange produced nothing in a refresh cycle

The level comes from LOG_LEVEL.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s %(message)s"

# Third-party loggers that are chatty at DEBUG
QUIET_LOGGERS = ("asyncio", "aiohttp.access")


def setup_logging(log_level: str = "INFO", log_format: Optional[str] = None) -> logging.Logger:
    """Configure stdout logging for the scanner and return its root logger."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format or LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    scanner_logger = logging.getLogger("arbscanner")
    scanner_logger.setLevel(level)
    return scanner_logger


# ============================================
# Initialize Logger with Settings
# ============================================

from core.config import settings  # noqa: E402

logger = setup_logging(log_level=settings.log_level)


def get_logger(name: str) -> logging.Logger:
    """Child of the scanner logger, e.g. "arbscanner.services.fetch_orchestrator"."""
    return logging.getLogger(f"arbscanner.{name}")


# ============================================
# Exchange Request Logging
# ============================================

def log_api_request(exchange: str, endpoint: str, params: Optional[dict] = None) -> None:
    """
    Example:
        >>> log_api_request("okx", "/api/v5/market/ticker", {"instId": "BTC-USDT"})
        [DEBUG] API Request: okx /api/v5/market/ticker | Params: {'instId': 'BTC-USDT'}
    """
    suffix = f" | Params: {params}" if params else ""
    logger.debug(f"API Request: {exchange} {endpoint}{suffix}")


def log_api_response(exchange: str, endpoint: str, status: int, response_time: Optional[float] = None) -> None:
    """
    Example:
        >>> log_api_response("okx", "/api/v5/market/tickers", 200, 0.342)
        [DEBUG] API Response: okx /api/v5/market/tickers | Status: 200 | Time: 0.342s
    """
    timing = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {exchange} {endpoint} | Status: {status}{timing}")
