"""
Exception Taxonomy

All errors raised by the scanner derive from ArbitrageScannerError so callers
can catch the whole family in one place.

Propagation rules:
    - ExchangeAPIError: raised by the HTTP clients, wrapped by the adapters
    - MarketsUnavailable: catalog load failed; callers degrade to zero instruments
    - TickerFetchFailed: one attempt failed; the orchestrator retries it
    - AllSourcesUnavailable: every requested exchange failed; hard failure for that call
    - UnknownExchange / InvalidInstrument: bad caller input, filtered at the boundary
"""

from typing import Any, Dict, Optional


class ArbitrageScannerError(Exception):
    """Base class for all scanner errors."""


# ============================================
# Transport Errors
# ============================================

class ExchangeAPIError(ArbitrageScannerError):
    """
    Non-success reply from an exchange REST endpoint.

    Attributes:
        exchange: Exchange identifier (e.g., "binance")
        path: Endpoint path that failed
        status: HTTP status code (None when the body carried the error code)
        message: Error text returned by the exchange
    """

    def __init__(self, exchange: str, path: str, status: Optional[int], message: str):
        self.exchange = exchange
        self.path = path
        self.status = status
        self.message = message
        status_str = f"HTTP {status}" if status is not None else "API error"
        super().__init__(f"{exchange} {path}: {status_str}: {message}")


# ============================================
# Adapter Errors
# ============================================

class MarketsUnavailable(ArbitrageScannerError):
    """The exchange's market catalog could not be loaded."""

    def __init__(self, exchange: str, cause: Optional[BaseException] = None):
        self.exchange = exchange
        self.cause = cause
        super().__init__(f"Market catalog unavailable for {exchange}: {cause!r}")


class TickerFetchFailed(ArbitrageScannerError):
    """A single ticker fetch attempt failed (transport, protocol or timeout)."""

    def __init__(self, exchange: str, cause: Optional[BaseException] = None):
        self.exchange = exchange
        self.cause = cause
        super().__init__(f"Ticker fetch failed for {exchange}: {cause!r}")


# ============================================
# Aggregate Errors
# ============================================

class AllSourcesUnavailable(ArbitrageScannerError):
    """
    Every requested exchange failed all attempts.

    Attributes:
        outcomes: Per-exchange refresh outcomes, keyed by exchange id
    """

    def __init__(self, outcomes: Dict[str, Any]):
        self.outcomes = outcomes
        names = ", ".join(sorted(outcomes)) or "none"
        super().__init__(f"All requested exchanges failed: {names}")


# ============================================
# Input Errors
# ============================================

class UnknownExchange(ArbitrageScannerError, ValueError):
    """Caller supplied an exchange id that is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Exchange '{name}' is not supported")


class InvalidInstrument(ArbitrageScannerError, ValueError):
    """Caller supplied an instrument that is not of the form BASE/QUOTE."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Invalid instrument '{value}', expected BASE/QUOTE")
