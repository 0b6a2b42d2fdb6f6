"""
Exchange Adapters Package

This package contains individual exchange adapter modules.
Each exchange has its own subfolder with:
- api_client.py: REST client and the exchange's raw ticker schema
- __init__.py: Adapter class implementing ExchangeInterface (incl. normalize)

Shared plumbing lives in base.py. The modular design allows adding new
exchanges without modifying existing code: write the subfolder, then add the
class to EXCHANGE_CLASSES and the id to core.schemas.ExchangeId.
"""

from typing import Annotated, Any, Dict, Type, Union

from pydantic import Field, TypeAdapter

from core.schemas import parse_exchange
from exchanges.base import RestExchange
from exchanges.binance import BinanceExchange, BinanceRawTicker
from exchanges.bybit import BybitExchange, BybitRawTicker
from exchanges.gateio import GateioExchange, GateioRawTicker
from exchanges.kucoin import KucoinExchange, KucoinRawTicker
from exchanges.mexc import MexcExchange, MexcRawTicker
from exchanges.okx import OkxExchange, OkxRawTicker


EXCHANGE_CLASSES: Dict[str, Type[RestExchange]] = {
    "binance": BinanceExchange,
    "kucoin": KucoinExchange,
    "bybit": BybitExchange,
    "okx": OkxExchange,
    "mexc": MexcExchange,
    "gateio": GateioExchange,
}


# ============================================
# Raw Ticker Tagged Union
# ============================================

RawTickerUnion = Annotated[
    Union[
        BinanceRawTicker,
        KucoinRawTicker,
        BybitRawTicker,
        OkxRawTicker,
        MexcRawTicker,
        GateioRawTicker,
    ],
    Field(discriminator="venue"),
]

_raw_ticker_adapter = TypeAdapter(RawTickerUnion)


def parse_raw_ticker(payload: Dict[str, Any]) -> RawTickerUnion:
    """
    Parse a venue-tagged payload into the matching raw ticker schema.

    Example:
        >>> parse_raw_ticker({"venue": "okx", "instId": "BTC-USDT", "last": "100"})
        OkxRawTicker(venue='okx', inst_id='BTC-USDT', last=100.0, ...)
    """
    return _raw_ticker_adapter.validate_python(payload)


# ============================================
# Factory
# ============================================

def create_exchange(name: str, **overrides: Any) -> RestExchange:
    """
    Build an exchange adapter configured from settings.

    Args:
        name: Exchange id (case-insensitive)
        **overrides: Constructor arguments that replace the configured ones

    Raises:
        UnknownExchange: If no adapter exists for the id
    """
    from core.config import settings

    exchange_id = parse_exchange(name)
    options = {
        "rate_limit_ms": settings.rate_limit_for(exchange_id),
        "request_timeout": settings.request_timeout,
        "catalog_ttl": settings.market_catalog_ttl,
        "default_taker_fee": settings.taker_fee_for(exchange_id),
    }
    options.update(overrides)
    return EXCHANGE_CLASSES[exchange_id](**options)


__all__ = [
    "EXCHANGE_CLASSES",
    "RawTickerUnion",
    "create_exchange",
    "parse_raw_ticker",
]
