"""
Binance Exchange Adapter

This module implements the ExchangeInterface for Binance Spot.

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Structure:
    exchanges/binance/
    ├── __init__.py          # This file (BinanceExchange class)
    └── api_client.py        # REST API client and raw ticker schema

Notes:
    - Binance tickers carry no fee; the configured default taker fee is used
    - quoteVolume is reported natively
"""

from typing import Optional

from core.schemas import NormalizedTicker
from exchanges.base import RestExchange
from .api_client import BinanceAPIClient, BinanceRawTicker, BinanceStyleTicker

__all__ = ["BinanceExchange", "BinanceAPIClient", "BinanceRawTicker"]


class BinanceExchange(RestExchange):
    """
    Binance Spot Exchange Adapter

    Example:
        >>> exchange = BinanceExchange(rate_limit_ms=50, default_taker_fee=0.001)
        >>> await exchange.initialize()
        >>> raw = await exchange.fetch_tickers(["BTC/USDT"])
        >>> ticker = exchange.normalize("BTC/USDT", raw["BTC/USDT"], now_ms)
        >>> await exchange.shutdown()
    """

    name = "binance"
    client_class = BinanceAPIClient

    def normalize(
        self,
        instrument: str,
        raw: BinanceStyleTicker,
        observed_at_epoch_millis: int
    ) -> Optional[NormalizedTicker]:
        """
        Map a /api/v3/ticker/24hr entry onto NormalizedTicker.

        Field Mapping:
            lastPrice -> last_price     bidPrice -> bid      askPrice -> ask
            openPrice -> open_price     highPrice -> high    lowPrice -> low
            volume -> base_volume       quoteVolume -> quote_volume
        """
        return NormalizedTicker.from_quote(
            exchange=self.name,
            instrument=instrument,
            last_price=raw.last_price,
            bid=raw.bid_price,
            ask=raw.ask_price,
            open_price=raw.open_price,
            high_price=raw.high_price,
            low_price=raw.low_price,
            base_volume=raw.volume,
            quote_volume=raw.quote_volume,
            taker_fee_rate=self.taker_fee(instrument),
            observed_at_epoch_millis=observed_at_epoch_millis
        )
