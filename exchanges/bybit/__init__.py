"""
Bybit Exchange Adapter

This module implements the ExchangeInterface for Bybit Spot (v5 API, category=spot).

API Documentation:
    https://bybit-exchange.github.io/docs/v5/intro

Notes:
    - prevPrice24h is the price 24h ago, used as the open price
    - turnover24h is the 24h quote volume
    - Bybit tickers carry no fee; the configured default taker fee is used
"""

from typing import Optional

from core.schemas import NormalizedTicker
from exchanges.base import RestExchange
from .api_client import BybitAPIClient, BybitRawTicker

__all__ = ["BybitExchange", "BybitAPIClient", "BybitRawTicker"]


class BybitExchange(RestExchange):
    """Bybit Spot Exchange Adapter"""

    name = "bybit"
    client_class = BybitAPIClient

    def normalize(
        self,
        instrument: str,
        raw: BybitRawTicker,
        observed_at_epoch_millis: int
    ) -> Optional[NormalizedTicker]:
        """
        Field Mapping:
            lastPrice -> last_price       bid1Price -> bid         ask1Price -> ask
            prevPrice24h -> open_price    highPrice24h -> high     lowPrice24h -> low
            volume24h -> base_volume      turnover24h -> quote_volume
        """
        return NormalizedTicker.from_quote(
            exchange=self.name,
            instrument=instrument,
            last_price=raw.last_price,
            bid=raw.bid1_price,
            ask=raw.ask1_price,
            open_price=raw.prev_price_24h,
            high_price=raw.high_price_24h,
            low_price=raw.low_price_24h,
            base_volume=raw.volume_24h,
            quote_volume=raw.turnover_24h,
            taker_fee_rate=self.taker_fee(instrument),
            observed_at_epoch_millis=observed_at_epoch_millis
        )
