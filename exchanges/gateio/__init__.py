"""
Gate.io Exchange Adapter

This module implements the ExchangeInterface for Gate.io Spot.

Notes:
    - Native symbols are underscore-separated (BTC_USDT)
    - Taker fees come from the currency pair catalog
    - The ticker has no open price; it is derived from change_percentage
"""

from typing import Optional

from core.schemas import NormalizedTicker
from exchanges.base import RestExchange, open_from_change
from .api_client import GateioAPIClient, GateioRawTicker

__all__ = ["GateioExchange", "GateioAPIClient", "GateioRawTicker"]


class GateioExchange(RestExchange):
    """Gate.io Spot Exchange Adapter"""

    name = "gateio"
    client_class = GateioAPIClient

    capabilities = {
        "batch_tickers": True,
        "single_ticker": True,
        "ticker_fees": True
    }

    def normalize(
        self,
        instrument: str,
        raw: GateioRawTicker,
        observed_at_epoch_millis: int
    ) -> Optional[NormalizedTicker]:
        """
        Field Mapping:
            last -> last_price        highest_bid -> bid    lowest_ask -> ask
            high_24h -> high_price    low_24h -> low_price
            base_volume -> base_volume    quote_volume -> quote_volume
            last / (1 + change_percentage/100) -> open_price
            catalog fee (percent) -> taker_fee_rate
        """
        change = raw.change_percentage / 100 if raw.change_percentage is not None else None
        return NormalizedTicker.from_quote(
            exchange=self.name,
            instrument=instrument,
            last_price=raw.last,
            bid=raw.highest_bid,
            ask=raw.lowest_ask,
            high_price=raw.high_24h,
            low_price=raw.low_24h,
            open_price=open_from_change(raw.last, change),
            base_volume=raw.base_volume,
            quote_volume=raw.quote_volume,
            taker_fee_rate=self.taker_fee(instrument),
            observed_at_epoch_millis=observed_at_epoch_millis
        )
