"""
OKX Exchange Adapter

This module implements the ExchangeInterface for OKX Spot.

Notes:
    - Native symbols are dash-separated (BTC-USDT)
    - OKX tickers carry no fee; the configured default taker fee is used
"""

from typing import Optional

from core.schemas import NormalizedTicker
from exchanges.base import RestExchange
from .api_client import OkxAPIClient, OkxRawTicker

__all__ = ["OkxExchange", "OkxAPIClient", "OkxRawTicker"]


class OkxExchange(RestExchange):
    """OKX Spot Exchange Adapter"""

    name = "okx"
    client_class = OkxAPIClient

    def normalize(
        self,
        instrument: str,
        raw: OkxRawTicker,
        observed_at_epoch_millis: int
    ) -> Optional[NormalizedTicker]:
        """
        Field Mapping:
            last -> last_price       bidPx -> bid        askPx -> ask
            open24h -> open_price    high24h -> high     low24h -> low
            vol24h -> base_volume    volCcy24h -> quote_volume
        """
        return NormalizedTicker.from_quote(
            exchange=self.name,
            instrument=instrument,
            last_price=raw.last,
            bid=raw.bid_px,
            ask=raw.ask_px,
            open_price=raw.open_24h,
            high_price=raw.high_24h,
            low_price=raw.low_24h,
            base_volume=raw.vol_24h,
            quote_volume=raw.vol_ccy_24h,
            taker_fee_rate=self.taker_fee(instrument),
            observed_at_epoch_millis=observed_at_epoch_millis
        )
