"""
KuCoin Exchange Adapter

This module implements the ExchangeInterface for KuCoin Spot.

Notes:
    - Tickers report takerFeeRate, which takes precedence over the configured default
    - No open price is reported; it is derived from changeRate
"""

from typing import Optional

from core.schemas import NormalizedTicker
from exchanges.base import RestExchange, open_from_change
from .api_client import KucoinAPIClient, KucoinRawTicker

__all__ = ["KucoinExchange", "KucoinAPIClient", "KucoinRawTicker"]


class KucoinExchange(RestExchange):
    """KuCoin Spot Exchange Adapter"""

    name = "kucoin"
    client_class = KucoinAPIClient

    capabilities = {
        "batch_tickers": True,
        "single_ticker": True,
        "ticker_fees": True
    }

    def normalize(
        self,
        instrument: str,
        raw: KucoinRawTicker,
        observed_at_epoch_millis: int
    ) -> Optional[NormalizedTicker]:
        """
        Field Mapping:
            last -> last_price     buy -> bid       sell -> ask
            high -> high_price     low -> low_price
            vol -> base_volume     volValue -> quote_volume
            takerFeeRate -> taker_fee_rate
            last / (1 + changeRate) -> open_price
        """
        return NormalizedTicker.from_quote(
            exchange=self.name,
            instrument=instrument,
            last_price=raw.last,
            bid=raw.buy,
            ask=raw.sell,
            high_price=raw.high,
            low_price=raw.low,
            open_price=open_from_change(raw.last, raw.change_rate),
            base_volume=raw.vol,
            quote_volume=raw.vol_value,
            taker_fee_rate=self.taker_fee(instrument, raw.taker_fee_rate),
            observed_at_epoch_millis=observed_at_epoch_millis
        )
