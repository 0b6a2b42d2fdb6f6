"""
MEXC Exchange Adapter

MEXC spot tickers have the Binance layout, so normalization is inherited
from BinanceExchange; only the client and the id differ.
"""

from exchanges.binance import BinanceExchange
from .api_client import MexcAPIClient, MexcRawTicker

__all__ = ["MexcExchange", "MexcAPIClient", "MexcRawTicker"]


class MexcExchange(BinanceExchange):
    """MEXC Spot Exchange Adapter"""

    name = "mexc"
    client_class = MexcAPIClient
