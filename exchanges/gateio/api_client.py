"""
Gate.io REST API Client

This module provides an async HTTP client for the Gate.io v4 Spot public REST API.

API Documentation:
    https://www.gate.io/docs/developers/apiv4/

Endpoints Used:
    - GET /api/v4/spot/currency_pairs                    - Market catalog (with fees)
    - GET /api/v4/spot/tickers                           - All tickers
    - GET /api/v4/spot/tickers?currency_pair=BTC_USDT    - Single ticker
    - GET /api/v4/spot/time                              - Health check

Notes:
    - No response envelope; errors are non-200 replies with {"label", "message"}
    - currency_pairs reports `fee` in percent ("0.2" = 0.2% = 0.002)
"""

from typing import Dict, List, Literal, Optional

from pydantic import Field

from core.schemas import MarketInfo
from exchanges.base import BaseAPIClient, RawTicker, make_market


class GateioRawTicker(RawTicker):
    """
    One entry of /api/v4/spot/tickers.

    Response Format:
        {
          "currency_pair": "BTC_USDT",
          "last": "43250.5",
          "lowest_ask": "43250.9",
          "highest_bid": "43250.1",
          "change_percentage": "1.05",
          "high_24h": "43600",
          "low_24h": "42500",
          "base_volume": "18250.2",
          "quote_volume": "789321456.0"
        }
    """

    venue: Literal["gateio"] = "gateio"
    currency_pair: str
    last: Optional[float] = None
    lowest_ask: Optional[float] = None
    highest_bid: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    base_volume: Optional[float] = None
    quote_volume: Optional[float] = None
    change_percentage: Optional[float] = Field(None, description="24h change in percent")


def percent_fee_to_rate(fee: Optional[str]) -> Optional[float]:
    """Gate.io fee string in percent -> fraction ("0.2" -> 0.002)."""
    if fee is None or str(fee).strip() == "":
        return None
    return float(fee) / 100


class GateioAPIClient(BaseAPIClient):
    """Async HTTP client for Gate.io Spot market data."""

    EXCHANGE = "gateio"
    BASE_URL = "https://api.gateio.ws"
    PING_PATH = "/api/v4/spot/time"

    # ============================================
    # Market Data Methods
    # ============================================

    async def get_markets(self) -> List[MarketInfo]:
        """
        Fetch the spot currency pair catalog.

        Gate.io Endpoint:
            GET /api/v4/spot/currency_pairs
        """
        self.logger.info("Fetching Gate.io currency pairs")
        data = await self._get("/api/v4/spot/currency_pairs")

        markets = []
        for item in data:
            if item.get("trade_status") != "tradable":
                continue
            market = make_market(
                self.EXCHANGE,
                item["id"],
                item.get("base"),
                item.get("quote"),
                taker_fee_rate=percent_fee_to_rate(item.get("fee"))
            )
            if market is not None:
                markets.append(market)
        return markets

    async def get_tickers(self, symbols: List[str]) -> Dict[str, GateioRawTicker]:
        """
        Fetch all tickers and keep the requested currency pairs.

        Gate.io Endpoint:
            GET /api/v4/spot/tickers
        """
        wanted = set(symbols)
        data = await self._get("/api/v4/spot/tickers")
        return {
            item["currency_pair"]: GateioRawTicker.model_validate(item)
            for item in data
            if item.get("currency_pair") in wanted
        }

    async def get_ticker(self, symbol: str) -> Optional[GateioRawTicker]:
        """
        Fetch one ticker.

        Gate.io Endpoint:
            GET /api/v4/spot/tickers?currency_pair=BTC_USDT
        """
        data = await self._get("/api/v4/spot/tickers", {"currency_pair": symbol})
        if not data:
            return None
        return GateioRawTicker.model_validate(data[0])
