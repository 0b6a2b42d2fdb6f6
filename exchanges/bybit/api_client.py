"""
Bybit REST API Client

This module provides an async HTTP client for the Bybit v5 public market API
(spot category).

API Documentation:
    https://bybit-exchange.github.io/docs/v5/intro

Endpoints Used:
    - GET /v5/market/instruments-info?category=spot         - Market catalog
    - GET /v5/market/tickers?category=spot                  - All spot tickers
    - GET /v5/market/tickers?category=spot&symbol=BTCUSDT   - Single ticker
    - GET /v5/market/time                                   - Health check

Response Envelope:
    {"retCode": 0, "retMsg": "OK", "result": {...}, "time": 1704110400000}
    Any retCode other than 0 is an error even on HTTP 200.

Usage:
    async with BybitAPIClient() as client:
        tickers = await client.get_tickers(["BTCUSDT"])
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from core.exceptions import ExchangeAPIError
from core.schemas import MarketInfo
from exchanges.base import BaseAPIClient, RawTicker, make_market


class BybitRawTicker(RawTicker):
    """
    One entry of result.list from /v5/market/tickers (spot).

    Response Format:
        {
          "symbol": "BTCUSDT",
          "bid1Price": "43250.1",
          "ask1Price": "43250.9",
          "lastPrice": "43250.5",
          "prevPrice24h": "42800",
          "highPrice24h": "43600",
          "lowPrice24h": "42500",
          "volume24h": "18250.2",
          "turnover24h": "789321456.0"
        }
    """

    venue: Literal["bybit"] = "bybit"
    symbol: str
    last_price: Optional[float] = Field(None, alias="lastPrice")
    bid1_price: Optional[float] = Field(None, alias="bid1Price")
    ask1_price: Optional[float] = Field(None, alias="ask1Price")
    prev_price_24h: Optional[float] = Field(None, alias="prevPrice24h")
    high_price_24h: Optional[float] = Field(None, alias="highPrice24h")
    low_price_24h: Optional[float] = Field(None, alias="lowPrice24h")
    volume_24h: Optional[float] = Field(None, alias="volume24h")
    turnover_24h: Optional[float] = Field(None, alias="turnover24h")


class BybitAPIClient(BaseAPIClient):
    """
    Async HTTP client for Bybit Spot market data

    Notes:
        - The spot tickers endpoint has no multi-symbol filter; the batch call
          fetches the full list and keeps the requested symbols
        - Uses GET requests with query parameters (Bybit API standard)
    """

    EXCHANGE = "bybit"
    BASE_URL = "https://api.bybit.com/v5/market"
    PING_PATH = "/time"

    def _unwrap(self, path: str, data: Any) -> Any:
        # Check Bybit response format
        if data.get("retCode") != 0:
            raise ExchangeAPIError(self.EXCHANGE, path, None, data.get("retMsg", "Unknown error"))
        return data.get("result", {})

    # ============================================
    # Market Data Methods
    # ============================================

    async def get_markets(self) -> List[MarketInfo]:
        """
        Fetch the spot instrument catalog.

        Bybit Endpoint:
            GET /v5/market/instruments-info?category=spot
        """
        self.logger.info("Fetching Bybit spot instruments")
        result = await self._get("/instruments-info", {"category": "spot"})

        markets = []
        for item in result.get("list", []):
            if item.get("status") != "Trading":
                continue
            market = make_market(self.EXCHANGE, item["symbol"], item.get("baseCoin"), item.get("quoteCoin"))
            if market is not None:
                markets.append(market)
        return markets

    async def get_tickers(self, symbols: List[str]) -> Dict[str, BybitRawTicker]:
        """
        Fetch all spot tickers and keep the requested symbols.

        Bybit Endpoint:
            GET /v5/market/tickers?category=spot
        """
        wanted = set(symbols)
        result = await self._get("/tickers", {"category": "spot"})
        return {
            item["symbol"]: BybitRawTicker.model_validate(item)
            for item in result.get("list", [])
            if item.get("symbol") in wanted
        }

    async def get_ticker(self, symbol: str) -> Optional[BybitRawTicker]:
        """
        Fetch one spot ticker.

        Bybit Endpoint:
            GET /v5/market/tickers?category=spot&symbol=BTCUSDT
        """
        result = await self._get("/tickers", {"category": "spot", "symbol": symbol})
        items = result.get("list", [])
        if not items:
            return None
        return BybitRawTicker.model_validate(items[0])
