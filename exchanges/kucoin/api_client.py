"""
KuCoin REST API Client

This module provides an async HTTP client for the KuCoin Spot public REST API.

API Documentation:
    https://www.kucoin.com/docs/rest/spot-trading/market-data/introduction

Endpoints Used:
    - GET /api/v2/symbols                       - Market catalog
    - GET /api/v1/market/allTickers             - All tickers (with fee rates)
    - GET /api/v1/market/stats?symbol=BTC-USDT  - Single 24h stats
    - GET /api/v1/timestamp                     - Health check

Response Envelope:
    {"code": "200000", "data": ...}
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from core.exceptions import ExchangeAPIError
from core.schemas import MarketInfo
from exchanges.base import BaseAPIClient, RawTicker, make_market


class KucoinRawTicker(RawTicker):
    """
    One entry of data.ticker from allTickers (or the data of market/stats).

    Response Format:
        {
          "symbol": "BTC-USDT",
          "buy": "43250.1",
          "sell": "43250.9",
          "last": "43250.5",
          "changeRate": "0.0105",
          "high": "43600",
          "low": "42500",
          "vol": "18250.2",
          "volValue": "789321456.0",
          "takerFeeRate": "0.001"
        }

    `buy` is the best bid and `sell` the best ask. There is no open price,
    only changeRate (a fraction).
    """

    venue: Literal["kucoin"] = "kucoin"
    symbol: str
    last: Optional[float] = None
    buy: Optional[float] = None
    sell: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    vol: Optional[float] = None
    vol_value: Optional[float] = Field(None, alias="volValue")
    change_rate: Optional[float] = Field(None, alias="changeRate")
    taker_fee_rate: Optional[float] = Field(None, alias="takerFeeRate")


class KucoinAPIClient(BaseAPIClient):
    """Async HTTP client for KuCoin Spot market data."""

    EXCHANGE = "kucoin"
    BASE_URL = "https://api.kucoin.com"
    PING_PATH = "/api/v1/timestamp"

    def _unwrap(self, path: str, data: Any) -> Any:
        if str(data.get("code")) != "200000":
            raise ExchangeAPIError(self.EXCHANGE, path, None, data.get("msg") or "Unknown error")
        return data.get("data")

    # ============================================
    # Market Data Methods
    # ============================================

    async def get_markets(self) -> List[MarketInfo]:
        """
        Fetch the spot symbol catalog.

        KuCoin Endpoint:
            GET /api/v2/symbols
        """
        self.logger.info("Fetching KuCoin symbols")
        data = await self._get("/api/v2/symbols")

        markets = []
        for item in data or []:
            if not item.get("enableTrading"):
                continue
            market = make_market(
                self.EXCHANGE,
                item["symbol"],
                item.get("baseCurrency"),
                item.get("quoteCurrency")
            )
            if market is not None:
                markets.append(market)
        return markets

    async def get_tickers(self, symbols: List[str]) -> Dict[str, KucoinRawTicker]:
        """
        Fetch all tickers and keep the requested symbols.

        KuCoin Endpoint:
            GET /api/v1/market/allTickers
        """
        wanted = set(symbols)
        data = await self._get("/api/v1/market/allTickers")
        return {
            item["symbol"]: KucoinRawTicker.model_validate(item)
            for item in (data or {}).get("ticker", [])
            if item.get("symbol") in wanted
        }

    async def get_ticker(self, symbol: str) -> Optional[KucoinRawTicker]:
        """
        Fetch 24h stats for one symbol.

        KuCoin Endpoint:
            GET /api/v1/market/stats?symbol=BTC-USDT
        """
        data = await self._get("/api/v1/market/stats", {"symbol": symbol})
        # Unknown symbols come back as a stats object without prices
        if not data or data.get("last") is None:
            return None
        return KucoinRawTicker.model_validate(data)
