"""
OKX REST API Client

This module provides an async HTTP client for the OKX v5 public REST API (SPOT).

API Documentation:
    https://www.okx.com/docs-v5/en/

Endpoints Used:
    - GET /api/v5/public/instruments?instType=SPOT - Market catalog
    - GET /api/v5/market/tickers?instType=SPOT     - All spot tickers
    - GET /api/v5/market/ticker?instId=BTC-USDT    - Single ticker
    - GET /api/v5/public/time                      - Health check

Response Envelope:
    {"code": "0", "msg": "", "data": [...]}
    Any code other than "0" is an error even on HTTP 200.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from core.exceptions import ExchangeAPIError
from core.schemas import MarketInfo
from exchanges.base import BaseAPIClient, RawTicker, make_market


class OkxRawTicker(RawTicker):
    """
    One entry of data from /api/v5/market/ticker(s).

    For SPOT instruments vol24h is in base currency and volCcy24h in quote
    currency.
    """

    venue: Literal["okx"] = "okx"
    inst_id: str = Field(..., alias="instId")
    last: Optional[float] = None
    bid_px: Optional[float] = Field(None, alias="bidPx")
    ask_px: Optional[float] = Field(None, alias="askPx")
    open_24h: Optional[float] = Field(None, alias="open24h")
    high_24h: Optional[float] = Field(None, alias="high24h")
    low_24h: Optional[float] = Field(None, alias="low24h")
    vol_24h: Optional[float] = Field(None, alias="vol24h")
    vol_ccy_24h: Optional[float] = Field(None, alias="volCcy24h")


class OkxAPIClient(BaseAPIClient):
    """Async HTTP client for OKX Spot market data."""

    EXCHANGE = "okx"
    BASE_URL = "https://www.okx.com"
    PING_PATH = "/api/v5/public/time"

    def _unwrap(self, path: str, data: Any) -> Any:
        if str(data.get("code")) != "0":
            raise ExchangeAPIError(self.EXCHANGE, path, None, data.get("msg") or "Unknown error")
        return data.get("data", [])

    # ============================================
    # Market Data Methods
    # ============================================

    async def get_markets(self) -> List[MarketInfo]:
        """
        Fetch the SPOT instrument catalog.

        OKX Endpoint:
            GET /api/v5/public/instruments?instType=SPOT
        """
        self.logger.info("Fetching OKX spot instruments")
        data = await self._get("/api/v5/public/instruments", {"instType": "SPOT"})

        markets = []
        for item in data:
            if item.get("state") != "live":
                continue
            market = make_market(self.EXCHANGE, item["instId"], item.get("baseCcy"), item.get("quoteCcy"))
            if market is not None:
                markets.append(market)
        return markets

    async def get_tickers(self, symbols: List[str]) -> Dict[str, OkxRawTicker]:
        """
        Fetch all SPOT tickers and keep the requested instIds.

        OKX Endpoint:
            GET /api/v5/market/tickers?instType=SPOT
        """
        wanted = set(symbols)
        data = await self._get("/api/v5/market/tickers", {"instType": "SPOT"})
        return {
            item["instId"]: OkxRawTicker.model_validate(item)
            for item in data
            if item.get("instId") in wanted
        }

    async def get_ticker(self, symbol: str) -> Optional[OkxRawTicker]:
        """
        Fetch one ticker.

        OKX Endpoint:
            GET /api/v5/market/ticker?instId=BTC-USDT
        """
        data = await self._get("/api/v5/market/ticker", {"instId": symbol})
        if not data:
            return None
        return OkxRawTicker.model_validate(data[0])
