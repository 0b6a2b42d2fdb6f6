"""
Binance REST API Client

This module provides an async HTTP client for the Binance Spot public REST API.
It handles:
- Market catalog loading (exchangeInfo)
- Batched and single 24h ticker requests
- Parsing responses into BinanceRawTicker

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Endpoints Used:
    - GET /api/v3/exchangeInfo              - Market catalog
    - GET /api/v3/ticker/24hr?symbols=[...] - Batched 24h tickers
    - GET /api/v3/ticker/24hr?symbol=       - Single 24h ticker
    - GET /api/v3/ping                      - Health check

Usage:
    async with BinanceAPIClient() as client:
        markets = await client.get_markets()
        tickers = await client.get_tickers(["BTCUSDT", "ETHUSDT"])
"""

import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from core.schemas import MarketInfo
from exchanges.base import BaseAPIClient, RawTicker, make_market


class BinanceStyleTicker(RawTicker):
    """
    Fields of a /api/v3/ticker/24hr entry (shared by Binance and MEXC).

    Response Format:
        {
          "symbol": "BTCUSDT",
          "lastPrice": "43250.50",
          "bidPrice": "43250.10",
          "askPrice": "43250.90",
          "openPrice": "42800.00",
          "highPrice": "43600.00",
          "lowPrice": "42500.00",
          "volume": "18250.2",
          "quoteVolume": "789321456.0",
          ...
        }
    """

    symbol: str
    last_price: Optional[float] = Field(None, alias="lastPrice")
    bid_price: Optional[float] = Field(None, alias="bidPrice")
    ask_price: Optional[float] = Field(None, alias="askPrice")
    open_price: Optional[float] = Field(None, alias="openPrice")
    high_price: Optional[float] = Field(None, alias="highPrice")
    low_price: Optional[float] = Field(None, alias="lowPrice")
    volume: Optional[float] = None
    quote_volume: Optional[float] = Field(None, alias="quoteVolume")


class BinanceRawTicker(BinanceStyleTicker):
    venue: Literal["binance"] = "binance"


class BinanceAPIClient(BaseAPIClient):
    """
    Async HTTP client for Binance Spot REST API

    Example:
        >>> async with BinanceAPIClient() as client:
        ...     tickers = await client.get_tickers(["BTCUSDT"])
        ...     print(tickers["BTCUSDT"].last_price)

    Notes:
        - No API key needed (public endpoints only)
        - The batched endpoint takes a JSON array of symbols; one unknown
          symbol fails the whole request with HTTP 400
    """

    EXCHANGE = "binance"
    BASE_URL = "https://api.binance.com"
    PING_PATH = "/api/v3/ping"

    ACTIVE_STATUSES = ("TRADING",)
    ticker_model = BinanceRawTicker

    # ============================================
    # API Methods
    # ============================================

    def _parse_markets(self, data: Dict[str, Any]) -> List[MarketInfo]:
        markets = []
        for item in data.get("symbols", []):
            if str(item.get("status")) not in self.ACTIVE_STATUSES:
                continue
            market = make_market(
                self.EXCHANGE,
                item["symbol"],
                item.get("baseAsset"),
                item.get("quoteAsset")
            )
            if market is not None:
                markets.append(market)
        return markets

    async def get_markets(self) -> List[MarketInfo]:
        """
        Fetch the spot market catalog.

        Binance Endpoint:
            GET /api/v3/exchangeInfo

        Returns:
            MarketInfo for every symbol currently trading
        """
        self.logger.info(f"Fetching {self.EXCHANGE} market catalog")
        data = await self._get("/api/v3/exchangeInfo")
        return self._parse_markets(data)

    async def get_tickers(self, symbols: List[str]) -> Dict[str, BinanceStyleTicker]:
        """
        Fetch 24h tickers for several symbols in one request.

        Binance Endpoint:
            GET /api/v3/ticker/24hr?symbols=["BTCUSDT","ETHUSDT"]

        Returns:
            native symbol -> raw ticker
        """
        params = {"symbols": json.dumps(sorted(symbols), separators=(",", ":"))}
        data = await self._get("/api/v3/ticker/24hr", params)
        return {
            ticker.symbol: ticker
            for ticker in (self.ticker_model.model_validate(item) for item in data)
        }

    async def get_ticker(self, symbol: str) -> Optional[BinanceStyleTicker]:
        """
        Fetch the 24h ticker for one symbol.

        Binance Endpoint:
            GET /api/v3/ticker/24hr?symbol=BTCUSDT
        """
        data = await self._get("/api/v3/ticker/24hr", {"symbol": symbol})
        if not data:
            return None
        return self.ticker_model.model_validate(data)
