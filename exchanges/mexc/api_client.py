"""
MEXC REST API Client

MEXC's spot API (v3) mirrors Binance's paths and ticker fields, so this
client reuses BinanceAPIClient and only changes what differs:

- Base URL: https://api.mexc.com
- Catalog status is "1" / "ENABLED" instead of "TRADING"
- /api/v3/ticker/24hr has no `symbols` filter: the batch call fetches every
  ticker and keeps the requested ones
"""

from typing import Dict, List, Literal

from exchanges.binance.api_client import BinanceAPIClient, BinanceStyleTicker


class MexcRawTicker(BinanceStyleTicker):
    venue: Literal["mexc"] = "mexc"


class MexcAPIClient(BinanceAPIClient):
    """Async HTTP client for MEXC Spot REST API."""

    EXCHANGE = "mexc"
    BASE_URL = "https://api.mexc.com"
    PING_PATH = "/api/v3/ping"

    ACTIVE_STATUSES = ("1", "ENABLED", "TRADING")
    ticker_model = MexcRawTicker

    async def get_tickers(self, symbols: List[str]) -> Dict[str, MexcRawTicker]:
        """
        Fetch all 24h tickers and keep the requested symbols.

        MEXC Endpoint:
            GET /api/v3/ticker/24hr
        """
        wanted = set(symbols)
        data = await self._get("/api/v3/ticker/24hr")
        return {
            item["symbol"]: self.ticker_model.model_validate(item)
            for item in data
            if item.get("symbol") in wanted
        }
