"""
Unit Tests for the shared REST adapter (exchanges.base.RestExchange)

A StubClient replaces the HTTP client, so these tests cover the catalog
cache, symbol mapping, error conversion and fee resolution without network.

Run with:
    pytest tests/unit/test_rest_exchange.py -v
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from core.exceptions import ExchangeAPIError, MarketsUnavailable, TickerFetchFailed
from core.schemas import MarketInfo
from exchanges.base import BaseAPIClient, make_market
from exchanges.okx import OkxExchange
from exchanges.okx.api_client import OkxRawTicker
from tests.conftest import FakeClock


class StubClient(BaseAPIClient):
    EXCHANGE = "okx"

    def __init__(self, markets: List[MarketInfo], tickers: Dict[str, OkxRawTicker]):
        super().__init__()
        self.markets = markets
        self.tickers = tickers
        self.market_calls = 0
        self.ticker_calls: List[List[str]] = []
        self.fail_markets = False
        self.fail_tickers = False
        self.closed = False

    async def get_markets(self) -> List[MarketInfo]:
        self.market_calls += 1
        await asyncio.sleep(0)
        if self.fail_markets:
            raise ExchangeAPIError("okx", "/api/v5/public/instruments", 503, "unavailable")
        return self.markets

    async def get_tickers(self, symbols: List[str]) -> Dict[str, OkxRawTicker]:
        self.ticker_calls.append(sorted(symbols))
        if self.fail_tickers:
            raise ExchangeAPIError("okx", "/api/v5/market/tickers", 500, "boom")
        return {s: t for s, t in self.tickers.items() if s in symbols}

    async def get_ticker(self, symbol: str) -> Optional[OkxRawTicker]:
        return self.tickers.get(symbol)

    async def ping(self) -> bool:
        raise ExchangeAPIError("okx", "/api/v5/public/time", 503, "down")

    async def __aexit__(self, *args):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client():
    markets = [
        make_market("okx", "BTC-USDT", "BTC", "USDT"),
        make_market("okx", "ETH-USDT", "ETH", "USDT", taker_fee_rate=0.0008),
    ]
    tickers = {
        "BTC-USDT": OkxRawTicker.model_validate({"instId": "BTC-USDT", "last": "100", "bidPx": "99.9", "askPx": "100.1"}),
        "ETH-USDT": OkxRawTicker.model_validate({"instId": "ETH-USDT", "last": "10"}),
    }
    return StubClient(markets, tickers)


@pytest.fixture
def exchange(client, clock):
    return OkxExchange(client, catalog_ttl=60, default_taker_fee=0.001, clock=clock)


class TestMakeMarket:
    """Tests for catalog entry construction"""

    def test_canonical_instrument(self):
        market = make_market("gateio", "btc_usdt", "btc", "usdt")
        assert market.instrument == "BTC/USDT"
        assert market.native_symbol == "btc_usdt"

    def test_missing_assets_are_skipped(self):
        assert make_market("okx", "X", None, "USDT") is None
        assert make_market("okx", "X", "BTC", "") is None


class TestMarketCatalog:
    """Tests for the TTL-cached catalog"""

    @pytest.mark.asyncio
    async def test_catalog_is_cached_within_ttl(self, exchange, client, clock):
        assert await exchange.list_supported_instruments() == {"BTC/USDT", "ETH/USDT"}
        clock.advance(59_000)
        await exchange.list_supported_instruments()
        assert client.market_calls == 1

        clock.advance(1_000)
        await exchange.list_supported_instruments()
        assert client.market_calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_loads_issue_one_request(self, exchange, client):
        await asyncio.gather(*(exchange.list_supported_instruments() for _ in range(5)))
        assert client.market_calls == 1

    @pytest.mark.asyncio
    async def test_catalog_failure_raises_markets_unavailable(self, exchange, client):
        client.fail_markets = True
        with pytest.raises(MarketsUnavailable):
            await exchange.list_supported_instruments()


class TestTickerFetching:
    """Tests for symbol mapping and error conversion"""

    @pytest.mark.asyncio
    async def test_fetch_tickers_maps_native_symbols_back(self, exchange, client):
        raw = await exchange.fetch_tickers(["BTC/USDT", "ETH/USDT", "SOL/USDT"])
        assert set(raw) == {"BTC/USDT", "ETH/USDT"}
        assert client.ticker_calls == [["BTC-USDT", "ETH-USDT"]]

    @pytest.mark.asyncio
    async def test_fetch_tickers_nothing_supported_makes_no_call(self, exchange, client):
        assert await exchange.fetch_tickers(["SOL/USDT"]) == {}
        assert client.ticker_calls == []

    @pytest.mark.asyncio
    async def test_client_error_becomes_ticker_fetch_failed(self, exchange, client):
        client.fail_tickers = True
        with pytest.raises(TickerFetchFailed):
            await exchange.fetch_tickers(["BTC/USDT"])

    @pytest.mark.asyncio
    async def test_catalog_error_during_fetch_becomes_ticker_fetch_failed(self, exchange, client):
        client.fail_markets = True
        with pytest.raises(TickerFetchFailed):
            await exchange.fetch_ticker("BTC/USDT")

    @pytest.mark.asyncio
    async def test_fetch_ticker_unsupported_returns_none(self, exchange):
        assert await exchange.fetch_ticker("SOL/USDT") is None


class TestNormalizationAndFees:
    """Tests for normalize() and fee precedence"""

    @pytest.mark.asyncio
    async def test_normalize_uses_catalog_then_default_fee(self, exchange):
        raw = await exchange.fetch_tickers(["BTC/USDT", "ETH/USDT"])
        btc = exchange.normalize("BTC/USDT", raw["BTC/USDT"], 1)
        eth = exchange.normalize("ETH/USDT", raw["ETH/USDT"], 1)

        assert btc.taker_fee_rate == 0.001
        assert eth.taker_fee_rate == 0.0008
        assert btc.bid == 99.9 and btc.ask == 100.1
        assert eth.bid == eth.ask == 10.0

    def test_reported_fee_wins(self, exchange):
        assert exchange.taker_fee("BTC/USDT", reported=0.0) == 0.0


class TestLifecycle:
    """Tests for client ownership and health checks"""

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, exchange, client):
        await exchange.shutdown()
        assert client.closed is False

    @pytest.mark.asyncio
    async def test_health_check_false_on_error(self, exchange):
        assert await exchange.health_check() is False
