"""
Unit Tests for TickerPoller

Run with:
    pytest tests/unit/test_ticker_poller.py -v
"""

import asyncio

import pytest

from core.exchange_manager import ExchangeManager
from services.fetch_orchestrator import FetchOrchestrator
from services.ticker_poller import TickerPoller
from storage.ticker_cache import TickerCache
from tests.conftest import FakeExchange, quote

BTC = "BTC/USDT"


def build_poller(*exchanges, clock, sleep, interval=0.01):
    manager = ExchangeManager(exchanges={e.name: e for e in exchanges})
    cache = TickerCache(clock=clock)
    orchestrator = FetchOrchestrator(manager, cache, sleep=sleep)
    poller = TickerPoller(
        orchestrator,
        exchanges=lambda: [e.name for e in exchanges],
        instruments=lambda: [BTC],
        interval=interval,
        ttl_ms=0
    )
    return poller, cache


class TestTickerPoller:
    """Tests for the background refresh loop"""

    @pytest.mark.asyncio
    async def test_poll_once_fills_cache(self, clock, recording_sleep):
        binance = FakeExchange("binance", {BTC: quote(99.9, 100.0)})
        poller, cache = build_poller(binance, clock=clock, sleep=recording_sleep)

        await poller.poll_once()

        assert cache.get("binance", BTC) is not None
        assert poller.cycles == 1

    @pytest.mark.asyncio
    async def test_poll_once_swallows_total_failure(self, clock, recording_sleep, caplog):
        down = FakeExchange("binance", catalog_error=True)
        poller, _ = build_poller(down, clock=clock, sleep=recording_sleep)

        await poller.poll_once()

        assert poller.cycles == 1
        assert "Poll cycle failed" in caplog.text

    @pytest.mark.asyncio
    async def test_degraded_cycle_is_logged(self, clock, recording_sleep, caplog):
        up = FakeExchange("binance", {BTC: quote(99.9, 100.0)})
        down = FakeExchange("okx", catalog_error=True)
        poller, _ = build_poller(up, down, clock=clock, sleep=recording_sleep)

        await poller.poll_once()

        assert "degraded for: okx" in caplog.text

    @pytest.mark.asyncio
    async def test_start_runs_cycles_until_stopped(self, clock, recording_sleep):
        binance = FakeExchange("binance", {BTC: quote(99.9, 100.0)})
        poller, _ = build_poller(binance, clock=clock, sleep=recording_sleep, interval=0.01)

        await poller.start()
        assert poller.is_running
        await asyncio.sleep(0.05)
        await poller.stop()

        assert poller.is_running is False
        assert poller.cycles >= 2
        cycles = poller.cycles
        await asyncio.sleep(0.03)
        assert poller.cycles == cycles

    @pytest.mark.asyncio
    async def test_zero_interval_disables_poller(self, clock, recording_sleep):
        poller, _ = build_poller(FakeExchange("binance"), clock=clock, sleep=recording_sleep, interval=0)
        await poller.start()
        assert poller.is_running is False
        await poller.stop()
