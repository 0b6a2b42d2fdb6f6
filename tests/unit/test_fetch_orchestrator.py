"""
Unit Tests for FetchOrchestrator

These tests verify that:
- Fresh entries are never refetched and stale ones are
- Batch fetches retry with linear backoff, then fall back to single requests
- Failures degrade per exchange and never evict cached data
- Concurrent callers share one refresh per exchange
- Timeouts and deadlines are honoured

All exchanges are FakeExchange instances; time is driven by FakeClock and
backoff sleeps are recorded instead of slept.

Run with:
    pytest tests/unit/test_fetch_orchestrator.py -v
"""

import asyncio

import pytest

from core.exceptions import AllSourcesUnavailable
from core.exchange_manager import ExchangeManager
from core.retry import RetryPolicy
from core.schemas import FetchStatus
from services.fetch_orchestrator import FetchOrchestrator
from storage.ticker_cache import TickerCache
from tests.conftest import FakeExchange, make_ticker, quote, T0

BTC = "BTC/USDT"
ETH = "ETH/USDT"
SOL = "SOL/USDT"
TTL = 2000


def build(*exchanges, clock, sleep, retries=2, fallback_delay=0.1, request_timeout=10):
    manager = ExchangeManager(exchanges={e.name: e for e in exchanges})
    cache = TickerCache(clock=clock)
    orchestrator = FetchOrchestrator(
        manager,
        cache,
        retry_policy=RetryPolicy.from_retries(retries, 1.0),
        fallback_delay=fallback_delay,
        request_timeout=request_timeout,
        sleep=sleep
    )
    return orchestrator, cache


async def settle(rounds: int = 50):
    for _ in range(rounds):
        await asyncio.sleep(0)


# ============================================
# Freshness
# ============================================

class TestFreshness:
    """Tests for TTL-driven refetching"""

    @pytest.mark.asyncio
    async def test_populates_cache_and_stamps_receipt_time(self, clock, recording_sleep):
        binance = FakeExchange("binance", {BTC: quote(99.9, 100.0), ETH: quote(9.9, 10.0)})
        orchestrator, cache = build(binance, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["binance"], [BTC, ETH], TTL)

        assert outcomes["binance"].status == FetchStatus.OK
        assert sorted(outcomes["binance"].refreshed) == [BTC, ETH]
        assert cache.get("binance", BTC).observed_at_epoch_millis == clock.now
        assert cache.get("binance", BTC).ask == 100.0
        assert binance.batch_calls == [[BTC, ETH]]

    @pytest.mark.asyncio
    async def test_fresh_entries_are_not_refetched(self, clock, recording_sleep):
        binance = FakeExchange("binance", {BTC: quote(99.9, 100.0)})
        orchestrator, _ = build(binance, clock=clock, sleep=recording_sleep)

        await orchestrator.ensure_fresh(["binance"], [BTC], TTL)
        clock.advance(TTL)
        outcomes = await orchestrator.ensure_fresh(["binance"], [BTC], TTL)

        assert len(binance.batch_calls) == 1
        assert outcomes["binance"].status == FetchStatus.OK
        assert outcomes["binance"].skipped_fresh is True

    @pytest.mark.asyncio
    async def test_only_stale_instruments_are_refetched(self, clock, recording_sleep):
        binance = FakeExchange("binance", {BTC: quote(99.9, 100.0), ETH: quote(9.9, 10.0)})
        orchestrator, cache = build(binance, clock=clock, sleep=recording_sleep)
        cache.put("binance", BTC, make_ticker("binance", observed_at_epoch_millis=clock.now))
        cache.put("binance", ETH, make_ticker("binance", ETH, observed_at_epoch_millis=clock.now - TTL - 1))

        await orchestrator.ensure_fresh(["binance"], [BTC, ETH], TTL)

        assert binance.batch_calls == [[ETH]]

    @pytest.mark.asyncio
    async def test_unsupported_instruments_are_not_requested(self, clock, recording_sleep):
        okx = FakeExchange("okx", {BTC: quote(99.9, 100.0)}, supported=[BTC])
        orchestrator, _ = build(okx, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["okx"], [BTC, SOL], TTL)

        assert okx.batch_calls == [[BTC]]
        assert outcomes["okx"].status == FetchStatus.OK
        assert SOL not in outcomes["okx"].missing

    @pytest.mark.asyncio
    async def test_exchange_listing_nothing_requested_makes_no_call(self, clock, recording_sleep):
        okx = FakeExchange("okx", supported=[ETH])
        orchestrator, _ = build(okx, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["okx"], [BTC], TTL)

        assert okx.batch_calls == []
        assert outcomes["okx"].skipped_fresh is True


# ============================================
# Retry & Fallback
# ============================================

class TestRetryAndFallback:
    """Tests for batch retries and the per-instrument fallback"""

    @pytest.mark.asyncio
    async def test_batch_retried_with_linear_backoff(self, clock, recording_sleep):
        bybit = FakeExchange("bybit", {BTC: quote(99.9, 100.0)}, batch_failures=2)
        orchestrator, cache = build(bybit, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["bybit"], [BTC], TTL)

        assert len(bybit.batch_calls) == 3
        assert recording_sleep.calls == [1.0, 2.0]
        assert bybit.single_calls == []
        assert outcomes["bybit"].status == FetchStatus.OK
        assert cache.get("bybit", BTC) is not None

    @pytest.mark.asyncio
    async def test_fallback_fetches_each_instrument_with_spacing(self, clock, recording_sleep):
        bybit = FakeExchange(
            "bybit",
            {BTC: quote(99.9, 100.0), ETH: quote(9.9, 10.0), SOL: quote(1.0, 1.01)},
            batch_failures=-1,
            failing_singles=[ETH]
        )
        orchestrator, cache = build(bybit, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["bybit"], [BTC, ETH, SOL], TTL)

        assert len(bybit.batch_calls) == 3
        assert bybit.single_calls == [BTC, ETH, SOL]
        assert recording_sleep.calls == [1.0, 2.0, 0.1, 0.1]
        outcome = outcomes["bybit"]
        assert outcome.status == FetchStatus.PARTIAL
        assert outcome.missing == [ETH]
        assert sorted(outcome.refreshed) == [BTC, SOL]
        assert outcome.error is not None
        assert cache.get("bybit", ETH) is None

    @pytest.mark.asyncio
    async def test_unusable_ticker_is_discarded(self, clock, recording_sleep):
        okx = FakeExchange("okx", {BTC: quote(99.9, 100.0), ETH: {"last": None}})
        orchestrator, cache = build(okx, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["okx"], [BTC, ETH], TTL)

        assert outcomes["okx"].status == FetchStatus.PARTIAL
        assert outcomes["okx"].missing == [ETH]
        assert cache.get("okx", ETH) is None

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failed_attempt(self, clock, recording_sleep):
        """A hanging batch call times out and the fallback takes over"""
        hang = asyncio.Event()
        okx = FakeExchange("okx", {BTC: quote(99.9, 100.0)}, gate=hang)
        orchestrator, cache = build(okx, clock=clock, sleep=recording_sleep, retries=0, request_timeout=0.05)

        outcomes = await orchestrator.ensure_fresh(["okx"], [BTC], TTL)

        assert len(okx.batch_calls) == 1
        assert okx.single_calls == [BTC]
        assert outcomes["okx"].status == FetchStatus.OK
        assert cache.get("okx", BTC) is not None


# ============================================
# Degradation
# ============================================

class TestDegradation:
    """Tests for partial success and total failure"""

    @pytest.mark.asyncio
    async def test_failed_exchange_keeps_stale_data(self, clock, recording_sleep):
        """One exchange down: the other refreshes, the stale entry survives"""
        binance = FakeExchange("binance", {BTC: quote(99.9, 100.0)})
        kucoin = FakeExchange("kucoin", {BTC: quote(100.2, 100.3)}, batch_failures=-1, failing_singles=[BTC])
        orchestrator, cache = build(binance, kucoin, clock=clock, sleep=recording_sleep)
        old = make_ticker("kucoin", observed_at_epoch_millis=T0 - 60_000)
        cache.put("kucoin", BTC, old)

        outcomes = await orchestrator.ensure_fresh(["binance", "kucoin"], [BTC], TTL)

        assert outcomes["binance"].status == FetchStatus.OK
        assert outcomes["kucoin"].status == FetchStatus.FAILED
        assert outcomes["kucoin"].missing == [BTC]
        assert cache.get("kucoin", BTC) is old
        assert cache.age_ms("kucoin", BTC) == 60_000

    @pytest.mark.asyncio
    async def test_catalog_failure_fails_only_that_exchange(self, clock, recording_sleep):
        binance = FakeExchange("binance", {BTC: quote(99.9, 100.0)})
        gateio = FakeExchange("gateio", {BTC: quote(99.9, 100.0)}, catalog_error=True)
        orchestrator, _ = build(binance, gateio, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["binance", "gateio"], [BTC], TTL)

        assert outcomes["binance"].status == FetchStatus.OK
        assert outcomes["gateio"].status == FetchStatus.FAILED
        assert "catalog" in outcomes["gateio"].error.lower()
        assert gateio.batch_calls == []

    @pytest.mark.asyncio
    async def test_all_exchanges_failing_raises(self, clock, recording_sleep):
        binance = FakeExchange("binance", {BTC: quote(1, 1)}, batch_failures=-1, failing_singles=[BTC])
        okx = FakeExchange("okx", catalog_error=True)
        orchestrator, _ = build(binance, okx, clock=clock, sleep=recording_sleep)

        with pytest.raises(AllSourcesUnavailable) as exc_info:
            await orchestrator.ensure_fresh(["binance", "okx"], [BTC], TTL)

        assert set(exc_info.value.outcomes) == {"binance", "okx"}
        assert all(o.status == FetchStatus.FAILED for o in exc_info.value.outcomes.values())

    @pytest.mark.asyncio
    async def test_unregistered_exchange_is_reported_failed(self, clock, recording_sleep):
        binance = FakeExchange("binance", {BTC: quote(99.9, 100.0)})
        orchestrator, _ = build(binance, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["binance", "mexc"], [BTC], TTL)

        assert outcomes["mexc"].status == FetchStatus.FAILED

    @pytest.mark.asyncio
    async def test_no_exchanges_is_a_no_op(self, clock, recording_sleep):
        orchestrator, _ = build(clock=clock, sleep=recording_sleep)
        assert await orchestrator.ensure_fresh([], [BTC], TTL) == {}


# ============================================
# Concurrency
# ============================================

class TestConcurrency:
    """Tests for single-flight coalescing and deadlines"""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_batch_call(self, clock, recording_sleep):
        gate = asyncio.Event()
        binance = FakeExchange("binance", {BTC: quote(99.9, 100.0)}, gate=gate)
        orchestrator, cache = build(binance, clock=clock, sleep=recording_sleep)

        first = asyncio.ensure_future(orchestrator.ensure_fresh(["binance"], [BTC], TTL))
        second = asyncio.ensure_future(orchestrator.ensure_fresh(["binance"], [BTC], TTL))
        await settle()
        gate.set()
        outcomes = await asyncio.gather(first, second)

        assert len(binance.batch_calls) == 1
        assert all(o["binance"].status == FetchStatus.OK for o in outcomes)
        assert all(o["binance"].refreshed == [BTC] for o in outcomes)
        assert cache.get("binance", BTC) is not None

    @pytest.mark.asyncio
    async def test_exchanges_refresh_in_parallel(self, clock, recording_sleep):
        """A blocked exchange does not hold up the others' batch calls"""
        gate = asyncio.Event()
        slow = FakeExchange("binance", {BTC: quote(99.9, 100.0)}, gate=gate)
        fast = FakeExchange("okx", {BTC: quote(99.9, 100.0)})
        orchestrator, cache = build(slow, fast, clock=clock, sleep=recording_sleep)

        task = asyncio.ensure_future(orchestrator.ensure_fresh(["binance", "okx"], [BTC], TTL))
        await settle()
        assert cache.get("okx", BTC) is not None
        assert not task.done()

        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_deadline_reports_pending_and_refresh_continues(self, clock, recording_sleep):
        gate = asyncio.Event()
        slow = FakeExchange("binance", {BTC: quote(99.9, 100.0)}, gate=gate)
        fast = FakeExchange("okx", {BTC: quote(99.9, 100.0)})
        orchestrator, cache = build(slow, fast, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["binance", "okx"], [BTC], TTL, deadline=0.05)

        assert outcomes["okx"].status == FetchStatus.OK
        assert outcomes["binance"].status == FetchStatus.PENDING
        assert cache.get("binance", BTC) is None

        gate.set()
        await settle()
        assert cache.get("binance", BTC) is not None
        assert len(slow.batch_calls) == 1

    @pytest.mark.asyncio
    async def test_slow_catalog_outlives_deadline(self, clock, recording_sleep):
        """A cold catalog load past the deadline still ends in a cache write"""
        catalog_gate = asyncio.Event()
        slow = FakeExchange("binance", {BTC: quote(99.9, 100.0)}, catalog_gate=catalog_gate)
        fast = FakeExchange("okx", {BTC: quote(99.9, 100.0)})
        orchestrator, cache = build(slow, fast, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["binance", "okx"], [BTC], TTL, deadline=0.01)

        assert outcomes["binance"].status == FetchStatus.PENDING
        assert slow.batch_calls == []

        catalog_gate.set()
        await settle()
        assert slow.batch_calls == [[BTC]]
        assert cache.get("binance", BTC) is not None

    @pytest.mark.asyncio
    async def test_close_cancels_inflight_refreshes(self, clock, recording_sleep):
        gate = asyncio.Event()
        slow = FakeExchange("binance", {BTC: quote(99.9, 100.0)}, gate=gate)
        orchestrator, cache = build(slow, clock=clock, sleep=recording_sleep)

        outcomes = await orchestrator.ensure_fresh(["binance"], [BTC], TTL, deadline=0.01)
        assert outcomes["binance"].status == FetchStatus.PENDING

        await orchestrator.close()
        gate.set()
        await settle()
        assert cache.get("binance", BTC) is None
