"""
Unit Tests for TickerCache

Run with:
    pytest tests/unit/test_ticker_cache.py -v
"""

from storage.ticker_cache import TickerCache
from tests.conftest import FakeClock, make_ticker, T0


class TestFreshness:
    """Tests for TTL handling"""

    def test_missing_entry_is_not_fresh(self):
        cache = TickerCache(clock=FakeClock())
        assert cache.is_fresh("binance", "BTC/USDT", ttl_ms=2000) is False
        assert cache.age_ms("binance", "BTC/USDT") is None

    def test_fresh_within_ttl_inclusive(self):
        """Verify an entry exactly ttl old still counts as fresh"""
        clock = FakeClock()
        cache = TickerCache(clock=clock)
        cache.put("binance", "BTC/USDT", make_ticker("binance", observed_at_epoch_millis=T0))

        clock.advance(2000)
        assert cache.is_fresh("binance", "BTC/USDT", ttl_ms=2000) is True

        clock.advance(1)
        assert cache.is_fresh("binance", "BTC/USDT", ttl_ms=2000) is False
        assert cache.age_ms("binance", "BTC/USDT") == 2001

    def test_stale_entries_stay_readable(self):
        """Verify staleness never evicts an entry"""
        clock = FakeClock()
        cache = TickerCache(clock=clock)
        ticker = make_ticker("okx")
        cache.put("okx", "BTC/USDT", ticker)
        clock.advance(60_000)

        assert cache.get("okx", "BTC/USDT") is ticker
        assert len(cache) == 1

    def test_future_stamp_has_zero_age(self):
        """Verify clock skew never yields a negative age"""
        cache = TickerCache(clock=FakeClock(T0))
        cache.put("okx", "BTC/USDT", make_ticker("okx", observed_at_epoch_millis=T0 + 500))
        assert cache.age_ms("okx", "BTC/USDT") == 0


class TestSnapshots:
    """Tests for snapshot views"""

    def test_snapshot_contains_only_requested_keys(self):
        cache = TickerCache(clock=FakeClock())
        cache.put("binance", "BTC/USDT", make_ticker("binance"))
        cache.put("binance", "ETH/USDT", make_ticker("binance", "ETH/USDT"))
        cache.put("okx", "BTC/USDT", make_ticker("okx"))

        view = cache.snapshot(["binance", "okx", "bybit"], ["BTC/USDT"])
        assert set(view) == {("binance", "BTC/USDT"), ("okx", "BTC/USDT")}

    def test_snapshot_is_unaffected_by_later_writes(self):
        """Verify a snapshot is a copy"""
        cache = TickerCache(clock=FakeClock())
        first = make_ticker("binance", bid=100, ask=100)
        cache.put("binance", "BTC/USDT", first)
        view = cache.snapshot(["binance"], ["BTC/USDT"])

        cache.put("binance", "BTC/USDT", make_ticker("binance", bid=200, ask=200))
        assert view[("binance", "BTC/USDT")] is first
        assert cache.get("binance", "BTC/USDT").bid == 200

    def test_get_snapshot_per_exchange(self):
        cache = TickerCache(clock=FakeClock())
        cache.put("okx", "BTC/USDT", make_ticker("okx"))
        cache.put("okx", "ETH/USDT", make_ticker("okx", "ETH/USDT"))
        assert sorted(cache.get_snapshot("okx")) == ["BTC/USDT", "ETH/USDT"]
        assert cache.get_snapshot("mexc") == {}

    def test_clear(self):
        cache = TickerCache(clock=FakeClock())
        cache.put("okx", "BTC/USDT", make_ticker("okx"))
        cache.clear()
        assert len(cache) == 0
