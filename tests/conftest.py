"""
Shared test doubles.

- FakeClock: hand-driven epoch-millis clock
- FakeExchange: scripted ExchangeInterface (no network)
- RecordingSleep: stands in for asyncio.sleep and records requested delays
- make_ticker: NormalizedTicker builder with sensible defaults
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Set

import pytest
from pydantic import BaseModel

from core.exceptions import MarketsUnavailable, TickerFetchFailed
from core.exchange_interface import ExchangeInterface
from core.schemas import NormalizedTicker


T0 = 1_704_110_400_000


class FakeClock:
    """Epoch-millis clock that only moves when told to."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingSleep:
    """Replacement for asyncio.sleep that yields once and records the delay."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        await asyncio.sleep(0)


class FakeRaw(BaseModel):
    last: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None
    quote_volume: Optional[float] = None


class FakeExchange(ExchangeInterface):
    """
    Scripted exchange adapter.

    Args:
        name: Exchange id
        quotes: instrument -> {"bid", "ask", "last", "quote_volume"}
        supported: Catalog (defaults to the quoted instruments)
        fee: Taker fee put on every normalized ticker
        batch_failures: Number of leading fetch_tickers calls that fail (-1 = always)
        failing_singles: Instruments whose fetch_ticker always fails
        catalog_error: list_supported_instruments raises MarketsUnavailable
        gate: When set, fetch_tickers waits on it before answering
        catalog_gate: When set, list_supported_instruments waits on it first
    """

    capabilities = {"batch_tickers": True, "single_ticker": True, "ticker_fees": False}

    def __init__(
        self,
        name: str,
        quotes: Optional[Dict[str, dict]] = None,
        supported: Optional[Iterable[str]] = None,
        fee: Optional[float] = 0.001,
        batch_failures: int = 0,
        failing_singles: Iterable[str] = (),
        catalog_error: bool = False,
        gate: Optional[asyncio.Event] = None,
        catalog_gate: Optional[asyncio.Event] = None
    ):
        self.name = name
        self.quotes = dict(quotes or {})
        self.supported: Set[str] = set(supported) if supported is not None else set(self.quotes)
        self.fee = fee
        self.batch_failures = batch_failures
        self.failing_singles = set(failing_singles)
        self.catalog_error = catalog_error
        self.gate = gate
        self.catalog_gate = catalog_gate

        self.batch_calls: List[List[str]] = []
        self.single_calls: List[str] = []
        self.initialized = False
        self.shut_down = False

    def _raw(self, instrument: str) -> Optional[FakeRaw]:
        quote = self.quotes.get(instrument)
        if quote is None:
            return None
        return FakeRaw(**quote)

    async def list_supported_instruments(self) -> Set[str]:
        if self.catalog_gate is not None:
            await self.catalog_gate.wait()
        if self.catalog_error:
            raise MarketsUnavailable(self.name, ConnectionError("catalog down"))
        return set(self.supported)

    async def fetch_tickers(self, instruments: Iterable[str]) -> Dict[str, FakeRaw]:
        instruments = list(instruments)
        self.batch_calls.append(instruments)
        if self.gate is not None:
            await self.gate.wait()
        if self.batch_failures < 0 or len(self.batch_calls) <= self.batch_failures:
            raise TickerFetchFailed(self.name, ConnectionError("batch down"))
        return {i: self._raw(i) for i in instruments if i in self.quotes}

    async def fetch_ticker(self, instrument: str) -> Optional[FakeRaw]:
        self.single_calls.append(instrument)
        if instrument in self.failing_singles:
            raise TickerFetchFailed(self.name, ConnectionError("single down"))
        return self._raw(instrument)

    def normalize(self, instrument: str, raw: FakeRaw, observed_at_epoch_millis: int) -> Optional[NormalizedTicker]:
        return NormalizedTicker.from_quote(
            exchange=self.name,
            instrument=instrument,
            last_price=raw.last,
            bid=raw.bid,
            ask=raw.ask,
            quote_volume=raw.quote_volume,
            taker_fee_rate=self.fee,
            observed_at_epoch_millis=observed_at_epoch_millis
        )

    async def initialize(self) -> None:
        self.initialized = True

    async def shutdown(self) -> None:
        self.shut_down = True


def quote(bid: float, ask: float, last: Optional[float] = None, quote_volume: Optional[float] = 1_000_000) -> dict:
    """Quote dict for FakeExchange."""
    return {
        "bid": bid,
        "ask": ask,
        "last": last if last is not None else (bid + ask) / 2,
        "quote_volume": quote_volume
    }


def make_ticker(
    exchange: str,
    instrument: str = "BTC/USDT",
    bid: float = 100.0,
    ask: float = 100.0,
    last: Optional[float] = None,
    quote_volume: Optional[float] = 1_000_000,
    taker_fee_rate: Optional[float] = 0.001,
    observed_at_epoch_millis: int = T0,
    open_price: Optional[float] = None
) -> NormalizedTicker:
    return NormalizedTicker(
        exchange=exchange,
        instrument=instrument,
        last_price=last if last is not None else (bid + ask) / 2,
        bid=bid,
        ask=ask,
        open_price=open_price,
        quote_volume=quote_volume,
        taker_fee_rate=taker_fee_rate,
        observed_at_epoch_millis=observed_at_epoch_millis
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
