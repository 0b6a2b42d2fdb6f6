"""
Normalized Data Schemas

This module defines Pydantic models for all data the scanner passes around.
These schemas provide a unified, exchange-agnostic data format.

Key Principle:
    Regardless of which exchange a quote comes from (Binance, KuCoin, OKX, etc.),
    it gets normalized into NormalizedTicker. The opportunity engine and API
    consumers only ever see these standardized schemas.

Models:
    - MarketInfo: One entry of an exchange's market catalog
    - NormalizedTicker: Canonical per-(exchange, instrument) price snapshot
    - Opportunity: One ranked buy-here / sell-there pairing
    - OpportunityQuery / OpportunityResult: Engine input and output
    - ExchangeRefreshOutcome: Per-exchange result of a refresh cycle

Identifiers:
    - Exchange ids are lowercase strings drawn from ExchangeId
    - Instruments are "BASE/QUOTE" strings, upper-cased (e.g., "BTC/USDT")
"""

import math
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from core.exceptions import InvalidInstrument, UnknownExchange
from core.utils.time import to_utc_datetime


# ============================================
# Identifiers
# ============================================

class ExchangeId(str, Enum):
    """Exchanges the scanner knows how to talk to."""

    BINANCE = "binance"
    KUCOIN = "kucoin"
    BYBIT = "bybit"
    OKX = "okx"
    MEXC = "mexc"
    GATEIO = "gateio"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


def parse_exchange(name: str) -> str:
    """
    Validate and normalize an exchange identifier.

    Args:
        name: Exchange id in any case (e.g., "Binance", " okx ")

    Returns:
        Lowercase exchange id

    Raises:
        UnknownExchange: If the id is not a member of ExchangeId

    Example:
        >>> parse_exchange("KuCoin")
        'kucoin'
    """
    if not isinstance(name, str):
        raise UnknownExchange(str(name))
    normalized = name.strip().lower()
    if normalized not in ExchangeId.values():
        raise UnknownExchange(name)
    return normalized


def normalize_instrument(value: str) -> str:
    """
    Case-normalize an instrument into its canonical "BASE/QUOTE" form.

    Args:
        value: Instrument string (e.g., "btc/usdt", " ETH / USDT ")

    Returns:
        Canonical instrument (e.g., "BTC/USDT")

    Raises:
        InvalidInstrument: If the value is not exactly two non-empty asset codes
                           separated by "/"

    Example:
        >>> normalize_instrument("sol/usdt")
        'SOL/USDT'
    """
    if not isinstance(value, str):
        raise InvalidInstrument(value)
    parts = [part.strip() for part in value.upper().split("/")]
    if len(parts) != 2 or not all(parts):
        raise InvalidInstrument(value)
    return f"{parts[0]}/{parts[1]}"


# ============================================
# Base Market Data Model
# ============================================

class BaseMarketModel(BaseModel):
    """
    Base model for all per-(exchange, instrument) schemas.

    Defines the identity fields every market data type shares:
    - exchange: The source exchange (lowercase)
    - instrument: The trading pair in canonical "BASE/QUOTE" form

    Identity is immutable: all subclasses are frozen, so a fresh fetch always
    produces a new value instead of mutating an old one.
    """

    model_config = ConfigDict(frozen=True)

    exchange: str = Field(
        ...,
        description="Source exchange identifier (lowercase)",
        examples=["binance", "kucoin", "okx"]
    )

    instrument: str = Field(
        ...,
        description="Trading pair in BASE/QUOTE form",
        examples=["BTC/USDT", "ETH/USDT"]
    )

    @field_validator("instrument")
    @classmethod
    def validate_instrument(cls, v: str) -> str:
        """Ensure instrument is canonical BASE/QUOTE"""
        return normalize_instrument(v)

    @field_validator("exchange")
    @classmethod
    def validate_exchange(cls, v: str) -> str:
        """Ensure exchange is lowercase"""
        return v.strip().lower()


# ============================================
# Market Catalog Schema
# ============================================

class MarketInfo(BaseMarketModel):
    """
    One tradeable market from an exchange's catalog.

    Additional Attributes:
        native_symbol: The exchange's own spelling (BTCUSDT, BTC-USDT, BTC_USDT)
        base: Base asset code
        quote: Quote asset code
        taker_fee_rate: Taker fee as a fraction, when the catalog reports one
    """

    native_symbol: str
    base: str
    quote: str
    taker_fee_rate: Optional[float] = Field(None, ge=0)


# ============================================
# Normalized Ticker Schema
# ============================================

class NormalizedTicker(BaseMarketModel):
    """
    Canonical per-(exchange, instrument) ticker snapshot.

    Inherits from BaseMarketModel:
        - exchange: Source exchange (e.g., "binance")
        - instrument: Trading pair (e.g., "BTC/USDT")

    Additional Attributes:
        last_price: Last traded price (required)
        bid: Best bid; equals last_price when the exchange omitted it
        ask: Best ask; equals last_price when the exchange omitted it
        open_price, high_price, low_price: 24h window statistics
        base_volume: 24h volume in base asset
        quote_volume: 24h volume in quote asset (derived from base_volume * last_price
                      when not reported natively)
        taker_fee_rate: Taker fee fraction (0.001 = 0.1%)
        observed_at_epoch_millis: When this snapshot was captured

    Example:
        >>> ticker = NormalizedTicker.from_quote(
        ...     exchange="binance",
        ...     instrument="BTC/USDT",
        ...     last_price=100.5,
        ...     bid=100.0,
        ...     ask=101.0,
        ...     base_volume=10_000,
        ...     observed_at_epoch_millis=1704110400000
        ... )
        >>> ticker.quote_volume
        1005000.0
    """

    last_price: float = Field(..., gt=0, description="Last traded price")
    bid: float = Field(..., gt=0, description="Best bid price")
    ask: float = Field(..., gt=0, description="Best ask price")

    open_price: Optional[float] = Field(None, ge=0, description="24h open price")
    high_price: Optional[float] = Field(None, ge=0, description="24h high price")
    low_price: Optional[float] = Field(None, ge=0, description="24h low price")

    base_volume: Optional[float] = Field(None, ge=0, description="24h volume in base asset")
    quote_volume: Optional[float] = Field(None, ge=0, description="24h volume in quote asset")

    taker_fee_rate: Optional[float] = Field(None, ge=0, description="Taker fee as a fraction")

    observed_at_epoch_millis: int = Field(..., ge=0, description="Capture time (ms since epoch)")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "exchange": "binance",
                "instrument": "BTC/USDT",
                "last_price": 43250.5,
                "bid": 43250.1,
                "ask": 43250.9,
                "open_price": 42800.0,
                "high_price": 43600.0,
                "low_price": 42500.0,
                "base_volume": 18250.2,
                "quote_volume": 789321456.0,
                "taker_fee_rate": 0.001,
                "observed_at_epoch_millis": 1704110400000
            }
        }
    )

    @classmethod
    def from_quote(
        cls,
        *,
        exchange: str,
        instrument: str,
        last_price: Optional[float],
        observed_at_epoch_millis: int,
        bid: Optional[float] = None,
        ask: Optional[float] = None,
        open_price: Optional[float] = None,
        high_price: Optional[float] = None,
        low_price: Optional[float] = None,
        base_volume: Optional[float] = None,
        quote_volume: Optional[float] = None,
        taker_fee_rate: Optional[float] = None
    ) -> Optional["NormalizedTicker"]:
        """
        Build a ticker from exchange-mapped fields, applying the fill-in rules.

        Rules:
            - No (or non-positive) last price: unusable, returns None
            - Missing or zero bid/ask: falls back to last price
            - Missing quote volume: base_volume * last_price when base volume is known

        Nothing else is computed here.
        """
        if not last_price or last_price <= 0:
            return None

        if quote_volume is None and base_volume is not None:
            quote_volume = base_volume * last_price

        return cls(
            exchange=exchange,
            instrument=instrument,
            last_price=last_price,
            bid=bid if bid else last_price,
            ask=ask if ask else last_price,
            open_price=open_price,
            high_price=high_price,
            low_price=low_price,
            base_volume=base_volume,
            quote_volume=quote_volume,
            taker_fee_rate=taker_fee_rate,
            observed_at_epoch_millis=observed_at_epoch_millis
        )

    @computed_field
    @property
    def change_percent(self) -> Optional[float]:
        """24h change in percent, when the open price is known."""
        if not self.open_price:
            return None
        return (self.last_price - self.open_price) / self.open_price * 100

    @property
    def observed_at(self):
        """Capture time as a UTC datetime."""
        return to_utc_datetime(self.observed_at_epoch_millis / 1000.0)


# ============================================
# Opportunity Schemas
# ============================================

class Opportunity(BaseModel):
    """
    One cross-exchange arbitrage pairing: buy on one exchange, sell on another.

    The (buy_exchange, sell_exchange) pair is ordered. Opportunities are computed
    fresh for every query and never cached.

    Attributes:
        instrument: Trading pair
        buy_exchange: Where the instrument is bought (at its ask)
        sell_exchange: Where the instrument is sold (at its bid)
        buy_price: Ask on the buy side
        sell_price: Bid on the sell side
        spread_absolute: sell_price - buy_price
        spread_percent: spread_absolute / buy_price * 100
        net_percent: spread_percent minus both taker fees (None without fee data)
        liquidity_floor: min(buy quote volume, sell quote volume), 0 if either is unknown
        score: Ranking value (margin damped by log10 of liquidity)
    """

    model_config = ConfigDict(frozen=True)

    instrument: str
    buy_exchange: str
    sell_exchange: str
    buy_price: float
    sell_price: float
    spread_absolute: float
    spread_percent: float
    net_percent: Optional[float] = None
    liquidity_floor: float = 0.0
    score: float

    # Per-leg context for the consumer
    buy_quote_volume: Optional[float] = None
    sell_quote_volume: Optional[float] = None
    buy_taker_fee_rate: Optional[float] = None
    sell_taker_fee_rate: Optional[float] = None
    buy_change_percent: Optional[float] = None
    sell_change_percent: Optional[float] = None
    buy_observed_at_epoch_millis: Optional[int] = None
    sell_observed_at_epoch_millis: Optional[int] = None


class OpportunityQuery(BaseModel):
    """
    Engine input.

    min_spread_percent=None means "no explicit spread filter": only strictly
    positive spreads are returned. Any explicit value is applied as
    spread_percent >= min_spread_percent, so negative spreads surface when
    the threshold is set low enough.
    """

    instruments: List[str]
    exchanges: List[str]
    min_quote_volume: float = Field(0.0, ge=0)
    min_spread_percent: Optional[float] = None
    limit: int = Field(50, ge=1)

    @field_validator("min_spread_percent")
    @classmethod
    def reject_nan(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and math.isnan(v):
            raise ValueError("min_spread_percent cannot be NaN")
        return v


class OpportunityResult(BaseModel):
    """Engine output: ranked opportunities plus the count before truncation."""

    generated_at_epoch_millis: int
    total_before_limit: int
    opportunities: List[Opportunity] = Field(default_factory=list)


# ============================================
# Refresh Outcome Schema
# ============================================

class FetchStatus(str, Enum):
    """Per-exchange result of a refresh cycle."""

    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"
    PENDING = "pending"


class ExchangeRefreshOutcome(BaseModel):
    """
    What a refresh cycle achieved for one exchange.

    Attributes:
        exchange: Exchange id
        status: ok | partial | failed | pending
        refreshed: Instruments written to the cache in this cycle
        missing: Supported instruments that could not be obtained
        skipped_fresh: True when no call was made because the cache was fresh
        error: Last error text, if any
    """

    exchange: str
    status: FetchStatus
    refreshed: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    skipped_fresh: bool = False
    error: Optional[str] = None
