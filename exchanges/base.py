"""
Shared REST Plumbing for Exchange Adapters

Every venue in this package is a public, unauthenticated spot REST API, so
they share one client skeleton and one adapter skeleton:

- RawTicker: base for the per-venue raw ticker schemas (blank strings -> None)
- BaseAPIClient: aiohttp session, request pacing, error mapping, API logging
- RestExchange: ExchangeInterface on top of a BaseAPIClient, with the market
  catalog cache and the instrument <-> native symbol mapping

A venue module only has to declare its endpoints, its raw ticker schema,
its envelope unwrapping and its normalize() mapping.
"""

import asyncio
import time
from typing import Any, Dict, Iterable, List, Optional, Set, Type

import aiohttp
from pydantic import BaseModel, ConfigDict, model_validator

from core.exceptions import (
    ExchangeAPIError,
    InvalidInstrument,
    MarketsUnavailable,
    TickerFetchFailed,
)
from core.exchange_interface import ExchangeInterface
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import MarketInfo, normalize_instrument
from core.utils.time import Clock, system_clock

logger = get_logger(__name__)

# Everything a single REST round-trip (plus payload parsing) can raise.
# pydantic's ValidationError is a ValueError.
FETCH_ERRORS = (
    ExchangeAPIError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ValueError,
    KeyError,
    TypeError,
)


# ============================================
# Raw Ticker Base Schema
# ============================================

class RawTicker(BaseModel):
    """
    Base for per-exchange raw ticker schemas.

    Subclasses declare a `venue` literal (the union discriminator) and their
    fields under the exchange's own names via aliases. Exchanges send numbers
    as strings and use "" for "no value"; blank strings are read as absent.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def blank_to_none(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            key: None if isinstance(value, str) and not value.strip() else value
            for key, value in data.items()
        }


def open_from_change(last: Optional[float], change_rate: Optional[float]) -> Optional[float]:
    """Back out the 24h open from last price and a reported change (0.0105 = +1.05%)."""
    if last is None or change_rate is None or change_rate <= -1:
        return None
    return last / (1 + change_rate)


def make_market(
    exchange: str,
    native_symbol: str,
    base: Optional[str],
    quote: Optional[str],
    taker_fee_rate: Optional[float] = None
) -> Optional[MarketInfo]:
    """Build a MarketInfo, or None when the catalog entry has no usable asset codes."""
    if not base or not quote:
        return None
    try:
        instrument = normalize_instrument(f"{base}/{quote}")
    except InvalidInstrument:
        return None
    return MarketInfo(
        exchange=exchange,
        instrument=instrument,
        native_symbol=native_symbol,
        base=instrument.split("/")[0],
        quote=instrument.split("/")[1],
        taker_fee_rate=taker_fee_rate
    )


# ============================================
# REST Client Base
# ============================================

class BaseAPIClient:
    """
    Async HTTP client skeleton shared by all venues.

    Handles:
    - Session lifecycle (async context manager)
    - Request pacing: calls are spaced by at least `min_interval_ms`
    - Error mapping: non-200 replies and transport errors become ExchangeAPIError
    - Request/response logging via core.logging helpers

    It never retries. Retrying is the fetch orchestrator's job.

    Subclasses set EXCHANGE, BASE_URL and PING_PATH, override `_unwrap` when
    the venue wraps payloads in an envelope, and implement:
        get_markets() -> List[MarketInfo]
        get_tickers(symbols) -> Dict[native_symbol, RawTicker]
        get_ticker(symbol) -> Optional[RawTicker]
    """

    EXCHANGE = ""
    BASE_URL = ""
    PING_PATH = "/"

    def __init__(
        self,
        base_url: Optional[str] = None,
        min_interval_ms: int = 0,
        timeout: float = 10
    ):
        self.base_url = base_url or self.BASE_URL
        self.min_interval = max(0, min_interval_ms) / 1000.0
        self.timeout = timeout
        self.logger = get_logger(self.__class__.__module__)
        self.session: Optional[aiohttp.ClientSession] = None
        self._pace_lock = asyncio.Lock()
        self._last_request_at = 0.0

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        """Enter async context - creates HTTP session."""
        self.session = aiohttp.ClientSession(headers={"Accept": "application/json"})
        self.logger.debug(f"{self.__class__.__name__} session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context - closes HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug(f"{self.__class__.__name__} session closed")

    # ============================================
    # HTTP Request Handler
    # ============================================

    async def _pace(self) -> None:
        """Wait until at least min_interval has passed since the previous request."""
        if self.min_interval <= 0:
            return
        async with self._pace_lock:
            wait = self._last_request_at + self.min_interval - time.monotonic()
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request_at = time.monotonic()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make one paced GET request and return the unwrapped JSON payload.

        Args:
            path: API endpoint path (e.g., "/api/v3/ticker/24hr")
            params: Optional query parameters

        Returns:
            Payload after venue-specific envelope unwrapping

        Raises:
            ExchangeAPIError: Non-200 status, transport error, or error code in the body
            asyncio.TimeoutError: The request exceeded `timeout`
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        await self._pace()

        url = f"{self.base_url}{path}"
        log_api_request(self.EXCHANGE, path, params)
        started = time.monotonic()

        try:
            async with self.session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise ExchangeAPIError(self.EXCHANGE, path, resp.status, text[:200])
                data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ExchangeAPIError(self.EXCHANGE, path, None, str(e)) from e

        log_api_response(self.EXCHANGE, path, 200, time.monotonic() - started)
        return self._unwrap(path, data)

    def _unwrap(self, path: str, data: Any) -> Any:
        """Strip the venue's response envelope. Default: payload is returned as-is."""
        return data

    async def ping(self) -> bool:
        """Lightweight reachability check."""
        await self._get(self.PING_PATH)
        return True

    # ============================================
    # Venue API (implemented by subclasses)
    # ============================================

    async def get_markets(self) -> List[MarketInfo]:
        raise NotImplementedError

    async def get_tickers(self, symbols: List[str]) -> Dict[str, RawTicker]:
        raise NotImplementedError

    async def get_ticker(self, symbol: str) -> Optional[RawTicker]:
        raise NotImplementedError


# ============================================
# REST Exchange Adapter Base
# ============================================

class RestExchange(ExchangeInterface):
    """
    ExchangeInterface implementation over a BaseAPIClient.

    Responsibilities:
        - Lazily create and own the API client
        - Cache the market catalog for `catalog_ttl` seconds, loading it under a
          lock so concurrent callers trigger a single request
        - Translate canonical instruments to native symbols and back
        - Convert client errors into MarketsUnavailable / TickerFetchFailed
        - Resolve taker fees (reported fee > catalog fee > configured default)

    Subclasses set `name` and `client_class` and implement `normalize`.

    Args:
        client: Pre-built API client (tests inject one; it is not closed on shutdown)
        base_url: Override the venue's REST base URL
        rate_limit_ms: Minimum spacing between requests
        request_timeout: Per-request timeout in seconds
        catalog_ttl: Market catalog TTL in seconds
        default_taker_fee: Fee used when the venue reports none
        clock: Epoch-millis clock for the catalog TTL
    """

    name: str = ""
    client_class: Type[BaseAPIClient] = BaseAPIClient

    capabilities = {
        "batch_tickers": True,
        "single_ticker": True,
        "ticker_fees": False
    }

    def __init__(
        self,
        client: Optional[BaseAPIClient] = None,
        *,
        base_url: Optional[str] = None,
        rate_limit_ms: int = 0,
        request_timeout: float = 10,
        catalog_ttl: float = 3600,
        default_taker_fee: Optional[float] = None,
        clock: Clock = system_clock
    ):
        self.base_url = base_url
        self.rate_limit_ms = rate_limit_ms
        self.request_timeout = request_timeout
        self.catalog_ttl_ms = int(catalog_ttl * 1000)
        self.default_taker_fee = default_taker_fee
        self.client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()
        self._clock = clock

        self._markets: Dict[str, MarketInfo] = {}
        self._by_native: Dict[str, str] = {}
        self._markets_loaded_at: Optional[int] = None
        self._markets_lock = asyncio.Lock()

        logger.debug(f"{self.__class__.__name__} created (rate_limit={rate_limit_ms}ms)")

    # ============================================
    # Lifecycle
    # ============================================

    async def _ensure_client(self) -> BaseAPIClient:
        """Return the API client, creating and opening it on first use."""
        if self.client is not None:
            return self.client
        async with self._client_lock:
            if self.client is None:
                client = self.client_class(
                    base_url=self.base_url,
                    min_interval_ms=self.rate_limit_ms,
                    timeout=self.request_timeout
                )
                await client.__aenter__()
                self.client = client
                self._owns_client = True
        return self.client

    async def initialize(self) -> None:
        """Open the HTTP session. Safe to call more than once."""
        await self._ensure_client()
        logger.info(f"✓ {self.name} exchange adapter initialized")

    async def shutdown(self) -> None:
        """Close the HTTP session if this adapter created it."""
        if self.client is not None and self._owns_client:
            await self.client.__aexit__(None, None, None)
            self.client = None
        logger.info(f"✓ {self.name} exchange adapter shut down")

    async def health_check(self) -> bool:
        """Ping the venue; False on any failure."""
        try:
            client = await self._ensure_client()
            return await client.ping()
        except FETCH_ERRORS as e:
            logger.warning(f"{self.name} health check failed: {e}")
            return False

    # ============================================
    # Market Catalog
    # ============================================

    def _catalog_is_fresh(self, now: int) -> bool:
        return (
            self._markets_loaded_at is not None
            and now - self._markets_loaded_at < self.catalog_ttl_ms
        )

    async def load_markets(self, force: bool = False) -> Dict[str, MarketInfo]:
        """
        Return the catalog keyed by instrument, reloading it when expired.

        Raises:
            MarketsUnavailable: If the catalog request fails
        """
        if not force and self._catalog_is_fresh(self._clock()):
            return self._markets

        async with self._markets_lock:
            # Another caller may have loaded it while we waited
            now = self._clock()
            if not force and self._catalog_is_fresh(now):
                return self._markets

            client = await self._ensure_client()
            try:
                markets = await client.get_markets()
            except FETCH_ERRORS as e:
                logger.warning(f"Market catalog unavailable for {self.name}: {e}")
                raise MarketsUnavailable(self.name, e) from e

            self._markets = {market.instrument: market for market in markets}
            self._by_native = {market.native_symbol: market.instrument for market in markets}
            self._markets_loaded_at = now
            logger.info(f"Loaded {len(self._markets)} markets for {self.name}")
            return self._markets

    async def list_supported_instruments(self) -> Set[str]:
        markets = await self.load_markets()
        return set(markets)

    # ============================================
    # Ticker Fetching
    # ============================================

    async def _native_symbols(self, instruments: Iterable[str]) -> Dict[str, str]:
        """native symbol -> instrument, for the requested instruments the venue lists."""
        try:
            markets = await self.load_markets()
        except MarketsUnavailable as e:
            raise TickerFetchFailed(self.name, e) from e
        return {
            markets[instrument].native_symbol: instrument
            for instrument in instruments
            if instrument in markets
        }

    async def fetch_tickers(self, instruments: Iterable[str]) -> Dict[str, RawTicker]:
        wanted = await self._native_symbols(instruments)
        if not wanted:
            return {}

        client = await self._ensure_client()
        try:
            raw_by_native = await client.get_tickers(list(wanted))
        except FETCH_ERRORS as e:
            raise TickerFetchFailed(self.name, e) from e

        return {
            wanted[native]: raw
            for native, raw in raw_by_native.items()
            if native in wanted
        }

    async def fetch_ticker(self, instrument: str) -> Optional[RawTicker]:
        wanted = await self._native_symbols([instrument])
        if not wanted:
            return None

        native = next(iter(wanted))
        client = await self._ensure_client()
        try:
            return await client.get_ticker(native)
        except FETCH_ERRORS as e:
            raise TickerFetchFailed(self.name, e) from e

    # ============================================
    # Normalization Helpers
    # ============================================

    def taker_fee(self, instrument: str, reported: Optional[float] = None) -> Optional[float]:
        """Fee for an instrument: reported by the ticker, else catalog, else default."""
        if reported is not None:
            return reported
        market = self._markets.get(instrument)
        if market is not None and market.taker_fee_rate is not None:
            return market.taker_fee_rate
        return self.default_taker_fee
