"""
FastAPI Application - Cross-Exchange Arbitrage Scanner API

Thin HTTP layer over ArbitrageService: it parses query parameters, calls the
core and renders JSON. No scanning logic lives here.

Supported Exchanges:
    - Binance, KuCoin, Bybit, OKX, MEXC, Gate.io (spot)

Endpoints:
    - GET /            - Service info
    - GET /health      - Per-exchange health check
    - GET /exchanges   - Enabled exchanges and their capabilities
    - GET /arbitrage   - Refresh then rank opportunities
    - GET /prices      - Refresh then return the cached tickers

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import settings, validate_configuration
from core.exceptions import AllSourcesUnavailable
from core.logging import logger
from core.utils.time import current_utc_datetime
from services.arbitrage_service import ArbitrageService


def parse_list(param: Optional[str]) -> List[str]:
    """Split a comma-separated query parameter, dropping blanks."""
    if not param:
        return []
    return [item.strip() for item in param.split(",") if item.strip()]


def render_outcomes(outcomes) -> Dict[str, dict]:
    return {name: outcome.model_dump(mode="json") for name, outcome in outcomes.items()}


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("=== Application Starting ===")
    try:
        validate_configuration()
        await service.start()
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("=== Shutting Down ===")
    try:
        await service.stop()
        logger.info("=== Shutdown Complete ===")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Cross-Exchange Arbitrage Scanner API",
    description=(
        "Detects spot price gaps for the same instrument across exchanges.\n\n"
        "**Supported Exchanges:** Binance, KuCoin, Bybit, OKX, MEXC, Gate.io\n\n"
        "## REST Endpoints\n"
        "- `GET /arbitrage?symbols=BTC/USDT,ETH/USDT&exchanges=binance,okx&minQuoteVol=&minSpreadPct=&limit=` "
        "- Ranked opportunities (buy at ask, sell at bid)\n"
        "- `GET /prices?symbols=&exchanges=` - Latest normalized tickers\n"
        "- `GET /exchanges` - Enabled exchanges\n"
        "- `GET /health` - Health check\n\n"
        "Quotes may be stale by the time anyone acts on them; every ticker and "
        "opportunity leg carries its observation time."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

service = ArbitrageService.from_settings(settings)  # Global scanner service


# ============================================
# System Endpoints
# ============================================

@app.get("/", tags=["System"])
async def root():
    """API information and enabled exchanges."""
    return {
        "name": "Cross-Exchange Arbitrage Scanner API",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "exchanges": service.manager.list_exchanges(),
        "defaults": {
            "symbols": service.default_instruments,
            "exchanges": service.default_exchanges
        }
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Health check - tests connectivity to all exchanges."""
    health = await service.manager.health_check_all()
    return {
        "status": "healthy" if all(health.values()) else "degraded",
        "exchanges": health,
        "cachedTickers": len(service.cache),
        "pollerRunning": service.poller.is_running
    }


@app.get("/exchanges", tags=["System"])
async def list_exchanges():
    """List enabled exchanges and their capabilities."""
    return {
        "exchanges": [
            {"name": name, "capabilities": exchange.capabilities}
            for name, exchange in service.manager.exchanges.items()
        ]
    }


# ============================================
# Arbitrage Endpoints
# ============================================

@app.get("/arbitrage", tags=["Arbitrage"])
async def get_arbitrage(
    symbols: Optional[str] = Query(None, description="Comma-separated BASE/QUOTE list"),
    exchanges: Optional[str] = Query(None, description="Comma-separated exchange ids"),
    minQuoteVol: float = Query(0, ge=0, description="Minimum liquidity floor (quote volume)"),
    minSpreadPct: Optional[float] = Query(None, description="Minimum spread in percent"),
    limit: Optional[int] = Query(None, ge=1, description="Max opportunities returned")
):
    """
    Refresh stale tickers, then rank cross-exchange opportunities.

    Returns 503 when every selected exchange failed to refresh.
    """
    try:
        scan = await service.scan(
            instruments=parse_list(symbols),
            exchanges=parse_list(exchanges),
            min_quote_volume=minQuoteVol,
            min_spread_percent=minSpreadPct,
            limit=limit
        )
    except AllSourcesUnavailable as e:
        logger.error(f"/arbitrage: {e}")
        return JSONResponse(
            status_code=503,
            content={"detail": str(e), "outcomes": render_outcomes(e.outcomes)}
        )

    opportunities = [o.model_dump(mode="json") for o in scan.result.opportunities]
    return {
        "timestamp": current_utc_datetime().isoformat(),
        "exchanges": scan.exchanges,
        "symbols": scan.instruments,
        "totalBeforeLimit": scan.result.total_before_limit,
        "count": len(opportunities),
        "outcomes": render_outcomes(scan.outcomes),
        "opportunities": opportunities
    }


@app.get("/prices", tags=["Arbitrage"])
async def get_prices(
    symbols: Optional[str] = Query(None, description="Comma-separated BASE/QUOTE list"),
    exchanges: Optional[str] = Query(None, description="Comma-separated exchange ids")
):
    """
    Refresh stale tickers, then return everything cached for the selection.

    Stale entries stay visible (with their age) when a refresh fails.
    """
    instrument_list = parse_list(symbols)
    exchange_list = parse_list(exchanges)

    outcomes = {}
    try:
        outcomes = await service.ensure_fresh(exchange_list, instrument_list)
    except AllSourcesUnavailable as e:
        logger.warning(f"/prices serving cached data only: {e}")
        outcomes = e.outcomes

    snapshot = service.get_ticker_snapshot(exchange_list, instrument_list)
    grouped: Dict[str, list] = {}
    for (exchange, instrument), ticker in snapshot.items():
        entry = ticker.model_dump(mode="json")
        entry["age_ms"] = service.cache.age_ms(exchange, instrument)
        grouped.setdefault(exchange, []).append(entry)

    return {
        "timestamp": current_utc_datetime().isoformat(),
        "outcomes": render_outcomes(outcomes),
        "exchanges": grouped
    }


# ============================================
# Error Handlers
# ============================================

@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Handle 404 errors."""
    return JSONResponse(status_code=404, content={"detail": "Not found", "path": str(request.url)})


@app.exception_handler(500)
async def internal_error_handler(request, exc):
    """Handle 500 errors."""
    logger.error(f"Internal error: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
