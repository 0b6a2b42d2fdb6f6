"""
FastAPI Application Package

Thin HTTP façade over the scanner core (services.arbitrage_service).
It exposes the arbitrage ranking and the cached tickers as REST endpoints.
"""
