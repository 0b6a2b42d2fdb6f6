"""
Core Package

Contains the exchange-agnostic core logic including:
- ExchangeInterface: Abstract base class every exchange adapter implements
- ExchangeManager: Registry of the configured exchange adapters
- Schemas: Pydantic models for normalized data (tickers, opportunities, outcomes)
- Retry: The retry policy wrapped around every ticker fetch

Nothing in this layer knows which exchanges exist beyond their ids.
"""
