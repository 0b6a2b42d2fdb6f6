"""
Storage Package

Holds the in-process ticker cache, the only state the scanner keeps.
Nothing is persisted beyond the process.
"""

from storage.ticker_cache import TickerCache

__all__ = ["TickerCache"]
