"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Clock and timestamp helpers
"""

from core.utils.time import (
    Clock,
    age_ms,
    current_utc_datetime,
    current_utc_timestamp,
    system_clock,
    to_utc_datetime,
)

__all__ = ["Clock", "age_ms", "current_utc_datetime", "current_utc_timestamp", "system_clock", "to_utc_datetime"]
