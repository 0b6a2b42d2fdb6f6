"""
Time Utilities

This module provides the clock the scanner runs on plus timestamp helpers.

All freshness math in the scanner is done in integer milliseconds since the
Unix epoch. Components that compare timestamps (ticker cache, orchestrator,
opportunity engine) take a `Clock` so tests can drive time by hand instead
of sleeping.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Union


# A zero-argument callable returning "now" in epoch milliseconds
Clock = Callable[[], int]


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Args:
        milliseconds: If True, return milliseconds; if False, return seconds

    Returns:
        int: Current Unix timestamp

    Examples:
        >>> current_utc_timestamp()
        1704110400

        >>> current_utc_timestamp(milliseconds=True)
        1704110400000
    """
    if milliseconds:
        return time.time_ns() // 1_000_000
    return int(time.time())


def system_clock() -> int:
    """Default Clock: wall time in epoch milliseconds."""
    return current_utc_timestamp(milliseconds=True)


def to_utc_datetime(timestamp: Union[int, float]) -> datetime:
    """
    Convert a timestamp (seconds or milliseconds) to UTC datetime.

    Detection Logic:
        - If timestamp > 1e12 (1 trillion): Assumed to be milliseconds
        - Otherwise: Assumed to be seconds

    Args:
        timestamp: Unix timestamp in seconds or milliseconds

    Returns:
        datetime: Timezone-aware datetime object in UTC

    Raises:
        ValueError: If timestamp is negative or invalid

    Examples:
        >>> to_utc_datetime(1704110400000)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)

        >>> to_utc_datetime(1704110400)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    if timestamp < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    if timestamp > 1e12:
        timestamp = timestamp / 1000.0

    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}")


def age_ms(observed_at_epoch_millis: int, now_epoch_millis: int) -> int:
    """
    Age of an observation in milliseconds, never negative.

    A capture stamped slightly in the future (clock skew between the
    caller's clock and the one that stamped it) counts as age 0.
    """
    return max(0, now_epoch_millis - observed_at_epoch_millis)


def current_utc_datetime() -> datetime:
    """
    Get current UTC datetime.

    Example:
        >>> current_utc_datetime()
        datetime.datetime(2024, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)
    """
    return datetime.now(timezone.utc)
