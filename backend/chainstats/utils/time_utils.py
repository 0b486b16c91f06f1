"""
Time Range Utilities

Conversions between named ranges, unix timestamps and UTC calendar dates.
"""

import time
from datetime import datetime, timezone
from typing import Optional, Tuple

from chainstats.constants import (
    ALL_TIME_START_TIMESTAMP,
    DEFAULT_TIME_RANGE,
    SECONDS_PER_DAY,
    TIME_RANGES,
)


def utc_date(timestamp: int) -> str:
    """YYYY-MM-DD of a unix timestamp, in UTC"""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


def parse_iso_timestamp(value: str) -> int:
    """
    Parse an ISO-8601 date or datetime into unix seconds.

    Naive values are taken as UTC. Accepts a trailing 'Z'
    ("2025-12-09T00:00:00Z") and bare dates ("2025-12-09").

    Raises:
        ValueError: if the string is not ISO-8601
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def timestamps_from_time_range(
    time_range: str, now: Optional[int] = None
) -> Tuple[int, int]:
    """
    Start/end timestamps covering a named range, ending now.

    Unknown ranges fall back to the default range.
    """
    end = int(now if now is not None else time.time())
    config = TIME_RANGES.get(time_range) or TIME_RANGES[DEFAULT_TIME_RANGE]
    if config.days is None:
        return ALL_TIME_START_TIMESTAMP, end
    return end - config.days * SECONDS_PER_DAY, end


def resolve_time_window(
    time_range: str,
    start_timestamp: Optional[int] = None,
    end_timestamp: Optional[int] = None,
    now: Optional[int] = None,
) -> Tuple[int, int]:
    """Explicit timestamps win over the named range when both are given"""
    if start_timestamp is not None and end_timestamp is not None:
        return start_timestamp, end_timestamp
    return timestamps_from_time_range(time_range, now=now)
