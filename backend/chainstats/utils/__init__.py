"""
Utilities Package

Time range and date helpers shared by fetchers and services.
"""

from .time_utils import (
    parse_iso_timestamp,
    resolve_time_window,
    timestamps_from_time_range,
    utc_date,
)

__all__ = [
    "parse_iso_timestamp",
    "resolve_time_window",
    "timestamps_from_time_range",
    "utc_date",
]
