"""
Application Constants

Named time ranges, upstream page limits and response header names.
"""

from dataclasses import dataclass
from typing import Dict, Optional

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class TimeRangeConfig:
    """Window length and page limits for a named time range"""
    days: Optional[int]  # None = full history
    page_size: int
    fetch_all_pages: bool
    indexer_days: int  # Whole days requested from the message indexer


TIME_RANGES: Dict[str, TimeRangeConfig] = {
    "7d": TimeRangeConfig(days=7, page_size=7, fetch_all_pages=False, indexer_days=7),
    "30d": TimeRangeConfig(days=30, page_size=30, fetch_all_pages=False, indexer_days=30),
    "90d": TimeRangeConfig(days=90, page_size=90, fetch_all_pages=False, indexer_days=90),
    "all": TimeRangeConfig(days=None, page_size=365, fetch_all_pages=True, indexer_days=365),
}

DEFAULT_TIME_RANGE = "30d"

# Explicit start/end windows have no named range; they use these page limits
EXPLICIT_RANGE_PAGE_SIZE = 365
EXPLICIT_RANGE_FETCH_ALL_PAGES = True

# "all" starts at mainnet launch (2020-09-21 UTC)
ALL_TIME_START_TIMESTAMP = 1600646400

# Diagnostic response headers
HEADER_DATA_SOURCE = "X-Data-Source"
HEADER_CHAIN_ID = "X-Chain-Id"
HEADER_TIME_RANGE = "X-Time-Range"
HEADER_CACHE_AGE = "X-Cache-Age"
HEADER_FETCH_TIME = "X-Fetch-Time"
HEADER_METRICS = "X-Metrics"

USER_AGENT = "ChainStats/1.0"
