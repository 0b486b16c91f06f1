"""
Upstream Fetchers

One adapter per external data source, each normalizing its payloads into
TimeSeriesPoint / CategoricalEventPoint series.

Components:
- UpstreamFetcher: Abstract base class (timeout + fail-soft fetch)
- MetricsApiFetcher: Paginated chain and staking metrics
- MetabaseFetcher: Wide dashboard exports split by column
- MessageIndexerFetcher: Daily cross-chain message volume
- DataApiClient: Network details (validator versions)
"""

from chainstats.fetchers.base import (
    FetchTask,
    UpstreamClient,
    UpstreamFetcher,
    close_shared_session,
    get_shared_session,
)
from chainstats.fetchers.data_api import DataApiClient
from chainstats.fetchers.indexer import MessageIndexerFetcher
from chainstats.fetchers.metabase import MetabaseFetcher
from chainstats.fetchers.metrics_api import MetricsApiFetcher

__all__ = [
    "FetchTask",
    "UpstreamClient",
    "UpstreamFetcher",
    "close_shared_session",
    "get_shared_session",
    "DataApiClient",
    "MessageIndexerFetcher",
    "MetabaseFetcher",
    "MetricsApiFetcher",
]
