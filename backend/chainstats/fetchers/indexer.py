"""
Message Indexer Fetcher

Daily cross-chain message volume from the secondary indexer:
  GET /api/{chain_id}/metrics/dailyMessageVolume?days=N

The indexer only accepts whole-day counts, so explicit start/end windows
are converted to a day count and the response is filtered back to the
exact span.
"""

import logging
import math
from typing import Dict, List

from chainstats.config import settings
from chainstats.constants import DEFAULT_TIME_RANGE, SECONDS_PER_DAY, TIME_RANGES
from chainstats.exceptions import UpstreamUnavailableError
from chainstats.fetchers.base import FetchTask, UpstreamFetcher
from chainstats.metric_registry import FetcherId, MetricKey
from chainstats.stats_types import CategoricalEventPoint, FetchWindow, Series, sort_descending
from chainstats.utils.time_utils import utc_date

logger = logging.getLogger(__name__)

# The indexer names the all-chains aggregate "global"
GLOBAL_CHAIN_ID = "global"


def days_for_window(window: FetchWindow) -> int:
    """Whole days to request: from the explicit span, else from the named range"""
    if window.explicit_range:
        span = abs(window.end_timestamp - window.start_timestamp)
        return max(1, math.ceil(span / SECONDS_PER_DAY))
    config = TIME_RANGES.get(window.time_range) or TIME_RANGES[DEFAULT_TIME_RANGE]
    return config.indexer_days


class MessageIndexerFetcher(UpstreamFetcher):
    fetcher_id = FetcherId.INDEXER

    def __init__(self, base_url: str = None, **kwargs):
        super().__init__(**kwargs)
        self.base_url = (base_url or settings.indexer_base_url).rstrip("/")

    async def _fetch(
        self, task: FetchTask, entity_id: str, window: FetchWindow
    ) -> Dict[MetricKey, Series]:
        points = await self.get_message_volume(entity_id, window, source=task.source)
        return {metric: points for metric in task.metrics}

    async def get_message_volume(
        self, entity_id: str, window: FetchWindow, source: str = "dailyMessageVolume"
    ) -> List[CategoricalEventPoint]:
        chain_id = GLOBAL_CHAIN_ID if entity_id == "all" else entity_id
        url = f"{self.base_url}/api/{chain_id}/metrics/{source}"

        payload = await self._get_json(url, {"days": days_for_window(window)})
        if not isinstance(payload, list):
            raise UpstreamUnavailableError("Invalid message volume payload")

        points: List[CategoricalEventPoint] = []
        for item in payload:
            if not isinstance(item, dict) or item.get("timestamp") is None:
                continue
            timestamp = int(item["timestamp"])
            if window.explicit_range and not (
                window.start_timestamp <= timestamp <= window.end_timestamp
            ):
                continue
            points.append(CategoricalEventPoint(
                timestamp=timestamp,
                date=utc_date(timestamp),
                count=item.get("messageCount") or 0,
                sub_counts={
                    "incoming": item.get("incomingCount") or 0,
                    "outgoing": item.get("outgoingCount") or 0,
                },
            ))
        return sort_descending(points)
