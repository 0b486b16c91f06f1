"""
Chain Metrics API Fetcher

Paginated daily/weekly/monthly time series per chain:
  GET /v2/chains/{chain_id}/metrics/{metric}
  GET /v2/networks/{network}/metrics/{metric}   (staking metrics)

Each page is {"results": [{"timestamp", "value"}, ...], "nextPageToken"}.
Only the first page is read unless the window asks for all pages.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from chainstats.config import settings
from chainstats.fetchers.base import FetchTask, UpstreamFetcher
from chainstats.metric_registry import FetcherId, MetricKey
from chainstats.stats_types import FetchWindow, Series, TimeSeriesPoint, sort_descending

logger = logging.getLogger(__name__)

# Chain id "all" is the aggregate of every chain on mainnet
ALL_CHAINS_ID = "all"
MAINNET_NETWORK = "mainnet"


class MetricsApiFetcher(UpstreamFetcher):
    fetcher_id = FetcherId.METRICS_API

    def __init__(
        self,
        base_url: Optional[str] = None,
        bypass_token: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.base_url = (base_url or settings.metrics_api_base_url).rstrip("/")
        self.bypass_token = bypass_token if bypass_token is not None else settings.metrics_bypass_token

    async def _fetch(
        self, task: FetchTask, entity_id: str, window: FetchWindow
    ) -> Dict[MetricKey, Series]:
        series = await self.get_chain_metric(task.source, entity_id, window, interval=task.interval)
        return {metric: series for metric in task.metrics}

    async def get_chain_metric(
        self,
        metric_name: str,
        entity_id: str,
        window: FetchWindow,
        interval: str = "day",
    ) -> List[TimeSeriesPoint]:
        """Time series for one chain; raises on upstream failure"""
        chain_id = MAINNET_NETWORK if entity_id == ALL_CHAINS_ID else entity_id
        path = f"/v2/chains/{chain_id}/metrics/{metric_name}"
        params = self._window_params(window)
        params["timeInterval"] = interval
        return await self._collect(path, params, window.fetch_all_pages)

    async def fetch_network_metric(
        self, metric_name: str, window: FetchWindow, network: str = MAINNET_NETWORK
    ) -> List[TimeSeriesPoint]:
        """Staking time series for a whole network; empty on failure"""
        path = f"/v2/networks/{network}/metrics/{metric_name}"
        return await self._run_soft(
            self._collect(path, self._window_params(window), window.fetch_all_pages),
            f"{metric_name} for network {network}",
            default=[],
        )

    def _window_params(self, window: FetchWindow) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "startTimestamp": window.start_timestamp,
            "endTimestamp": window.end_timestamp,
            "pageSize": window.page_size,
        }
        if self.bypass_token:
            params["rltoken"] = self.bypass_token
        return params

    async def _collect(
        self, path: str, params: Mapping[str, Any], fetch_all_pages: bool
    ) -> List[TimeSeriesPoint]:
        points: List[TimeSeriesPoint] = []
        async for results in self.iter_pages(path, params):
            for item in results:
                if not isinstance(item, dict) or item.get("timestamp") is None:
                    continue
                points.append(TimeSeriesPoint.at(int(item["timestamp"]), item.get("value")))
            if not fetch_all_pages:
                break
        return sort_descending(points)

    async def iter_pages(
        self, path: str, params: Mapping[str, Any]
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        Yield the `results` list of each page, following nextPageToken.

        Pages without a results list are skipped.
        """
        url = f"{self.base_url}{path}"
        page_token: Optional[str] = None
        while True:
            query = dict(params)
            if page_token:
                query["pageToken"] = page_token
            payload = await self._get_json(url, query)
            if not isinstance(payload, dict):
                logger.warning(f"Unexpected metrics API payload for {path}: {type(payload).__name__}")
                return

            results = payload.get("results")
            if isinstance(results, list):
                yield results

            page_token = payload.get("nextPageToken")
            if not page_token:
                return
