"""
Primary Network Staking Stats

Validator and delegator counts and weights, the validator version
distribution and staking rewards for the primary network, cached per time
range with a shorter TTL than the chain stats.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from chainstats.cache import CacheLookup, CacheService
from chainstats.config import settings
from chainstats.fetchers.data_api import DataApiClient
from chainstats.fetchers.metabase import MetabaseFetcher
from chainstats.fetchers.metrics_api import MetricsApiFetcher
from chainstats.metric_registry import REWARDS_EXPORT, MetricKey
from chainstats.stats_types import AggregationResult, build_fetch_window, series_payload

logger = logging.getLogger(__name__)

# Response field -> network staking metric
STAKING_METRICS = {
    "validator_count": "validatorCount",
    "validator_weight": "validatorWeight",
    "delegator_count": "delegatorCount",
    "delegator_weight": "delegatorWeight",
}


class PrimaryNetworkService:
    def __init__(
        self,
        metrics_api: Optional[MetricsApiFetcher] = None,
        metabase: Optional[MetabaseFetcher] = None,
        data_api: Optional[DataApiClient] = None,
        cache: Optional[CacheService] = None,
        default_time_range: Optional[str] = None,
    ):
        self.metrics_api = metrics_api if metrics_api is not None else MetricsApiFetcher()
        self.metabase = metabase if metabase is not None else MetabaseFetcher()
        self.data_api = data_api if data_api is not None else DataApiClient()
        self.cache = cache if cache is not None else CacheService(
            ttl_seconds=settings.primary_network_cache_ttl_seconds, name="primary_network"
        )
        self.default_time_range = default_time_range or settings.default_time_range

    def clear_cache(self):
        self.cache.clear()

    async def get_stats(
        self, time_range: str, clear_cache: bool = False, now: Optional[int] = None
    ) -> CacheLookup:
        if clear_cache:
            self.clear_cache()

        async def fetch() -> Optional[AggregationResult]:
            return await self.fetch_stats(time_range, now=now)

        lookup = await self.cache.get_or_fetch(
            time_range, fetch, metadata_tag=time_range, fallback_key=self.default_time_range
        )
        logger.info(f"Primary network stats range={time_range} source={lookup.source.value}")
        return lookup

    async def fetch_stats(
        self, time_range: str, now: Optional[int] = None
    ) -> Optional[AggregationResult]:
        """
        Fetch every staking series, the version distribution and rewards.

        Each source degrades to empty data on failure.

        Returns:
            The assembled stats (empty series where a source had no data),
            or None when an unexpected exception escaped
        """
        try:
            window = build_fetch_window(time_range, now=now)

            staking_fields = list(STAKING_METRICS)
            results: List[Any] = await asyncio.gather(
                *[self.metrics_api.fetch_network_metric(STAKING_METRICS[f], window) for f in staking_fields],
                self.data_api.fetch_validator_versions(),
                self.metabase.fetch_export(REWARDS_EXPORT),
            )
            staking_series = results[:len(staking_fields)]
            versions, rewards = results[len(staking_fields):]

            if not any(staking_series) and not versions and not any(rewards.values()):
                logger.warning(f"Every primary network source returned no data for {time_range}")

            metrics: Dict[str, Any] = {
                name: series_payload(series) for name, series in zip(staking_fields, staking_series)
            }
            metrics["validator_versions"] = json.dumps(versions)
            metrics["daily_rewards"] = series_payload(rewards.get(MetricKey.DAILY_REWARDS, []))
            metrics["cumulative_rewards"] = series_payload(rewards.get(MetricKey.CUMULATIVE_REWARDS, []))
            return AggregationResult(metrics=metrics)
        except Exception as e:
            logger.error(f"Primary network stats failed for {time_range}: {e}")
            return None
