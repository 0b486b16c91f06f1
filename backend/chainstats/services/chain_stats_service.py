"""
Chain Stats Service

Serves aggregated chain metrics through the stats cache. The cache decides
between fresh, stale and missing entries; this service supplies the fetch
for a request and keeps the cross-chain message series in step with the
requested range.
"""

import logging
from typing import Optional

from chainstats.aggregator import AggregationOrchestrator
from chainstats.cache import CacheLookup, CacheService, CacheSource
from chainstats.config import settings
from chainstats.metric_registry import MetricKey
from chainstats.stats_types import AggregationRequest, AggregationResult

logger = logging.getLogger(__name__)


class ChainStatsService:
    def __init__(
        self,
        orchestrator: Optional[AggregationOrchestrator] = None,
        cache: Optional[CacheService] = None,
        default_time_range: Optional[str] = None,
    ):
        self.orchestrator = orchestrator if orchestrator is not None else AggregationOrchestrator()
        self.cache = cache if cache is not None else CacheService(
            ttl_seconds=settings.chain_stats_cache_ttl_seconds, name="chain_stats"
        )
        self.default_time_range = default_time_range or settings.default_time_range

    def clear_cache(self):
        self.cache.clear()

    async def get_stats(
        self,
        request: AggregationRequest,
        clear_cache: bool = False,
        now: Optional[int] = None,
    ) -> CacheLookup:
        """
        Resolve a request through the cache.

        Args:
            request: Validated aggregation request
            clear_cache: Drop every cached entry before resolving
            now: Override for the window's end timestamp (tests)

        Returns:
            CacheLookup whose source says where the data came from; data is
            None only when the source is ERROR
        """
        if clear_cache:
            self.clear_cache()

        async def fetch() -> Optional[AggregationResult]:
            return await self.orchestrator.resolve(request, now=now)

        lookup = await self.cache.get_or_fetch(
            request.cache_key(),
            fetch,
            metadata_tag=request.range_label,
            fallback_key=request.fallback_key(self.default_time_range),
        )

        if lookup.source == CacheSource.CACHE and self._needs_message_refresh(request, lookup):
            await self._refresh_messages(request, lookup, now)

        logger.info(
            f"Chain stats {request.entity_id} range={request.range_label} "
            f"metrics={len(request.metrics)} source={lookup.source.value}"
        )
        return lookup

    def _needs_message_refresh(self, request: AggregationRequest, lookup: CacheLookup) -> bool:
        """Cached message volume was built for a different named range"""
        return (
            MetricKey.ICM_MESSAGES in request.metrics
            and not request.has_explicit_range
            and lookup.metadata_tag != request.time_range
        )

    async def _refresh_messages(
        self, request: AggregationRequest, lookup: CacheLookup, now: Optional[int]
    ):
        """Refetch only the message series and patch it into the entry in place"""
        payload = await self.orchestrator.refresh_metric(request, MetricKey.ICM_MESSAGES, now=now)
        if payload is None:
            logger.warning(
                f"Message volume refresh for {request.entity_id} ({request.time_range}) "
                f"returned no data, serving cached series"
            )
            return

        self.cache.patch_metric(lookup.key, MetricKey.ICM_MESSAGES, payload, request.time_range)
        lookup.data = lookup.data.with_metric(MetricKey.ICM_MESSAGES, payload)
        lookup.metadata_tag = request.time_range
