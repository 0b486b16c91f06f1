"""
Aggregation Orchestrator

Plans the upstream calls needed for one chain stats request, runs them
concurrently and assembles a single AggregationResult.

Total latency is bounded by the slowest upstream, not the sum: every
planned task is started before any is awaited.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from chainstats.config import settings
from chainstats.fetchers.base import FetchTask, UpstreamFetcher
from chainstats.fetchers.indexer import MessageIndexerFetcher
from chainstats.fetchers.metabase import MetabaseFetcher
from chainstats.fetchers.metrics_api import MetricsApiFetcher
from chainstats.metric_registry import (
    GRANULARITY_INTERVALS,
    METRIC_REGISTRY,
    FetcherId,
    MetricKey,
    metrics_available_for,
)
from chainstats.stats_types import (
    AggregationRequest,
    AggregationResult,
    FetchWindow,
    Series,
    series_payload,
)

logger = logging.getLogger(__name__)

_INTERVAL_LABELS = {interval: label for label, interval in GRANULARITY_INTERVALS.items()}


def default_fetchers() -> Dict[FetcherId, UpstreamFetcher]:
    return {
        FetcherId.METRICS_API: MetricsApiFetcher(),
        FetcherId.METABASE: MetabaseFetcher(),
        FetcherId.INDEXER: MessageIndexerFetcher(),
    }


class AggregationOrchestrator:
    """
    Fan-out / fan-in over the upstream fetchers.

    Fetchers never raise, so a failing upstream only removes its own
    metrics from the result. resolve() returns None only when an
    unexpected exception escapes, letting the caller fall back to cached
    data.
    """

    def __init__(
        self,
        fetchers: Optional[Mapping[FetcherId, UpstreamFetcher]] = None,
        primary_network_ids: Optional[Sequence[str]] = None,
    ):
        self.fetchers = dict(fetchers) if fetchers is not None else default_fetchers()
        self.primary_network_ids = list(
            primary_network_ids if primary_network_ids is not None else settings.primary_network_ids
        )

    def plan(self, request: AggregationRequest) -> List[FetchTask]:
        """
        Deduplicated upstream calls for a request.

        Entity-restricted metrics are dropped here, before any call is
        planned. Metrics sharing an upstream source collapse into one task;
        multi-granularity metrics get one task per granularity in expanded
        mode and a single daily task otherwise.
        """
        metrics = metrics_available_for(request.metrics, request.entity_id, self.primary_network_ids)

        tasks: List[FetchTask] = []
        grouped: Dict[Tuple[FetcherId, str], List[MetricKey]] = {}
        for metric in sorted(metrics, key=lambda m: m.value):
            spec = METRIC_REGISTRY[metric]
            if spec.multi_granularity:
                intervals = GRANULARITY_INTERVALS.values() if request.expand_granularities else ["day"]
                for interval in intervals:
                    tasks.append(FetchTask(spec.fetcher, spec.source, (metric,), interval))
                continue
            grouped.setdefault((spec.fetcher, spec.source), []).append(metric)

        for (fetcher, source), group in grouped.items():
            tasks.append(FetchTask(fetcher, source, tuple(group)))
        return tasks

    async def resolve(
        self, request: AggregationRequest, now: Optional[int] = None
    ) -> Optional[AggregationResult]:
        """
        Fetch every requested metric and assemble the result.

        Returns:
            The assembled result (metrics with no data are absent, so it may
            be empty), or None when an unexpected exception escaped
        """
        try:
            tasks = self.plan(request)
            window = request.window(now)
            results = await asyncio.gather(
                *[self._run_task(task, request.entity_id, window) for task in tasks]
            )

            if tasks and not any(series for result in results for series in result.values()):
                logger.warning(
                    f"All {len(tasks)} upstream calls for chain {request.entity_id} "
                    f"({request.range_label}) returned no data"
                )

            return self._assemble(request, tasks, results)
        except Exception as e:
            logger.error(f"Aggregation failed for chain {request.entity_id}: {e}")
            return None

    async def refresh_metric(
        self, request: AggregationRequest, metric: MetricKey, now: Optional[int] = None
    ) -> Optional[Any]:
        """Fetch a single metric's payload on its own; None when it has no data"""
        single = dataclasses.replace(request, metrics=frozenset({metric}))
        result = await self.resolve(single, now=now)
        if result is None:
            return None
        return result.get(metric)

    async def _run_task(
        self, task: FetchTask, entity_id: str, window: FetchWindow
    ) -> Dict[MetricKey, Series]:
        fetcher = self.fetchers.get(task.fetcher)
        if fetcher is None:
            logger.warning(f"No fetcher configured for {task.fetcher.value}; skipping {task.source}")
            return {}
        return await fetcher.fetch(task, entity_id, window)

    def _assemble(
        self,
        request: AggregationRequest,
        tasks: List[FetchTask],
        results: List[Dict[MetricKey, Series]],
    ) -> AggregationResult:
        metrics: Dict[str, Any] = {}
        granular: Dict[MetricKey, Dict[str, Any]] = {}

        for task, series_by_metric in zip(tasks, results):
            for metric, series in series_by_metric.items():
                if not series or metric not in request.metrics:
                    continue
                if METRIC_REGISTRY[metric].multi_granularity and request.expand_granularities:
                    label = _INTERVAL_LABELS.get(task.interval, task.interval)
                    granular.setdefault(metric, {})[label] = series_payload(series)
                else:
                    metrics[metric.value] = series_payload(series)

        for metric, by_label in granular.items():
            metrics[metric.value] = {
                label: by_label.get(label, series_payload([])) for label in GRANULARITY_INTERVALS
            }

        return AggregationResult(metrics=metrics)
