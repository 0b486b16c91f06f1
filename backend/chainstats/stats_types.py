"""
Chain stats domain types

Normalized points produced by the upstream fetchers, the aggregation
request/result pair, and the per-request fetch window.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Union

from chainstats.constants import (
    DEFAULT_TIME_RANGE,
    EXPLICIT_RANGE_FETCH_ALL_PAGES,
    EXPLICIT_RANGE_PAGE_SIZE,
    TIME_RANGES,
)
from chainstats.exceptions import ValidationError
from chainstats.metric_registry import MetricKey
from chainstats.utils.time_utils import resolve_time_window, utc_date


@dataclass(frozen=True)
class TimeSeriesPoint:
    """Single daily (or weekly/monthly) value"""
    timestamp: int
    date: str
    value: float

    @classmethod
    def at(cls, timestamp: int, value: Optional[float]) -> "TimeSeriesPoint":
        """Build a point whose date is derived from the timestamp"""
        return cls(timestamp=timestamp, date=utc_date(timestamp), value=value or 0)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "date": self.date, "value": self.value}


@dataclass(frozen=True)
class CategoricalEventPoint:
    """Event volume for one day, with a breakdown by category"""
    timestamp: int
    date: str
    count: int
    sub_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "date": self.date,
            "count": self.count,
            "sub_counts": dict(self.sub_counts),
        }


SeriesPoint = Union[TimeSeriesPoint, CategoricalEventPoint]
Series = List[SeriesPoint]


def sort_descending(series: Series) -> Series:
    """Most recent point first"""
    return sorted(series, key=lambda p: p.timestamp, reverse=True)


def series_payload(series: Series) -> Dict[str, Any]:
    """
    Wrap a series as {current_value, data}.

    current_value is the most recent point's value (count for event
    series), or 0 for an empty series.
    """
    current_value: Union[int, float] = 0
    if series:
        latest = series[0]
        current_value = latest.count if isinstance(latest, CategoricalEventPoint) else latest.value
    return {"current_value": current_value, "data": [p.to_dict() for p in series]}


@dataclass(frozen=True)
class FetchWindow:
    """Time bounds and page limits shared by every fetch of one request"""
    start_timestamp: int
    end_timestamp: int
    time_range: str
    page_size: int
    fetch_all_pages: bool
    explicit_range: bool = False


def build_fetch_window(
    time_range: str,
    start_timestamp: Optional[int] = None,
    end_timestamp: Optional[int] = None,
    now: Optional[int] = None,
) -> FetchWindow:
    """Window for a named range, or for explicit timestamps when both are given"""
    explicit = start_timestamp is not None and end_timestamp is not None
    start, end = resolve_time_window(time_range, start_timestamp, end_timestamp, now=now)
    if explicit:
        page_size = EXPLICIT_RANGE_PAGE_SIZE
        fetch_all_pages = EXPLICIT_RANGE_FETCH_ALL_PAGES
    else:
        config = TIME_RANGES.get(time_range) or TIME_RANGES[DEFAULT_TIME_RANGE]
        page_size = config.page_size
        fetch_all_pages = config.fetch_all_pages
    return FetchWindow(
        start_timestamp=start,
        end_timestamp=end,
        time_range=time_range,
        page_size=page_size,
        fetch_all_pages=fetch_all_pages,
        explicit_range=explicit,
    )


@dataclass(frozen=True)
class AggregationRequest:
    """
    One chain stats request.

    Explicit timestamps take precedence over the named range when both
    are given. expand_granularities is set when no metric subset was
    named; activeAddresses then carries daily/weekly/monthly series.
    """
    entity_id: str
    metrics: FrozenSet[MetricKey]
    time_range: str = DEFAULT_TIME_RANGE
    start_timestamp: Optional[int] = None
    end_timestamp: Optional[int] = None
    expand_granularities: bool = False

    def __post_init__(self):
        if not self.entity_id:
            raise ValidationError("Chain ID is required")
        if (
            self.start_timestamp is not None
            and self.end_timestamp is not None
            and self.start_timestamp > self.end_timestamp
        ):
            raise ValidationError("startTimestamp must be less than or equal to endTimestamp")

    @property
    def has_explicit_range(self) -> bool:
        return self.start_timestamp is not None and self.end_timestamp is not None

    @property
    def metrics_label(self) -> str:
        """Sorted, comma-joined metric names (order-independent)"""
        return ",".join(sorted(m.value for m in self.metrics))

    @property
    def range_label(self) -> str:
        if self.has_explicit_range:
            return f"{self.start_timestamp}-{self.end_timestamp}"
        return self.time_range

    def cache_key(self) -> str:
        return self._key(self.range_label)

    def fallback_key(self, default_range: str = DEFAULT_TIME_RANGE) -> str:
        """Key of the same entity and metrics cached under the default range"""
        return self._key(default_range)

    def _key(self, range_label: str) -> str:
        key = f"{self.entity_id}:{range_label}:{self.metrics_label}"
        if self.expand_granularities:
            key += ":expanded"
        return key

    def window(self, now: Optional[int] = None) -> FetchWindow:
        return build_fetch_window(
            self.time_range, self.start_timestamp, self.end_timestamp, now=now
        )


@dataclass
class AggregationResult:
    """
    Metric payloads keyed by metric name, plus last_updated (unix ms).

    Metrics with no data are absent. Instances are treated as immutable
    once cached; use with_metric() to derive a patched copy.
    """
    metrics: Dict[str, Any] = field(default_factory=dict)
    last_updated: int = field(default_factory=lambda: int(time.time() * 1000))

    def __contains__(self, metric: MetricKey) -> bool:
        return metric.value in self.metrics

    def get(self, metric: MetricKey) -> Optional[Any]:
        return self.metrics.get(metric.value)

    def with_metric(self, metric: MetricKey, payload: Any) -> "AggregationResult":
        metrics = dict(self.metrics)
        metrics[metric.value] = payload
        return AggregationResult(metrics=metrics, last_updated=self.last_updated)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.metrics)
        data["last_updated"] = self.last_updated
        return data
