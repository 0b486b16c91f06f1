"""
Tests for backend/chainstats/stats_types.py

Covers:
- Point construction and serialization
- series_payload current_value rules
- AggregationRequest validation, cache keys and windows
- AggregationResult patching
"""

import pytest

from chainstats.constants import ALL_TIME_START_TIMESTAMP, SECONDS_PER_DAY
from chainstats.exceptions import ValidationError
from chainstats.metric_registry import MetricKey
from chainstats.stats_types import (
    AggregationRequest,
    AggregationResult,
    CategoricalEventPoint,
    TimeSeriesPoint,
    build_fetch_window,
    series_payload,
    sort_descending,
)

NOW = 1_700_000_000


class TestPoints:
    """Tests for TimeSeriesPoint and CategoricalEventPoint."""

    def test_at_derives_utc_date(self):
        point = TimeSeriesPoint.at(1733702400, 12.5)  # 2024-12-09T00:00:00Z
        assert point.date == "2024-12-09"
        assert point.value == 12.5

    def test_at_missing_value_is_zero(self):
        """Edge case: null upstream values become 0."""
        assert TimeSeriesPoint.at(NOW, None).value == 0

    def test_event_point_to_dict(self):
        point = CategoricalEventPoint(NOW, "2023-11-14", 7, {"incoming": 3, "outgoing": 4})
        assert point.to_dict() == {
            "timestamp": NOW,
            "date": "2023-11-14",
            "count": 7,
            "sub_counts": {"incoming": 3, "outgoing": 4},
        }

    def test_sort_descending(self):
        points = [TimeSeriesPoint.at(1, 1), TimeSeriesPoint.at(3, 3), TimeSeriesPoint.at(2, 2)]
        assert [p.timestamp for p in sort_descending(points)] == [3, 2, 1]


class TestSeriesPayload:
    """Tests for series_payload()."""

    def test_current_value_is_most_recent(self):
        payload = series_payload([TimeSeriesPoint.at(NOW, 5), TimeSeriesPoint.at(NOW - 1, 4)])
        assert payload["current_value"] == 5
        assert len(payload["data"]) == 2

    def test_event_series_uses_count(self):
        payload = series_payload([CategoricalEventPoint(NOW, "2023-11-14", 11)])
        assert payload["current_value"] == 11

    def test_empty_series(self):
        """Edge case: an empty series has current_value 0."""
        assert series_payload([]) == {"current_value": 0, "data": []}


class TestAggregationRequest:
    """Tests for AggregationRequest."""

    def test_start_after_end_rejected(self):
        """Failure: start > end is invalid."""
        with pytest.raises(ValidationError):
            AggregationRequest("c", frozenset({MetricKey.TX_COUNT}), start_timestamp=10, end_timestamp=5)

    def test_start_equal_end_accepted(self):
        """Edge case: a zero-length window is allowed."""
        request = AggregationRequest(
            "c", frozenset({MetricKey.TX_COUNT}), start_timestamp=10, end_timestamp=10
        )
        assert request.has_explicit_range is True

    def test_empty_entity_rejected(self):
        with pytest.raises(ValidationError):
            AggregationRequest("", frozenset({MetricKey.TX_COUNT}))

    def test_cache_key_order_independent(self):
        """Happy path: metric order does not change the key."""
        a = AggregationRequest("c", frozenset({MetricKey.TX_COUNT, MetricKey.GAS_USED}), "7d")
        b = AggregationRequest("c", frozenset({MetricKey.GAS_USED, MetricKey.TX_COUNT}), "7d")
        assert a.cache_key() == b.cache_key() == "c:7d:gasUsed,txCount"

    def test_cache_key_explicit_range(self):
        request = AggregationRequest(
            "c", frozenset({MetricKey.TX_COUNT}), start_timestamp=100, end_timestamp=200
        )
        assert request.cache_key() == "c:100-200:txCount"

    def test_cache_key_expanded(self):
        request = AggregationRequest("c", frozenset({MetricKey.TX_COUNT}), expand_granularities=True)
        assert request.cache_key() == "c:30d:txCount:expanded"

    def test_fallback_key_uses_default_range(self):
        request = AggregationRequest("c", frozenset({MetricKey.TX_COUNT}), "90d")
        assert request.fallback_key() == "c:30d:txCount"

    def test_window_named_range(self):
        window = AggregationRequest("c", frozenset({MetricKey.TX_COUNT}), "7d").window(now=NOW)
        assert window.end_timestamp == NOW
        assert window.start_timestamp == NOW - 7 * SECONDS_PER_DAY
        assert window.page_size == 7
        assert window.fetch_all_pages is False
        assert window.explicit_range is False

    def test_window_explicit_range_wins(self):
        """Happy path: explicit timestamps override the named range."""
        request = AggregationRequest(
            "c", frozenset({MetricKey.TX_COUNT}), "7d", start_timestamp=100, end_timestamp=200
        )
        window = request.window(now=NOW)
        assert (window.start_timestamp, window.end_timestamp) == (100, 200)
        assert window.page_size == 365
        assert window.fetch_all_pages is True
        assert window.explicit_range is True


class TestBuildFetchWindow:
    """Tests for build_fetch_window()."""

    def test_all_time(self):
        window = build_fetch_window("all", now=NOW)
        assert window.start_timestamp == ALL_TIME_START_TIMESTAMP
        assert window.fetch_all_pages is True

    def test_unknown_range_uses_default(self):
        """Edge case: unknown range falls back to 30d limits."""
        window = build_fetch_window("bogus", now=NOW)
        assert window.start_timestamp == NOW - 30 * SECONDS_PER_DAY
        assert window.page_size == 30


class TestAggregationResult:
    """Tests for AggregationResult."""

    def test_with_metric_returns_copy(self):
        """Happy path: patching leaves the original untouched."""
        original = AggregationResult(metrics={"txCount": {"current_value": 1, "data": []}}, last_updated=5)
        patched = original.with_metric(MetricKey.ICM_MESSAGES, {"current_value": 2, "data": []})

        assert MetricKey.ICM_MESSAGES in patched
        assert MetricKey.ICM_MESSAGES not in original
        assert patched.last_updated == 5

    def test_to_dict_flattens(self):
        result = AggregationResult(metrics={"txCount": {"current_value": 1, "data": []}}, last_updated=5)
        assert result.to_dict() == {"txCount": {"current_value": 1, "data": []}, "last_updated": 5}
