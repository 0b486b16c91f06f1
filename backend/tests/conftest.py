"""
Shared test fixtures for the chain stats backend tests.

Provides reusable fixtures for:
- A controllable wall clock for cache age
- Mock aiohttp sessions and responses
- Aggregation result / request factories
"""

import pytest
from unittest.mock import MagicMock

from chainstats.metric_registry import MetricKey
from chainstats.stats_types import AggregationRequest, AggregationResult, TimeSeriesPoint, series_payload

# Fixed "now" used across tests: 2023-11-14T22:13:20Z
NOW = 1_700_000_000


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable wall clock that only moves when told to."""

    def __init__(self, start: float = float(NOW)):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# aiohttp mocks
# ---------------------------------------------------------------------------


class MockResponse:
    """Mimics an aiohttp response object usable as async context manager."""

    def __init__(self, status=200, json_data=None):
        self.status = status
        self._json_data = json_data

    async def json(self, content_type="application/json"):
        return self._json_data

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


@pytest.fixture
def mock_response():
    """Factory for MockResponse instances."""
    return MockResponse


@pytest.fixture
def make_session():
    """
    Factory for a MagicMock session whose get() returns the given responses.

    A single response is returned for every call; several are returned in
    order (side_effect).
    """
    def _make_session(*responses):
        session = MagicMock()
        if len(responses) == 1:
            session.get.return_value = responses[0]
        else:
            session.get.side_effect = list(responses)
        return session

    return _make_session


# ---------------------------------------------------------------------------
# Domain factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_result():
    """Factory for an AggregationResult with one short series per metric."""
    def _make_result(*metrics, value=1.0, last_updated=NOW * 1000):
        payloads = {
            metric.value: series_payload([
                TimeSeriesPoint.at(NOW, value),
                TimeSeriesPoint.at(NOW - 86400, value),
            ])
            for metric in metrics
        }
        return AggregationResult(metrics=payloads, last_updated=last_updated)

    return _make_result


@pytest.fixture
def make_request():
    """Factory for an AggregationRequest on chain 43114."""
    def _make_request(*metrics, entity_id="43114", **kwargs):
        return AggregationRequest(
            entity_id=entity_id,
            metrics=frozenset(metrics or (MetricKey.TX_COUNT,)),
            **kwargs,
        )

    return _make_request
