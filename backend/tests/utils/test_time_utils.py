"""
Tests for backend/chainstats/utils/time_utils.py
"""

import pytest

from chainstats.constants import ALL_TIME_START_TIMESTAMP, SECONDS_PER_DAY
from chainstats.utils.time_utils import (
    parse_iso_timestamp,
    resolve_time_window,
    timestamps_from_time_range,
    utc_date,
)

NOW = 1_700_000_000


class TestUtcDate:
    def test_midnight(self):
        assert utc_date(1733702400) == "2024-12-09"

    def test_late_in_day_stays_utc(self):
        """Edge case: 23:59:59 UTC is still the same calendar day."""
        assert utc_date(1733702400 + SECONDS_PER_DAY - 1) == "2024-12-09"


class TestParseIsoTimestamp:
    """Tests for parse_iso_timestamp()"""

    def test_zulu(self):
        assert parse_iso_timestamp("2024-12-09T00:00:00Z") == 1733702400

    def test_naive_is_utc(self):
        assert parse_iso_timestamp("2024-12-09T00:00:00") == 1733702400

    def test_bare_date(self):
        assert parse_iso_timestamp("2024-12-09") == 1733702400

    def test_offset(self):
        assert parse_iso_timestamp("2024-12-09T02:00:00+02:00") == 1733702400

    def test_invalid(self):
        """Failure: non-ISO input raises ValueError."""
        with pytest.raises(ValueError):
            parse_iso_timestamp("09/12/2024")


class TestTimestampsFromTimeRange:
    """Tests for timestamps_from_time_range() and resolve_time_window()"""

    @pytest.mark.parametrize("time_range,days", [("7d", 7), ("30d", 30), ("90d", 90)])
    def test_named_ranges(self, time_range, days):
        assert timestamps_from_time_range(time_range, now=NOW) == (NOW - days * SECONDS_PER_DAY, NOW)

    def test_all_starts_at_launch(self):
        assert timestamps_from_time_range("all", now=NOW) == (ALL_TIME_START_TIMESTAMP, NOW)

    def test_unknown_uses_default(self):
        assert timestamps_from_time_range("nope", now=NOW) == (NOW - 30 * SECONDS_PER_DAY, NOW)

    def test_explicit_window_wins(self):
        assert resolve_time_window("7d", 100, 200, now=NOW) == (100, 200)

    def test_half_explicit_uses_range(self):
        """Edge case: a lone timestamp is ignored in favor of the range."""
        assert resolve_time_window("7d", 100, None, now=NOW) == (NOW - 7 * SECONDS_PER_DAY, NOW)
