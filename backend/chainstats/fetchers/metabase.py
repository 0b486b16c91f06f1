"""
Metabase Dashboard Export Fetcher

Reads public Metabase card exports. One export returns several correlated
series as a wide table: {"data": {"rows": [[iso_date, v1, v2, ...], ...]}}.

The exports have no schema we can check against, so the position of each
series is declared once in EXPORT_COLUMNS below. Column order is trusted;
rows too short to hold every mapped column are skipped.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from chainstats.config import settings
from chainstats.exceptions import UpstreamUnavailableError
from chainstats.fetchers.base import FetchTask, UpstreamFetcher
from chainstats.metric_registry import (
    PRIMARY_NETWORK_FEES_EXPORT,
    REWARDS_EXPORT,
    FetcherId,
    MetricKey,
)
from chainstats.stats_types import FetchWindow, Series, TimeSeriesPoint, sort_descending
from chainstats.utils.time_utils import parse_iso_timestamp

logger = logging.getLogger(__name__)

DATE_COLUMN = 0


@dataclass(frozen=True)
class ExportLayout:
    """Column index of each metric in one export's rows"""
    columns: Mapping[MetricKey, int]

    @property
    def min_row_width(self) -> int:
        return max(list(self.columns.values()) + [DATE_COLUMN]) + 1


EXPORT_COLUMNS: Dict[str, ExportLayout] = {
    # [date, daily rewards, cumulative rewards]
    REWARDS_EXPORT: ExportLayout(columns={
        MetricKey.DAILY_REWARDS: 1,
        MetricKey.CUMULATIVE_REWARDS: 2,
    }),
    # Columns 1 and 4 are not served
    PRIMARY_NETWORK_FEES_EXPORT: ExportLayout(columns={
        MetricKey.CUMULATIVE_BURN: 2,
        MetricKey.NET_CUMULATIVE_EMISSIONS: 3,
        MetricKey.TOTAL_BURN_DAILY: 5,
        MetricKey.NET_EMISSIONS_DAILY: 6,
        MetricKey.C_CHAIN_FEES_DAILY: 7,
        MetricKey.P_CHAIN_FEES_DAILY: 8,
        MetricKey.X_CHAIN_FEES_DAILY: 9,
        MetricKey.VALIDATOR_FEES_DAILY: 10,
        MetricKey.CUMULATIVE_C_CHAIN_FEES: 11,
        MetricKey.CUMULATIVE_P_CHAIN_FEES: 12,
        MetricKey.CUMULATIVE_X_CHAIN_FEES: 13,
        MetricKey.CUMULATIVE_VALIDATOR_FEES: 14,
    }),
}


def default_export_urls() -> Dict[str, str]:
    return {
        REWARDS_EXPORT: settings.metabase_rewards_url,
        PRIMARY_NETWORK_FEES_EXPORT: settings.metabase_primary_network_fees_url,
    }


def parse_export_rows(
    rows: List[Any],
    layout: ExportLayout,
    window: Optional[FetchWindow] = None,
) -> Dict[MetricKey, List[TimeSeriesPoint]]:
    """
    Split wide export rows into one descending series per mapped column.

    Points outside the window (when given) are dropped.
    """
    series: Dict[MetricKey, List[TimeSeriesPoint]] = {metric: [] for metric in layout.columns}
    skipped = 0
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < layout.min_row_width:
            skipped += 1
            continue
        try:
            timestamp = parse_iso_timestamp(str(row[DATE_COLUMN]))
        except ValueError:
            skipped += 1
            continue
        if window is not None and not (
            window.start_timestamp <= timestamp <= window.end_timestamp
        ):
            continue
        for metric, index in layout.columns.items():
            series[metric].append(TimeSeriesPoint.at(timestamp, row[index]))

    if skipped:
        logger.warning(f"Skipped {skipped} malformed export rows (expected >= {layout.min_row_width} columns)")

    return {metric: sort_descending(points) for metric, points in series.items()}


class MetabaseFetcher(UpstreamFetcher):
    fetcher_id = FetcherId.METABASE

    def __init__(self, export_urls: Optional[Mapping[str, str]] = None, **kwargs):
        super().__init__(**kwargs)
        self.export_urls = dict(export_urls) if export_urls is not None else default_export_urls()

    async def _fetch(
        self, task: FetchTask, entity_id: str, window: FetchWindow
    ) -> Dict[MetricKey, Series]:
        # Exports are served whole, whatever the requested range
        columns = await self._load_export(task.source, None)
        return {metric: columns.get(metric, []) for metric in task.metrics}

    async def fetch_export(
        self, export_name: str, window: Optional[FetchWindow] = None
    ) -> Dict[MetricKey, List[TimeSeriesPoint]]:
        """Every mapped series of one export; empty on failure"""
        return await self._run_soft(
            self._load_export(export_name, window), f"{export_name} export", default={}
        )

    async def _load_export(
        self, export_name: str, window: Optional[FetchWindow]
    ) -> Dict[MetricKey, List[TimeSeriesPoint]]:
        layout = EXPORT_COLUMNS[export_name]
        url = self.export_urls[export_name]

        payload = await self._get_json(url)
        data = payload.get("data") if isinstance(payload, dict) else None
        rows = data.get("rows") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise UpstreamUnavailableError(f"Invalid data format in {export_name} export")

        return parse_export_rows(rows, layout, window)
