"""
Metric Registry

Declares every metric the chain stats endpoint can serve, which upstream
fetcher produces it, and whether it is restricted to the primary network.

Adding a metric means adding a MetricKey member and one registry row;
metrics that share a `source` on the same fetcher are fetched in one call.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Sequence

from chainstats.exceptions import ValidationError


class MetricKey(str, Enum):
    # Chain metrics API
    ACTIVE_ADDRESSES = "activeAddresses"
    ACTIVE_SENDERS = "activeSenders"
    CUMULATIVE_ADDRESSES = "cumulativeAddresses"
    CUMULATIVE_DEPLOYERS = "cumulativeDeployers"
    TX_COUNT = "txCount"
    CUMULATIVE_TX_COUNT = "cumulativeTxCount"
    CUMULATIVE_CONTRACTS = "cumulativeContracts"
    CONTRACTS = "contracts"
    DEPLOYERS = "deployers"
    GAS_USED = "gasUsed"
    AVG_GPS = "avgGps"
    MAX_GPS = "maxGps"
    AVG_TPS = "avgTps"
    MAX_TPS = "maxTps"
    AVG_GAS_PRICE = "avgGasPrice"
    MAX_GAS_PRICE = "maxGasPrice"
    FEES_PAID = "feesPaid"

    # Secondary indexer
    ICM_MESSAGES = "icmMessages"

    # Metabase rewards export
    DAILY_REWARDS = "dailyRewards"
    CUMULATIVE_REWARDS = "cumulativeRewards"

    # Metabase primary network fees export
    NET_CUMULATIVE_EMISSIONS = "netCumulativeEmissions"
    NET_EMISSIONS_DAILY = "netEmissionsDaily"
    CUMULATIVE_BURN = "cumulativeBurn"
    TOTAL_BURN_DAILY = "totalBurnDaily"
    C_CHAIN_FEES_DAILY = "cChainFeesDaily"
    P_CHAIN_FEES_DAILY = "pChainFeesDaily"
    X_CHAIN_FEES_DAILY = "xChainFeesDaily"
    VALIDATOR_FEES_DAILY = "validatorFeesDaily"
    CUMULATIVE_C_CHAIN_FEES = "cumulativeCChainFees"
    CUMULATIVE_P_CHAIN_FEES = "cumulativePChainFees"
    CUMULATIVE_X_CHAIN_FEES = "cumulativeXChainFees"
    CUMULATIVE_VALIDATOR_FEES = "cumulativeValidatorFees"


class FetcherId(str, Enum):
    METRICS_API = "metrics_api"
    METABASE = "metabase"
    INDEXER = "indexer"


class SeriesKind(str, Enum):
    TIME_SERIES = "time_series"
    EVENT_SERIES = "event_series"


# Metabase export names (the `source` of METABASE rows)
REWARDS_EXPORT = "rewards"
PRIMARY_NETWORK_FEES_EXPORT = "primary_network_fees"

# Granularities served for multi-granularity metrics, keyed by API interval
GRANULARITY_INTERVALS = {"daily": "day", "weekly": "week", "monthly": "month"}


@dataclass(frozen=True)
class MetricSpec:
    fetcher: FetcherId
    source: str
    entity_restricted: bool = False
    kind: SeriesKind = SeriesKind.TIME_SERIES
    multi_granularity: bool = False


def _metrics_api(key: MetricKey, multi_granularity: bool = False) -> MetricSpec:
    return MetricSpec(
        fetcher=FetcherId.METRICS_API,
        source=key.value,
        multi_granularity=multi_granularity,
    )


def _export(export: str) -> MetricSpec:
    return MetricSpec(fetcher=FetcherId.METABASE, source=export, entity_restricted=True)


METRIC_REGISTRY: Dict[MetricKey, MetricSpec] = {
    MetricKey.ACTIVE_ADDRESSES: _metrics_api(MetricKey.ACTIVE_ADDRESSES, multi_granularity=True),
    MetricKey.ACTIVE_SENDERS: _metrics_api(MetricKey.ACTIVE_SENDERS),
    MetricKey.CUMULATIVE_ADDRESSES: _metrics_api(MetricKey.CUMULATIVE_ADDRESSES),
    MetricKey.CUMULATIVE_DEPLOYERS: _metrics_api(MetricKey.CUMULATIVE_DEPLOYERS),
    MetricKey.TX_COUNT: _metrics_api(MetricKey.TX_COUNT),
    MetricKey.CUMULATIVE_TX_COUNT: _metrics_api(MetricKey.CUMULATIVE_TX_COUNT),
    MetricKey.CUMULATIVE_CONTRACTS: _metrics_api(MetricKey.CUMULATIVE_CONTRACTS),
    MetricKey.CONTRACTS: _metrics_api(MetricKey.CONTRACTS),
    MetricKey.DEPLOYERS: _metrics_api(MetricKey.DEPLOYERS),
    MetricKey.GAS_USED: _metrics_api(MetricKey.GAS_USED),
    MetricKey.AVG_GPS: _metrics_api(MetricKey.AVG_GPS),
    MetricKey.MAX_GPS: _metrics_api(MetricKey.MAX_GPS),
    MetricKey.AVG_TPS: _metrics_api(MetricKey.AVG_TPS),
    MetricKey.MAX_TPS: _metrics_api(MetricKey.MAX_TPS),
    MetricKey.AVG_GAS_PRICE: _metrics_api(MetricKey.AVG_GAS_PRICE),
    MetricKey.MAX_GAS_PRICE: _metrics_api(MetricKey.MAX_GAS_PRICE),
    MetricKey.FEES_PAID: _metrics_api(MetricKey.FEES_PAID),
    MetricKey.ICM_MESSAGES: MetricSpec(
        fetcher=FetcherId.INDEXER,
        source="dailyMessageVolume",
        kind=SeriesKind.EVENT_SERIES,
    ),
    MetricKey.DAILY_REWARDS: _export(REWARDS_EXPORT),
    MetricKey.CUMULATIVE_REWARDS: _export(REWARDS_EXPORT),
    MetricKey.NET_CUMULATIVE_EMISSIONS: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.NET_EMISSIONS_DAILY: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.CUMULATIVE_BURN: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.TOTAL_BURN_DAILY: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.C_CHAIN_FEES_DAILY: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.P_CHAIN_FEES_DAILY: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.X_CHAIN_FEES_DAILY: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.VALIDATOR_FEES_DAILY: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.CUMULATIVE_C_CHAIN_FEES: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.CUMULATIVE_P_CHAIN_FEES: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.CUMULATIVE_X_CHAIN_FEES: _export(PRIMARY_NETWORK_FEES_EXPORT),
    MetricKey.CUMULATIVE_VALIDATOR_FEES: _export(PRIMARY_NETWORK_FEES_EXPORT),
}

ALL_METRICS: FrozenSet[MetricKey] = frozenset(MetricKey)
_METRIC_NAMES = frozenset(m.value for m in MetricKey)


def get_metric_spec(metric: MetricKey) -> MetricSpec:
    return METRIC_REGISTRY[metric]


def parse_metric_keys(raw: Optional[str]) -> FrozenSet[MetricKey]:
    """
    Parse a comma-separated metrics parameter into MetricKeys.

    None means "every metric". Blank entries are ignored.

    Raises:
        ValidationError: on any unknown name, or when nothing remains
    """
    if raw is None:
        return ALL_METRICS

    names = [name.strip() for name in raw.split(",") if name.strip()]
    valid = ", ".join(sorted(m.value for m in MetricKey))
    if not names:
        raise ValidationError(f"Invalid metrics parameter. Valid metrics: {valid}")

    unknown = [name for name in names if name not in _METRIC_NAMES]
    if unknown:
        raise ValidationError(
            f"Invalid metrics parameter: unknown metric(s) {', '.join(unknown)}. "
            f"Valid metrics: {valid}"
        )
    return frozenset(MetricKey(name) for name in names)


def is_primary_network(entity_id: str, primary_network_ids: Sequence[str]) -> bool:
    return entity_id in primary_network_ids


def metrics_available_for(
    metrics: Iterable[MetricKey], entity_id: str, primary_network_ids: Sequence[str]
) -> FrozenSet[MetricKey]:
    """Drop entity-restricted metrics unless the entity is the primary network"""
    primary = is_primary_network(entity_id, primary_network_ids)
    return frozenset(
        m for m in metrics if primary or not METRIC_REGISTRY[m].entity_restricted
    )
