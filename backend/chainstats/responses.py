"""
Request parsing and response envelopes for the stats endpoints

Query parameters arrive as raw strings and are validated here, before any
cache or upstream work, so bad input always fails fast with a 400. Every
response carries the same Cache-Control header and X-* provenance headers.
"""

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from chainstats.cache import CacheLookup, CacheSource
from chainstats.config import settings
from chainstats.constants import (
    DEFAULT_TIME_RANGE,
    HEADER_CACHE_AGE,
    HEADER_CHAIN_ID,
    HEADER_DATA_SOURCE,
    HEADER_FETCH_TIME,
    HEADER_METRICS,
    HEADER_TIME_RANGE,
    TIME_RANGES,
)
from chainstats.exceptions import ValidationError
from chainstats.metric_registry import parse_metric_keys
from chainstats.schemas import ErrorResponse
from chainstats.stats_types import AggregationRequest

_STATUS_BY_SOURCE = {
    CacheSource.FRESH: 200,
    CacheSource.CACHE: 200,
    CacheSource.STALE: 200,
    CacheSource.FALLBACK: 206,
    CacheSource.ERROR: 500,
}


# -----------------------------------------------------------------------------
# Request parsing
# -----------------------------------------------------------------------------


def parse_timestamp(raw: Optional[str], name: str) -> Optional[int]:
    """
    Parse a unix-seconds query parameter.

    Raises:
        ValidationError: if present but not a non-negative integer
    """
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValidationError(f"Invalid {name}: must be a non-negative integer")
    if value < 0:
        raise ValidationError(f"Invalid {name}: must be a non-negative integer")
    return value


def parse_time_range(raw: Optional[str]) -> str:
    if raw is None or raw == "":
        return DEFAULT_TIME_RANGE
    if raw not in TIME_RANGES:
        raise ValidationError(
            f"Invalid timeRange: {raw}. Valid ranges: {', '.join(TIME_RANGES)}"
        )
    return raw


def parse_flag(raw: Optional[str]) -> bool:
    return raw is not None and raw.lower() == "true"


def build_chain_stats_request(
    chain_id: str,
    time_range: Optional[str] = None,
    metrics: Optional[str] = None,
    start_timestamp: Optional[str] = None,
    end_timestamp: Optional[str] = None,
) -> AggregationRequest:
    """
    Validate raw query parameters into an AggregationRequest.

    Omitting `metrics` requests every metric with activeAddresses expanded
    to daily/weekly/monthly series.

    Raises:
        ValidationError: on any invalid parameter
    """
    start = parse_timestamp(start_timestamp, "startTimestamp")
    end = parse_timestamp(end_timestamp, "endTimestamp")
    if (start is None) != (end is None):
        raise ValidationError("startTimestamp and endTimestamp must be provided together")
    if start is not None and start > end:
        raise ValidationError("startTimestamp must be less than or equal to endTimestamp")

    return AggregationRequest(
        entity_id=chain_id,
        metrics=parse_metric_keys(metrics),
        time_range=parse_time_range(time_range),
        start_timestamp=start,
        end_timestamp=end,
        expand_granularities=metrics is None,
    )


# -----------------------------------------------------------------------------
# Envelopes
# -----------------------------------------------------------------------------


def cache_control_header(ttl_seconds: int, swr_seconds: Optional[int] = None) -> str:
    swr = swr_seconds if swr_seconds is not None else settings.stale_while_revalidate_seconds
    return (
        f"public, max-age={ttl_seconds}, s-maxage={ttl_seconds}, "
        f"stale-while-revalidate={swr}"
    )


def envelope_headers(
    source: CacheSource,
    ttl_seconds: int,
    chain_id: Optional[str] = None,
    time_range: Optional[str] = None,
    cache_age_seconds: Optional[float] = None,
    fetch_seconds: Optional[float] = None,
    metrics: Optional[str] = None,
) -> Dict[str, str]:
    headers = {
        "Cache-Control": cache_control_header(ttl_seconds),
        HEADER_DATA_SOURCE: source.value,
    }
    if chain_id:
        headers[HEADER_CHAIN_ID] = chain_id
    if time_range:
        headers[HEADER_TIME_RANGE] = time_range
    if cache_age_seconds is not None:
        headers[HEADER_CACHE_AGE] = f"{round(cache_age_seconds)}s"
    if fetch_seconds is not None:
        headers[HEADER_FETCH_TIME] = f"{round(fetch_seconds * 1000)}ms"
    if metrics:
        headers[HEADER_METRICS] = metrics
    return headers


def error_response(
    message: str,
    status_code: int,
    ttl_seconds: int,
    details: Optional[str] = None,
    chain_id: Optional[str] = None,
) -> JSONResponse:
    body = ErrorResponse(error=message, details=details).model_dump(exclude_none=True)
    return JSONResponse(
        body,
        status_code=status_code,
        headers=envelope_headers(CacheSource.ERROR, ttl_seconds, chain_id=chain_id),
    )


def stats_response(
    lookup: CacheLookup,
    ttl_seconds: int,
    error_message: str,
    time_range: Optional[str] = None,
    chain_id: Optional[str] = None,
    metrics: Optional[str] = None,
    default_time_range: str = DEFAULT_TIME_RANGE,
) -> JSONResponse:
    """
    Envelope for a cache lookup.

    Fallback data is labelled with the default range it was cached under;
    a lookup with no data becomes a 500 carrying error_message.
    """
    if lookup.source == CacheSource.ERROR or lookup.data is None:
        return error_response(error_message, 500, ttl_seconds, chain_id=chain_id)

    if lookup.source == CacheSource.FALLBACK:
        time_range = default_time_range

    body: Dict[str, Any] = lookup.data.to_dict()
    headers = envelope_headers(
        lookup.source,
        ttl_seconds,
        chain_id=chain_id,
        time_range=time_range,
        cache_age_seconds=lookup.age_seconds,
        fetch_seconds=lookup.fetch_seconds if lookup.source == CacheSource.FRESH else None,
        metrics=metrics,
    )
    return JSONResponse(body, status_code=_STATUS_BY_SOURCE[lookup.source], headers=headers)
