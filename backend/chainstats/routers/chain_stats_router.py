"""
Chain stats API route

GET /api/chain-stats/{chain_id}
  ?timeRange=7d|30d|90d|all
  &metrics=activeAddresses,txCount,...
  &startTimestamp=<unix s>&endTimestamp=<unix s>
  &clearCache=true
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from chainstats.exceptions import ValidationError
from chainstats.responses import (
    build_chain_stats_request,
    error_response,
    parse_flag,
    stats_response,
)
from chainstats.services.chain_stats_service import ChainStatsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chain-stats"])

FAILURE_MESSAGE = "Failed to fetch chain metrics"


# Dependency - will be overridden in main.py
def get_chain_stats_service() -> ChainStatsService:
    """Get the chain stats service - will be overridden in main.py"""
    raise NotImplementedError("Must override chain stats service dependency")


@router.get("/chain-stats/{chain_id}")
async def get_chain_stats(
    chain_id: str,
    time_range: Optional[str] = Query(None, alias="timeRange"),
    metrics: Optional[str] = Query(None),
    start_timestamp: Optional[str] = Query(None, alias="startTimestamp"),
    end_timestamp: Optional[str] = Query(None, alias="endTimestamp"),
    clear_cache: Optional[str] = Query(None, alias="clearCache"),
    service: ChainStatsService = Depends(get_chain_stats_service),
) -> JSONResponse:
    """Aggregated metrics for one chain ("all" for every chain)"""
    ttl = service.cache.ttl_seconds
    try:
        request = build_chain_stats_request(
            chain_id, time_range, metrics, start_timestamp, end_timestamp
        )
    except ValidationError as e:
        logger.info(f"Rejected chain stats request for {chain_id}: {e.message}")
        return error_response(e.message, e.status_code, ttl, chain_id=chain_id)

    try:
        lookup = await service.get_stats(request, clear_cache=parse_flag(clear_cache))
    except Exception as e:
        logger.exception(f"Unhandled error serving chain stats for {chain_id}")
        return error_response(FAILURE_MESSAGE, 500, ttl, details=str(e), chain_id=chain_id)

    return stats_response(
        lookup,
        ttl,
        FAILURE_MESSAGE,
        time_range=request.range_label,
        chain_id=chain_id,
        metrics=request.metrics_label,
        default_time_range=service.default_time_range,
    )
