"""
Primary network staking stats API route

GET /api/primary-network-stats?timeRange=7d|30d|90d|all&clearCache=true
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from chainstats.exceptions import ValidationError
from chainstats.responses import error_response, parse_flag, parse_time_range, stats_response
from chainstats.services.primary_network_service import PrimaryNetworkService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["primary-network"])

FAILURE_MESSAGE = "Failed to fetch primary network stats"


# Dependency - will be overridden in main.py
def get_primary_network_service() -> PrimaryNetworkService:
    """Get the primary network service - will be overridden in main.py"""
    raise NotImplementedError("Must override primary network service dependency")


@router.get("/primary-network-stats")
async def get_primary_network_stats(
    time_range: Optional[str] = Query(None, alias="timeRange"),
    clear_cache: Optional[str] = Query(None, alias="clearCache"),
    service: PrimaryNetworkService = Depends(get_primary_network_service),
) -> JSONResponse:
    ttl = service.cache.ttl_seconds
    try:
        resolved_range = parse_time_range(time_range)
    except ValidationError as e:
        return error_response(e.message, e.status_code, ttl)

    try:
        lookup = await service.get_stats(resolved_range, clear_cache=parse_flag(clear_cache))
    except Exception as e:
        logger.exception("Unhandled error serving primary network stats")
        return error_response(FAILURE_MESSAGE, 500, ttl, details=str(e))

    return stats_response(
        lookup,
        ttl,
        FAILURE_MESSAGE,
        time_range=resolved_range,
        default_time_range=service.default_time_range,
    )
