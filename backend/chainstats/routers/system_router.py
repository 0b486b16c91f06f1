"""
System API routes

- Health check
- Cache statistics for the stats caches
"""

import logging
import time

from fastapi import APIRouter, Depends

from chainstats import __version__
from chainstats.routers.chain_stats_router import get_chain_stats_service
from chainstats.routers.primary_network_router import get_primary_network_service
from chainstats.schemas import CacheStatsResponse, HealthResponse
from chainstats.services.chain_stats_service import ChainStatsService
from chainstats.services.primary_network_service import PrimaryNetworkService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", version=__version__)


@router.get("/cache", response_model=CacheStatsResponse)
async def cache_stats(
    chain_stats: ChainStatsService = Depends(get_chain_stats_service),
    primary_network: PrimaryNetworkService = Depends(get_primary_network_service),
):
    """Entry counts, ages and in-progress work of both stats caches"""
    return CacheStatsResponse(
        caches={
            "chain_stats": chain_stats.cache.stats(),
            "primary_network": primary_network.cache.stats(),
        },
        generated_at=int(time.time()),
    )
