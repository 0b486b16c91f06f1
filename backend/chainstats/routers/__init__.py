"""
API Routers

One module per endpoint group; main.py includes each module's router.
"""

from chainstats.routers import chain_stats_router
from chainstats.routers import primary_network_router
from chainstats.routers import system_router

__all__ = [
    "chain_stats_router",
    "primary_network_router",
    "system_router",
]
