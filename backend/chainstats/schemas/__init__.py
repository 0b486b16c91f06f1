"""Centralized Pydantic schemas for API responses"""

from .system import CacheStatsResponse, ErrorResponse, HealthResponse

__all__ = [
    "CacheStatsResponse",
    "ErrorResponse",
    "HealthResponse",
]
