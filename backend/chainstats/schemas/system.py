"""Operational and error Pydantic schemas"""

from typing import Dict, List, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    version: str


class CacheKeyStats(BaseModel):
    key: str
    age_seconds: float
    expired: bool
    metadata_tag: str


class CacheSummary(BaseModel):
    name: str
    ttl_seconds: float
    entries: int
    in_flight: List[str]
    revalidating: List[str]
    keys: List[CacheKeyStats]


class CacheStatsResponse(BaseModel):
    caches: Dict[str, CacheSummary]
    generated_at: int  # unix seconds
