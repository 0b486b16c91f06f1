from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Chain metrics API (paginated time series per chain / network)
    metrics_api_base_url: str = "https://metrics.lux.network"
    metrics_bypass_token: str = ""  # Sent as rltoken to skip the public rate limit

    # Data API (validator version distribution)
    data_api_base_url: str = "https://data-api.lux.network"

    # Secondary indexer (cross-chain message volume)
    indexer_base_url: str = "https://idx6.solokhin.com"

    # Metabase public dashboard exports
    metabase_rewards_url: str = (
        "https://luxfi-inc.metabaseapp.com/api/public/dashboard/"
        "3e895234-4c31-40f7-a3ee-4656f6caf535/dashcard/6788/card/5464"
        "?parameters=%5B%7B%22type%22%3A%22string%2F%3D%22%2C%22value%22%3Anull%2C"
        "%22id%22%3A%22b87e50a4%22%2C%22target%22%3A%5B%22variable%22%2C%5B%22template-tag"
        "%22%2C%22address%22%5D%5D%7D%2C%7B%22type%22%3A%22string%2F%3D%22%2C%22value"
        "%22%3Anull%2C%22id%22%3A%2242440d5%22%2C%22target%22%3A%5B%22variable%22%2C%5B"
        "%22template-tag%22%2C%22Node_ID%22%5D%5D%7D%2C%7B%22type%22%3A%22string%2F%3D"
        "%22%2C%22value%22%3Anull%2C%22id%22%3A%22ccdf28e0%22%2C%22target%22%3A%5B"
        "%22dimension%22%2C%5B%22template-tag%22%2C%22Reward_Type%22%5D%2C%7B%22stage-number"
        "%22%3A0%7D%5D%7D%5D"
    )
    metabase_primary_network_fees_url: str = (
        "https://luxfi-inc.metabaseapp.com/api/public/dashboard/"
        "38ea69a5-e373-4258-9db6-8425fcba3a1a/dashcard/9955/card/13502?parameters=%5B%5D"
    )

    # Upstream request bound (seconds) - a slow source degrades to an empty series
    request_timeout_seconds: float = 8.0

    # Cache lifetimes (seconds)
    chain_stats_cache_ttl_seconds: int = 14400  # 4 hours
    primary_network_cache_ttl_seconds: int = 3600  # 1 hour
    stale_while_revalidate_seconds: int = 86400

    # Entities that may request primary-network-only metrics
    primary_network_ids: List[str] = ["43114", "primary"]

    # Range served when a cold key fails and nothing else is cached
    default_time_range: str = "30d"

    # HTTP server
    cors_origins: List[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    @field_validator(
        "metrics_api_base_url", "data_api_base_url", "indexer_base_url"
    )
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Base URLs are joined with paths that start with '/'"""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
