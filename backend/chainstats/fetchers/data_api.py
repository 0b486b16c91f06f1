"""
Data API Client

Network details from the data API; used for the validator version
distribution shown alongside the primary network staking stats.
"""

import logging
from typing import Any, Dict, Optional

from chainstats.config import settings
from chainstats.fetchers.base import UpstreamClient

logger = logging.getLogger(__name__)


class DataApiClient(UpstreamClient):
    name = "data_api"

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.base_url = (base_url or settings.data_api_base_url).rstrip("/")

    async def fetch_validator_versions(self, network: str = "mainnet") -> Dict[str, Dict[str, Any]]:
        """
        Validator count and stake per node version.

        Returns:
            {version: {"validatorCount": int, "amountStaked": str}}; {} on failure
        """
        return await self._run_soft(
            self._load_validator_versions(network), f"validator versions for {network}", default={}
        )

    async def _load_validator_versions(self, network: str) -> Dict[str, Dict[str, Any]]:
        payload = await self._get_json(f"{self.base_url}/v1/networks/{network}")
        details = payload.get("validatorDetails") if isinstance(payload, dict) else None
        distribution = details.get("stakingDistributionByVersion") if isinstance(details, dict) else None
        if not isinstance(distribution, list):
            logger.warning("No stakingDistributionByVersion in network details")
            return {}

        versions: Dict[str, Dict[str, Any]] = {}
        for item in distribution:
            if isinstance(item, dict) and item.get("version") and item.get("validatorCount"):
                versions[item["version"]] = {
                    "validatorCount": item["validatorCount"],
                    "amountStaked": item.get("amountStaked"),
                }
        return versions
