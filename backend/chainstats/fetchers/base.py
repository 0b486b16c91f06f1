"""
Base Upstream Fetcher

Defines the interface every upstream adapter follows, and the shared
aiohttp session they use.

Fetchers never raise: a timeout, non-200 status or malformed payload is
logged and degrades to an empty result, so one upstream outage only
removes that upstream's metrics from an aggregation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Mapping, Optional, Tuple

import aiohttp

from chainstats.config import settings
from chainstats.constants import USER_AGENT
from chainstats.exceptions import UpstreamUnavailableError
from chainstats.metric_registry import FetcherId, MetricKey
from chainstats.stats_types import FetchWindow, Series

logger = logging.getLogger(__name__)

# Shared aiohttp session (lazy-initialized, reused across requests)
_shared_session: Optional[aiohttp.ClientSession] = None
_SHARED_HEADERS = {"User-Agent": USER_AGENT, "Accept": "application/json"}


async def get_shared_session() -> aiohttp.ClientSession:
    """Get or create the shared aiohttp session for upstream calls."""
    global _shared_session
    if _shared_session is None or _shared_session.closed:
        _shared_session = aiohttp.ClientSession(headers=_SHARED_HEADERS)
    return _shared_session


async def close_shared_session() -> None:
    global _shared_session
    if _shared_session is not None and not _shared_session.closed:
        await _shared_session.close()
    _shared_session = None


@dataclass(frozen=True)
class FetchTask:
    """
    One upstream call planned by the aggregator.

    `source` is the upstream metric or export name; every metric in
    `metrics` is produced by that single call.
    """
    fetcher: FetcherId
    source: str
    metrics: Tuple[MetricKey, ...]
    interval: str = "day"


class UpstreamClient:
    """Session, timeout and JSON helpers shared by every upstream adapter"""

    name = "upstream"

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.request_timeout_seconds
        )
        self._session = session

    async def _run_soft(self, coro: Awaitable[Any], description: str, default: Any) -> Any:
        """Await coro under the timeout; log and return default on failure"""
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout after {self.timeout_seconds}s fetching {description} from {self.name}")
        except Exception as e:
            logger.warning(f"Failed to fetch {description} from {self.name}: {e}")
        return default

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None:
            return self._session
        return await get_shared_session()

    async def _get_json(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """
        GET a JSON document.

        Raises:
            UpstreamUnavailableError: on a non-200 response
        """
        session = await self._get_session()
        query = {k: str(v) for k, v in (params or {}).items()}
        async with session.get(
            url,
            params=query or None,
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
        ) as response:
            if response.status != 200:
                raise UpstreamUnavailableError(f"{self.name} returned {response.status}")
            return await response.json(content_type=None)


class UpstreamFetcher(UpstreamClient, ABC):
    """
    Abstract base class for the registry's data sources.

    Subclasses implement _fetch(); callers use fetch(), which bounds the
    call with a timeout and turns every failure into an empty result.
    """

    fetcher_id: FetcherId

    @property
    def name(self) -> str:
        return self.fetcher_id.value

    async def fetch(
        self, task: FetchTask, entity_id: str, window: FetchWindow
    ) -> Dict[MetricKey, Series]:
        """
        Run one planned task.

        Returns:
            Series keyed by metric; empty on any upstream failure
        """
        return await self._run_soft(
            self._fetch(task, entity_id, window),
            f"{task.source} for chain {entity_id}",
            default={},
        )

    @abstractmethod
    async def _fetch(
        self, task: FetchTask, entity_id: str, window: FetchWindow
    ) -> Dict[MetricKey, Series]:
        """Fetch and normalize; may raise, fetch() handles it"""
        pass
