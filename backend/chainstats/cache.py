"""
In-memory stats cache with stale-while-revalidate

Keeps aggregation results per cache key for the life of the process.
Fresh entries are served directly; stale entries are served immediately
while one background task refreshes them; cold keys are fetched once no
matter how many callers ask concurrently.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from chainstats.metric_registry import MetricKey
from chainstats.stats_types import AggregationResult

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Optional[AggregationResult]]]


class CacheSource(str, Enum):
    """Provenance of the data handed back to a caller"""
    FRESH = "fresh"
    CACHE = "cache"
    STALE = "stale-while-revalidate"
    FALLBACK = "fallback-cache"
    ERROR = "error"


class CacheEntry:
    """Single cached result with the wall-clock time it was stored"""

    def __init__(
        self,
        key: str,
        data: AggregationResult,
        stored_at: float,
        metadata_tag: str = "",
    ):
        self.key = key
        self.data = data
        self.stored_at = stored_at
        self.metadata_tag = metadata_tag

    def age(self, now: float) -> float:
        return max(0.0, now - self.stored_at)

    def is_expired(self, ttl_seconds: float, now: float) -> bool:
        return self.age(now) >= ttl_seconds


@dataclass
class CacheLookup:
    """Outcome of CacheService.get_or_fetch()"""
    source: CacheSource
    key: str
    data: Optional[AggregationResult] = None
    age_seconds: Optional[float] = None
    fetch_seconds: Optional[float] = None
    metadata_tag: str = ""
    served_key: Optional[str] = None  # Differs from key for fallback hits


class CacheService:
    """
    Keyed cache with TTL, single-flight fetches and background revalidation.

    Owns three pieces of process-wide state: the entry map, the in-flight
    fetch tasks and the set of keys being revalidated. Every check-and-set
    on them happens in one synchronous step (no await in between), which is
    what makes the single-flight and revalidate-once guarantees hold under
    asyncio without a lock.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
        name: str = "stats",
    ):
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        # In-flight fetches: key -> Task (prevents thundering herd)
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._revalidating: Set[str] = set()
        # Strong references so background tasks are not garbage-collected
        self._background: Set[asyncio.Task] = set()
        # Bumped by clear(); work started under an older generation is not stored
        self._generation = 0

    # -------------------------------------------------------------------------
    # Entry access
    # -------------------------------------------------------------------------

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """
        Entry for key regardless of age.

        Entries that are not well-formed are dropped and reported as a miss.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not _is_well_formed(entry):
            logger.warning(f"Dropping malformed {self.name} cache entry for {key}")
            self._entries.pop(key, None)
            return None
        return entry

    def put(self, key: str, data: AggregationResult, metadata_tag: str = "") -> CacheEntry:
        entry = CacheEntry(key, data, self._clock(), metadata_tag)
        self._entries[key] = entry
        return entry

    def patch_metric(
        self, key: str, metric: MetricKey, payload: Any, metadata_tag: str
    ) -> bool:
        """
        Replace one metric of a cached result, keeping its stored_at.

        Returns:
            False when the key is not cached
        """
        entry = self.get_entry(key)
        if entry is None:
            return False
        self._entries[key] = CacheEntry(
            key, entry.data.with_metric(metric, payload), entry.stored_at, metadata_tag
        )
        return True

    def clear(self):
        """Drop every entry and forget in-progress work"""
        self._generation += 1
        self._entries.clear()
        self._revalidating.clear()
        self._in_flight.clear()
        logger.info(f"Cleared {self.name} cache")

    def is_revalidating(self, key: str) -> bool:
        return key in self._revalidating

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._entries)

    # -------------------------------------------------------------------------
    # Read-through
    # -------------------------------------------------------------------------

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: FetchFn,
        metadata_tag: str = "",
        fallback_key: Optional[str] = None,
    ) -> CacheLookup:
        """
        Resolve a key through the cache.

        - fresh entry: returned as CACHE, no network call
        - stale entry: returned immediately as STALE; one background
          revalidation is started for the key if none is running
        - miss: fetched once (concurrent callers share the fetch) and
          returned as FRESH; on failure the fallback_key entry is returned
          as FALLBACK, otherwise ERROR with no data

        Args:
            key: Cache key
            fetch_fn: Async callable producing the result, or None on failure
            metadata_tag: Tag stored with a newly fetched entry
            fallback_key: Key to serve when a cold fetch fails
        """
        entry = self.get_entry(key)
        if entry is not None:
            now = self._clock()
            age = entry.age(now)
            if entry.is_expired(self.ttl_seconds, now):
                self.revalidate_in_background(key, fetch_fn, metadata_tag)
                return CacheLookup(
                    CacheSource.STALE, key, entry.data, age_seconds=age,
                    metadata_tag=entry.metadata_tag, served_key=key,
                )
            return CacheLookup(
                CacheSource.CACHE, key, entry.data, age_seconds=age,
                metadata_tag=entry.metadata_tag, served_key=key,
            )

        started = time.monotonic()
        data = await self.fetch_once(key, fetch_fn, metadata_tag)
        fetch_seconds = time.monotonic() - started
        if data is not None:
            return CacheLookup(
                CacheSource.FRESH, key, data, fetch_seconds=fetch_seconds,
                metadata_tag=metadata_tag, served_key=key,
            )

        if fallback_key and fallback_key != key:
            fallback = self.get_entry(fallback_key)
            if fallback is not None:
                return CacheLookup(
                    CacheSource.FALLBACK, key, fallback.data,
                    age_seconds=fallback.age(self._clock()),
                    fetch_seconds=fetch_seconds,
                    metadata_tag=fallback.metadata_tag,
                    served_key=fallback_key,
                )

        return CacheLookup(CacheSource.ERROR, key, None, fetch_seconds=fetch_seconds)

    async def fetch_once(
        self, key: str, fetch_fn: FetchFn, metadata_tag: str = ""
    ) -> Optional[AggregationResult]:
        """
        Fetch with single-flight protection and store a successful result.

        The first caller starts the fetch task; concurrent callers for the
        same key await that same task. Callers are shielded from each
        other: a caller that goes away does not cancel the shared fetch.
        """
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._fetch_and_store(key, fetch_fn, metadata_tag, self._generation)
            )
            self._in_flight[key] = task
        return await asyncio.shield(task)

    def revalidate_in_background(
        self, key: str, fetch_fn: FetchFn, metadata_tag: str = ""
    ) -> bool:
        """
        Start a background refresh of key unless one is already running.

        Returns:
            True if a refresh was started
        """
        if key in self._revalidating:
            return False
        self._revalidating.add(key)

        task = asyncio.create_task(
            self._revalidate(key, fetch_fn, metadata_tag, self._generation)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    async def _fetch_and_store(
        self, key: str, fetch_fn: FetchFn, metadata_tag: str, generation: int
    ) -> Optional[AggregationResult]:
        try:
            data = await fetch_fn()
            if data is not None and generation == self._generation:
                self.put(key, data, metadata_tag)
            return data
        except Exception as e:
            logger.error(f"Fetch failed for {self.name} cache key {key}: {e}")
            return None
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    async def _revalidate(
        self, key: str, fetch_fn: FetchFn, metadata_tag: str, generation: int
    ):
        try:
            data = await fetch_fn()
            if data is None:
                logger.warning(f"Revalidation of {key} returned no data, keeping stale entry")
            elif generation == self._generation:
                self.put(key, data, metadata_tag)
                logger.info(f"Revalidated {self.name} cache key {key}")
        except Exception as e:
            logger.warning(f"Revalidation of {key} failed, keeping stale entry: {e}")
        finally:
            if generation == self._generation:
                self._revalidating.discard(key)

    # -------------------------------------------------------------------------
    # Lifecycle / introspection
    # -------------------------------------------------------------------------

    async def shutdown(self):
        """Cancel outstanding background and in-flight tasks"""
        tasks = list(self._background) + list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
        self._revalidating.clear()

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "name": self.name,
            "ttl_seconds": self.ttl_seconds,
            "entries": len(self._entries),
            "in_flight": sorted(self._in_flight),
            "revalidating": sorted(self._revalidating),
            "keys": [
                {
                    "key": key,
                    "age_seconds": round(entry.age(now), 1),
                    "expired": entry.is_expired(self.ttl_seconds, now),
                    "metadata_tag": entry.metadata_tag,
                }
                for key, entry in sorted(self._entries.items())
            ],
        }


def _is_well_formed(entry: Any) -> bool:
    return (
        isinstance(entry, CacheEntry)
        and isinstance(entry.data, AggregationResult)
        and isinstance(entry.data.metrics, dict)
        and isinstance(entry.stored_at, (int, float))
    )
