"""
Tests for backend/chainstats/cache.py

Covers:
- CacheEntry (age and expiry)
- CacheService entry access (get_entry, put, patch_metric, clear)
- get_or_fetch state machine (miss, fresh, stale, fallback, error)
- Single-flight fetches and background revalidation
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from chainstats.cache import CacheEntry, CacheService, CacheSource
from chainstats.metric_registry import MetricKey
from chainstats.stats_types import AggregationResult


async def _drain_background(cache: CacheService):
    """Let background revalidation tasks run to completion."""
    if cache._background:
        await asyncio.gather(*list(cache._background))


# ---------------------------------------------------------------------------
# CacheEntry
# ---------------------------------------------------------------------------


class TestCacheEntry:
    """Tests for CacheEntry."""

    def test_age_is_elapsed_time(self, make_result):
        """Happy path: age is the time since stored_at."""
        entry = CacheEntry("k", make_result(), stored_at=100.0)
        assert entry.age(160.0) == 60.0

    def test_age_never_negative(self, make_result):
        """Edge case: a clock behind stored_at gives age 0."""
        entry = CacheEntry("k", make_result(), stored_at=100.0)
        assert entry.age(90.0) == 0.0

    def test_expired_at_exactly_ttl(self, make_result):
        """Edge case: age equal to TTL counts as stale."""
        entry = CacheEntry("k", make_result(), stored_at=100.0)
        assert entry.is_expired(60, 159.0) is False
        assert entry.is_expired(60, 160.0) is True


# ---------------------------------------------------------------------------
# Entry access
# ---------------------------------------------------------------------------


class TestEntryAccess:
    """Tests for get_entry, put, patch_metric and clear."""

    def test_put_and_get(self, fake_clock, make_result):
        """Happy path: stored entries come back with the clock's time."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        data = make_result(MetricKey.TX_COUNT)
        cache.put("k", data, metadata_tag="30d")

        entry = cache.get_entry("k")
        assert entry.data is data
        assert entry.stored_at == fake_clock.now
        assert entry.metadata_tag == "30d"

    def test_get_missing_returns_none(self):
        """Edge case: unknown key is a miss."""
        cache = CacheService(ttl_seconds=60)
        assert cache.get_entry("missing") is None

    def test_malformed_entry_dropped(self, fake_clock):
        """Failure: an entry without an AggregationResult is treated as a miss and removed."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        cache._entries["k"] = CacheEntry("k", {"not": "a result"}, fake_clock.now)

        assert cache.get_entry("k") is None
        assert len(cache) == 0

    def test_patch_metric_keeps_stored_at(self, fake_clock, make_result):
        """Happy path: patching replaces one metric and keeps the entry's age."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        cache.put("k", make_result(MetricKey.TX_COUNT, MetricKey.ICM_MESSAGES), metadata_tag="30d")
        stored_at = cache.get_entry("k").stored_at
        fake_clock.advance(10)

        patched = cache.patch_metric("k", MetricKey.ICM_MESSAGES, {"current_value": 5, "data": []}, "7d")

        entry = cache.get_entry("k")
        assert patched is True
        assert entry.stored_at == stored_at
        assert entry.metadata_tag == "7d"
        assert entry.data.get(MetricKey.ICM_MESSAGES) == {"current_value": 5, "data": []}
        assert MetricKey.TX_COUNT in entry.data

    def test_patch_missing_key(self):
        """Edge case: patching an uncached key does nothing."""
        cache = CacheService(ttl_seconds=60)
        assert cache.patch_metric("k", MetricKey.ICM_MESSAGES, {}, "7d") is False
        assert len(cache) == 0

    def test_clear_drops_entries_and_markers(self, make_result):
        """Happy path: clear empties entries and revalidating markers."""
        cache = CacheService(ttl_seconds=60)
        cache.put("a", make_result())
        cache._revalidating.add("a")

        cache.clear()

        assert len(cache) == 0
        assert cache.is_revalidating("a") is False


# ---------------------------------------------------------------------------
# get_or_fetch
# ---------------------------------------------------------------------------


class TestGetOrFetch:
    """Tests for the read-through state machine."""

    @pytest.mark.asyncio
    async def test_miss_fetches_and_stores(self, fake_clock, make_result):
        """Happy path: a cold key is fetched, stored and reported as fresh."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        data = make_result(MetricKey.TX_COUNT)
        fetch_fn = AsyncMock(return_value=data)

        lookup = await cache.get_or_fetch("k", fetch_fn, metadata_tag="30d")

        assert lookup.source == CacheSource.FRESH
        assert lookup.data is data
        assert lookup.fetch_seconds is not None
        assert cache.get_entry("k").metadata_tag == "30d"
        fetch_fn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fresh_hit_skips_fetch(self, fake_clock, make_result):
        """Happy path: an entry younger than the TTL is served without fetching."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        cache.put("k", make_result())
        fake_clock.advance(30)
        fetch_fn = AsyncMock()

        lookup = await cache.get_or_fetch("k", fetch_fn)

        assert lookup.source == CacheSource.CACHE
        assert lookup.age_seconds == 30
        fetch_fn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_hit_served_and_revalidated(self, fake_clock, make_result):
        """Happy path: stale data is returned immediately and refreshed in the background."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        old = make_result(MetricKey.TX_COUNT, value=1.0)
        new = make_result(MetricKey.TX_COUNT, value=2.0)
        cache.put("k", old)
        fake_clock.advance(61)
        fetch_fn = AsyncMock(return_value=new)

        lookup = await cache.get_or_fetch("k", fetch_fn)

        assert lookup.source == CacheSource.STALE
        assert lookup.data is old
        assert cache.is_revalidating("k") is True

        await _drain_background(cache)

        assert cache.is_revalidating("k") is False
        assert cache.get_entry("k").data is new
        follow_up = await cache.get_or_fetch("k", fetch_fn)
        assert follow_up.source == CacheSource.CACHE
        assert follow_up.data is new

    @pytest.mark.asyncio
    async def test_stale_revalidation_started_once(self, fake_clock, make_result):
        """Edge case: many stale reads start exactly one revalidation."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        cache.put("k", make_result())
        fake_clock.advance(120)
        release = asyncio.Event()
        calls = 0

        async def slow_fetch():
            nonlocal calls
            calls += 1
            await release.wait()
            return make_result(value=9.0)

        lookups = await asyncio.gather(*[cache.get_or_fetch("k", slow_fetch) for _ in range(10)])
        assert all(lookup.source == CacheSource.STALE for lookup in lookups)

        release.set()
        await _drain_background(cache)
        assert calls == 1

    @pytest.mark.asyncio
    async def test_failed_revalidation_keeps_stale_entry(self, fake_clock, make_result):
        """Failure: a revalidation error leaves the stale entry for the next read."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        old = make_result()
        cache.put("k", old)
        fake_clock.advance(61)

        await cache.get_or_fetch("k", AsyncMock(side_effect=RuntimeError("boom")))
        await _drain_background(cache)

        assert cache.get_entry("k").data is old
        assert cache.is_revalidating("k") is False

        # Next stale read retries
        retry = AsyncMock(return_value=make_result(value=3.0))
        await cache.get_or_fetch("k", retry)
        await _drain_background(cache)
        retry.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_fetch(self, make_result):
        """Happy path: concurrent cold requests trigger a single fetch."""
        cache = CacheService(ttl_seconds=60)
        data = make_result()
        calls = 0

        async def slow_fetch():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return data

        lookups = await asyncio.gather(*[cache.get_or_fetch("k", slow_fetch) for _ in range(5)])

        assert calls == 1
        assert all(lookup.data is data for lookup in lookups)
        assert cache.is_in_flight("k") is False

    @pytest.mark.asyncio
    async def test_in_flight_cleared_after_failure(self):
        """Failure: a failed fetch clears its in-flight marker."""
        cache = CacheService(ttl_seconds=60)

        lookup = await cache.get_or_fetch("k", AsyncMock(side_effect=RuntimeError("down")))

        assert lookup.source == CacheSource.ERROR
        assert lookup.data is None
        assert cache.is_in_flight("k") is False

    @pytest.mark.asyncio
    async def test_fallback_served_on_failure(self, fake_clock, make_result):
        """Failure: a cold key that fails is served from the fallback key."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        fallback = make_result(MetricKey.TX_COUNT)
        cache.put("c:30d:txCount", fallback, metadata_tag="30d")
        fake_clock.advance(5)

        lookup = await cache.get_or_fetch(
            "c:7d:txCount", AsyncMock(return_value=None), fallback_key="c:30d:txCount"
        )

        assert lookup.source == CacheSource.FALLBACK
        assert lookup.data is fallback
        assert lookup.served_key == "c:30d:txCount"
        assert lookup.age_seconds == 5
        assert cache.get_entry("c:7d:txCount") is None

    @pytest.mark.asyncio
    async def test_no_fallback_gives_error(self):
        """Failure: no cached fallback means an ERROR lookup."""
        cache = CacheService(ttl_seconds=60)

        lookup = await cache.get_or_fetch("k", AsyncMock(return_value=None), fallback_key="other")

        assert lookup.source == CacheSource.ERROR
        assert lookup.data is None

    @pytest.mark.asyncio
    async def test_clear_during_fetch_does_not_repopulate(self, make_result):
        """Edge case: a fetch started before clear() is not stored."""
        cache = CacheService(ttl_seconds=60)
        release = asyncio.Event()

        async def slow_fetch():
            await release.wait()
            return make_result()

        pending = asyncio.create_task(cache.get_or_fetch("k", slow_fetch))
        await asyncio.sleep(0)
        cache.clear()
        release.set()
        lookup = await pending

        assert lookup.source == CacheSource.FRESH
        assert cache.get_entry("k") is None


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    """Tests for stats() and shutdown()."""

    def test_stats_reports_entries(self, fake_clock, make_result):
        """Happy path: stats lists keys with age and expiry."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock, name="chain_stats")
        cache.put("k", make_result(), metadata_tag="30d")
        fake_clock.advance(90)

        stats = cache.stats()

        assert stats["name"] == "chain_stats"
        assert stats["entries"] == 1
        assert stats["keys"] == [
            {"key": "k", "age_seconds": 90.0, "expired": True, "metadata_tag": "30d"}
        ]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_background(self, fake_clock, make_result):
        """Happy path: shutdown cancels a running revalidation."""
        cache = CacheService(ttl_seconds=60, clock=fake_clock)
        cache.put("k", make_result())
        fake_clock.advance(61)
        never = asyncio.Event()

        async def hanging_fetch():
            await never.wait()
            return AggregationResult()

        await cache.get_or_fetch("k", hanging_fetch)
        assert len(cache._background) == 1

        await cache.shutdown()

        assert cache.is_revalidating("k") is False
        assert all(task.done() for task in cache._background)
