"""Tests for trending ranking rebuilds."""

from __future__ import annotations

import asyncio
import math
import time
from unittest.mock import patch

import pytest

from newshub.engagement import EngagementTracker
from newshub.trending import TrendingRanker


@pytest.fixture
def engagement(sample_config, store):
    return EngagementTracker(sample_config, store)


@pytest.fixture
def ranker(sample_config, store, engagement, cache):
    return TrendingRanker(sample_config, store, engagement, cache)


def test_time_decay(ranker, clock):
    now = clock()
    assert ranker.time_decay(now, now) == 1.0
    assert ranker.time_decay(now - 24 * 3600, now) == pytest.approx(math.exp(-1))
    # Future publish times are clamped to age zero
    assert ranker.time_decay(now + 3600, now) == 1.0


@pytest.mark.asyncio
async def test_fresh_article_without_engagement_scores_one(store, ranker, make_article):
    await store.put(make_article("a1", hours_old=0))
    await ranker.refresh()

    top = await ranker.top(1)
    assert top[0].article_id == "a1"
    assert top[0].score == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_engagement_outranks_recency(store, ranker, engagement, make_article):
    await store.put(make_article("fresh", hours_old=0))
    await store.put(make_article("popular", hours_old=12))
    for _ in range(5):
        await engagement.record_event("popular", "share")

    await ranker.refresh()
    assert await ranker.top_ids(2) == ["popular", "fresh"]


@pytest.mark.asyncio
async def test_equal_scores_broken_by_recency(store, ranker, make_article):
    await store.put(make_article("a-older", hours_old=6))
    await store.put(make_article("b-newer", hours_old=5))
    # Equal scores via a decay that ignores age
    with patch.object(ranker, "time_decay", return_value=1.0):
        await ranker.refresh()
    assert await ranker.top_ids(2) == ["b-newer", "a-older"]


@pytest.mark.asyncio
async def test_refresh_replaces_ranking_with_new_cycle(store, ranker, make_article):
    await store.put(make_article("a1"))
    first = await ranker.refresh()
    await store.put(make_article("a2", hours_old=0))
    second = await ranker.refresh()

    assert second > first
    entries = await ranker.top(10)
    assert {e.cycle_id for e in entries} == {second}
    assert {e.article_id for e in entries} == {"a1", "a2"}
    assert (await ranker.last_cycle())["article_count"] == 2


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_ranking(store, ranker, make_article):
    await store.put(make_article("a1"))
    cycle = await ranker.refresh()
    await store.put(make_article("a2"))

    with patch.object(ranker, "trending_score", side_effect=RuntimeError("boom")):
        assert await ranker.refresh() is None

    entries = await ranker.top(10)
    assert [e.article_id for e in entries] == ["a1"]
    assert entries[0].cycle_id == cycle
    assert ranker.in_flight is False


@pytest.mark.asyncio
async def test_refresh_skipped_while_in_flight(ranker):
    ranker._in_flight = True
    assert await ranker.refresh() is None


@pytest.mark.asyncio
async def test_concurrent_refreshes_run_once(store, ranker, make_article):
    await store.put(make_article("a1"))
    results = await asyncio.gather(ranker.refresh(), ranker.refresh())
    assert sum(r is not None for r in results) == 1


@pytest.mark.asyncio
async def test_refresh_invalidates_cached_trending(store, ranker, cache, make_article):
    await cache.set("request", "trending:10", ["stale"])
    await cache.set("request", "article:a1", "kept")
    await store.put(make_article("a1"))
    await ranker.refresh()

    assert await cache.get("request", "trending:10") is None
    assert await cache.get("request", "article:a1") == "kept"


@pytest.mark.asyncio
async def test_top_non_positive(ranker):
    assert await ranker.top(0) == []


def _slow_scores(ranker, delay):
    score = ranker.trending_score

    def slow(published_ts, record, now):
        time.sleep(delay)
        return score(published_ts, record, now)

    return slow


@pytest.mark.asyncio
async def test_rebuild_not_bound_by_store_timeout(store, ranker, cache, make_article):
    for i in range(3):
        await store.put(make_article(f"a{i}"))
    await cache.set("request", "trending:10", ["stale"])
    store.timeout = 0.05

    with patch.object(ranker, "trending_score", new=_slow_scores(ranker, 0.05)):
        cycle = await ranker.refresh()

    assert cycle is not None
    assert ranker.last_cycle_id == cycle
    assert await cache.get("request", "trending:10") is None


@pytest.mark.asyncio
async def test_overrunning_rebuild_publishes_when_it_commits(store, ranker, cache, make_article):
    await store.put(make_article("a1"))
    await store.put(make_article("a2"))
    first = await ranker.refresh()
    await cache.set("request", "trending:10", ["stale"])
    ranker.rebuild_timeout = 0.01

    with patch.object(ranker, "trending_score", new=_slow_scores(ranker, 0.1)):
        assert await ranker.refresh() is None
        assert ranker.in_flight is True
        assert await ranker.refresh() is None
        await ranker.wait_idle()

    assert ranker.in_flight is False
    assert ranker.last_cycle_id > first
    assert await cache.get("request", "trending:10") is None
    assert {e.cycle_id for e in await ranker.top(10)} == {ranker.last_cycle_id}


@pytest.mark.asyncio
async def test_readers_never_see_mixed_cycles(store, ranker, make_article):
    for i in range(4):
        await store.put(make_article(f"a{i}", hours_old=i))
    first = await ranker.refresh()

    observed = []
    with patch.object(ranker, "trending_score", new=_slow_scores(ranker, 0.02)):
        rebuild = asyncio.ensure_future(ranker.refresh())
        while True:
            observed.append({e.cycle_id for e in await ranker.top(10)})
            if rebuild.done():
                break
            await asyncio.sleep(0)
        second = await rebuild

    assert second is not None
    assert all(len(cycles) == 1 for cycles in observed)
    assert set().union(*observed) <= {first, second}
    assert {e.cycle_id for e in await ranker.top(10)} == {second}
