"""Tests for preferences, viewed sets and the personalized feed."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from newshub.engagement import EngagementTracker
from newshub.errors import NotFound, PreferencesRequired, ValidationError
from newshub.personalize import (
    NEEDS_PREFERENCES,
    PERSONALIZED,
    UNINITIALIZED,
    SECONDS_PER_DAY,
    PersonalizationEngine,
)
from newshub.trending import TrendingRanker


@pytest.fixture
def engagement(sample_config, store):
    return EngagementTracker(sample_config, store)


@pytest.fixture
def trending(sample_config, store, engagement, cache):
    return TrendingRanker(sample_config, store, engagement, cache)


@pytest.fixture
def engine(sample_config, store, cache, engagement, trending):
    return PersonalizationEngine(sample_config, store, cache, engagement, trending)


async def _seed(store, make_article):
    await store.put(make_article("t1", topics=["tech"], hours_old=1, sentiment="positive"))
    await store.put(make_article("t2", topics=["tech"], hours_old=2, source="Wire"))
    await store.put(make_article("t3", topics=["tech", "science"], hours_old=3))
    await store.put(make_article("s1", topics=["sports"], hours_old=1))


@pytest.mark.asyncio
async def test_state_transitions(engine):
    assert await engine.state("nobody") == UNINITIALIZED

    user_id = await engine.generate_user_id()
    assert len(user_id) == 32
    assert await engine.state(user_id) == NEEDS_PREFERENCES

    await engine.set_preferences(user_id, ["tech"])
    assert await engine.state(user_id) == PERSONALIZED

    await engine.clear_preferences(user_id)
    assert await engine.state(user_id) == NEEDS_PREFERENCES


@pytest.mark.asyncio
async def test_generated_ids_are_unique(engine):
    ids = {await engine.generate_user_id() for _ in range(20)}
    assert len(ids) == 20


@pytest.mark.asyncio
async def test_feed_requires_preferences(engine):
    user_id = await engine.generate_user_id()
    with pytest.raises(PreferencesRequired) as exc_info:
        await engine.feed(user_id)
    assert exc_info.value.state == NEEDS_PREFERENCES

    with pytest.raises(PreferencesRequired) as exc_info:
        await engine.feed("stranger")
    assert exc_info.value.state == UNINITIALIZED


@pytest.mark.asyncio
async def test_topic_limit(engine):
    user_id = await engine.generate_user_id()
    with pytest.raises(ValidationError, match="At most 10 topics"):
        await engine.set_preferences(user_id, [f"topic{i}" for i in range(11)])
    assert await engine.state(user_id) == NEEDS_PREFERENCES

    prefs = await engine.set_preferences(user_id, [f"topic{i}" for i in range(10)])
    assert len(prefs.topics) == 10


@pytest.mark.asyncio
async def test_invalid_sentiment_rejected(engine):
    user_id = await engine.generate_user_id()
    with pytest.raises(ValidationError, match="Invalid sentiment"):
        await engine.set_preferences(user_id, ["tech"], sentiments=["angry"])


@pytest.mark.asyncio
async def test_preferences_are_cleaned_and_merged(engine):
    user_id = await engine.generate_user_id()
    prefs = await engine.set_preferences(user_id, [" tech ", "tech", "", "science"])
    assert prefs.topics == ["tech", "science"]

    merged = await engine.update_preferences(user_id, topics=["sports", "tech"], sources=["Wire"])
    assert merged.topics == ["tech", "science", "sports"]
    assert merged.sources == ["Wire"]


@pytest.mark.asyncio
async def test_preferences_expire(engine, clock):
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, ["tech"])
    clock.advance(31 * SECONDS_PER_DAY)
    assert await engine.preferences(user_id) is None
    assert await engine.state(user_id) == NEEDS_PREFERENCES


@pytest.mark.asyncio
async def test_feed_filters_by_topic_newest_first(engine, store, make_article):
    await _seed(store, make_article)
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, ["tech"])

    page = await engine.feed(user_id)
    assert [a.id for a in page.items] == ["t1", "t2", "t3"]
    assert page.pagination.total_count == 3


@pytest.mark.asyncio
async def test_feed_respects_source_and_sentiment_facets(engine, store, make_article):
    await _seed(store, make_article)
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, ["tech"], sentiments=["positive"])
    assert [a.id for a in (await engine.feed(user_id)).items] == ["t1"]

    await engine.set_preferences(user_id, ["tech"], sources=["Wire"])
    assert [a.id for a in (await engine.feed(user_id)).items] == ["t2"]


@pytest.mark.asyncio
async def test_viewed_articles_excluded_from_feed(engine, store, make_article):
    await _seed(store, make_article)
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, ["tech"])
    await engine.feed(user_id)

    assert await engine.record_view(user_id, "t1") is True
    page = await engine.feed(user_id)
    assert "t1" not in [a.id for a in page.items]
    assert page.pagination.total_count == 2


@pytest.mark.asyncio
async def test_view_is_idempotent(engine, engagement, store, make_article):
    await _seed(store, make_article)
    user_id = await engine.generate_user_id()

    assert await engine.record_view(user_id, "t1") is True
    assert await engine.record_view(user_id, "t1") is False
    assert await engine.viewed(user_id) == {"t1"}
    assert (await engagement.get("t1")).view_count == 1


@pytest.mark.asyncio
async def test_view_requires_known_user_and_article(engine, store, make_article):
    await _seed(store, make_article)
    with pytest.raises(NotFound):
        await engine.record_view("ghost", "t1")
    user_id = await engine.generate_user_id()
    with pytest.raises(NotFound):
        await engine.record_view(user_id, "missing")


@pytest.mark.asyncio
async def test_viewed_set_expires(engine, store, make_article, clock):
    await _seed(store, make_article)
    user_id = await engine.generate_user_id()
    await engine.record_view(user_id, "t1")
    clock.advance(31 * SECONDS_PER_DAY)
    assert await engine.viewed(user_id) == set()


@pytest.mark.asyncio
async def test_clear_viewed_restores_feed(engine, store, make_article):
    await _seed(store, make_article)
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, ["tech"])
    await engine.record_view(user_id, "t1")
    assert await engine.clear_viewed(user_id) == 1
    assert [a.id for a in (await engine.feed(user_id)).items] == ["t1", "t2", "t3"]


@pytest.mark.asyncio
async def test_empty_preferences_fall_back_to_trending(engine, trending, store, make_article):
    await _seed(store, make_article)
    await trending.refresh()
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, [])
    await engine.record_view(user_id, "s1")

    page = await engine.feed(user_id)
    ids = [a.id for a in page.items]
    assert "s1" not in ids
    assert ids == ["t1", "t2", "t3"]


@pytest.mark.asyncio
async def test_feed_pagination_and_validation(engine, store, make_article):
    await _seed(store, make_article)
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, ["tech"])

    page = await engine.feed(user_id, page=2, page_size=2)
    assert [a.id for a in page.items] == ["t3"]
    assert page.pagination.has_prev is True
    assert page.pagination.has_next is False

    with pytest.raises(ValidationError):
        await engine.feed(user_id, page=0)
    with pytest.raises(ValidationError):
        await engine.feed(user_id, page_size=51)


@pytest.mark.asyncio
async def test_feed_is_cached_until_preferences_change(engine, store, make_article):
    await _seed(store, make_article)
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, ["tech"])
    await engine.feed(user_id)

    with patch.object(store, "query") as query:
        await engine.feed(user_id)
    query.assert_not_called()

    await engine.set_preferences(user_id, ["sports"])
    assert [a.id for a in (await engine.feed(user_id)).items] == ["s1"]


@pytest.mark.asyncio
async def test_search_within_preferences(engine, store, make_article):
    await store.put(make_article("m1", title="Mars Rover Update", topics=["science"]))
    await store.put(make_article("m2", title="Mars Bar Prices", topics=["business"]))
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, ["science"])

    page = await engine.search(user_id, "mars")
    assert [a.id for a in page.items] == ["m1"]


@pytest.mark.asyncio
async def test_search_explicit_source_overrides_preference(engine, store, make_article):
    await _seed(store, make_article)
    user_id = await engine.generate_user_id()
    await engine.set_preferences(user_id, ["tech"], sources=["Tech News"])

    page = await engine.search(user_id, None, source="Wire")
    assert [a.id for a in page.items] == ["t2"]

    with pytest.raises(ValidationError):
        await engine.search(user_id, "x", sentiment="furious")
