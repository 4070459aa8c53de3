"""Tests for related-article lookup."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from newshub.errors import MissingEmbedding, NotFound, ValidationError
from newshub.models import Article
from newshub.similarity import SimilarityEngine, similarity_key

VECTORS = {
    "base": [1, 0, 0, 0],
    "twin": [0.95, 0.05, 0, 0],
    "cousin": [0.7, 0.3, 0, 0],
    "stranger": [0, 0, 0, 1],
    "opposite": [-1, 0, 0, 0],
}


@pytest.fixture
def engine(store, cache):
    return SimilarityEngine(store, cache)


async def _seed(store, make_article):
    for article_id, vector in VECTORS.items():
        await store.put(make_article(article_id, embedding=vector))


@pytest.mark.asyncio
async def test_similar_excludes_self_and_orders(engine, store, make_article):
    await _seed(store, make_article)
    pairs = await engine.similar_to("base", k=3)
    ids = [a.id for a, _ in pairs]
    assert "base" not in ids
    assert ids == ["twin", "cousin", "stranger"]
    sims = [s for _, s in pairs]
    assert sims == sorted(sims, reverse=True)


@pytest.mark.asyncio
async def test_similar_never_exceeds_k(engine, store, make_article):
    await _seed(store, make_article)
    for k in (1, 2, 4, 10):
        pairs = await engine.similar_to("base", k=k)
        assert len(pairs) == min(k, len(VECTORS) - 1)


@pytest.mark.asyncio
async def test_similar_rejects_bad_k(engine, store, make_article):
    await _seed(store, make_article)
    with pytest.raises(ValidationError):
        await engine.similar_to("base", k=0)
    with pytest.raises(ValidationError):
        await engine.similar_to("base", k=51)


@pytest.mark.asyncio
async def test_similar_unknown_article(engine):
    with pytest.raises(NotFound):
        await engine.similar_to("ghost")


@pytest.mark.asyncio
async def test_missing_embedding(store, clock):
    stored = Article(
        id="bare", title="No vector", content="text", summary="s",
        sentiment="neutral", topics=["tech"], source="Wire",
        published_at=clock.hours_ago(1),
    )
    engine = SimilarityEngine(store)
    with patch.object(store, "get", return_value=stored):
        with pytest.raises(MissingEmbedding):
            await engine.similar_to("bare")
    assert issubclass(MissingEmbedding, NotFound)


@pytest.mark.asyncio
async def test_results_are_cached(engine, cache, store, make_article):
    await _seed(store, make_article)
    first = await engine.similar_to("base", k=2)
    assert await cache.get("similarity", similarity_key("base", 2)) is not None

    with patch.object(store, "knn") as knn:
        second = await engine.similar_to("base", k=2)
    knn.assert_not_called()
    assert [a.id for a, _ in second] == [a.id for a, _ in first]
