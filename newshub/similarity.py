"""Nearest-neighbour lookup of related articles."""

from __future__ import annotations

import logging

from newshub.errors import MissingEmbedding, ValidationError
from newshub.models import Article

logger = logging.getLogger(__name__)


def similarity_key(article_id: str, k: int) -> str:
    return f"{article_id}:{k}"


class SimilarityEngine:
    """Wraps the store's KNN query behind a read-through similarity cache."""

    def __init__(self, store, cache=None, max_k: int = 50):
        self.store = store
        self.cache = cache
        self.max_k = max_k

    async def similar_to(self, article_id: str, k: int = 5) -> list[tuple[Article, float]]:
        """Up to k articles nearest to ``article_id``, most similar first, never itself."""
        if not 1 <= k <= self.max_k:
            raise ValidationError(f"k must be between 1 and {self.max_k}")

        async def compute():
            article = await self.store.get(article_id)
            if not article.embedding:
                raise MissingEmbedding(f"Article {article_id} has no embedding")
            return await self.store.knn(article.embedding, k, exclude_id=article_id)

        if self.cache is None:
            return await compute()
        return await self.cache.get_or_compute("similarity", similarity_key(article_id, k), compute)
