"""Request-facing facade over the core components.

``NewsService`` wires the store, cache, trending, similarity, personalization
and ingestion components together with explicit open/close, and exposes the
operations an HTTP layer routes to. Results are plain dicts in the response
shapes the web client consumes.
"""

from __future__ import annotations

import functools
import logging
import time
from datetime import datetime
from typing import Any, Callable

from newshub import db
from newshub.cache import CacheLayer
from newshub.cache.keys import (
    META_PREFIX,
    TRENDING_PREFIX,
    article_key,
    is_user_listing_key,
    query_key,
    trending_key,
)
from newshub.config import get_active_sources, get_personalization_config
from newshub.engagement import EngagementTracker
from newshub.errors import (
    NotFound,
    ServiceUnavailable,
    StoreUnavailable,
    ValidationError,
)
from newshub.models import (
    SENTIMENTS,
    ArticleMetrics,
    BatchReport,
    Page,
    Pagination,
    QueryFilters,
    RawArticle,
    utcnow,
)
from newshub.personalize import UNINITIALIZED, PersonalizationEngine
from newshub.pipeline import IngestionPipeline
from newshub.similarity import SimilarityEngine
from newshub.store import DocumentStore
from newshub.trending import TrendingRanker

logger = logging.getLogger(__name__)

CACHE_SCOPES = ("all", "request", "query", "similarity", "user")


def surface_store_errors(fn):
    """Turn StoreUnavailable into the retryable ServiceUnavailable at the boundary."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except StoreUnavailable as exc:
            logger.error("%s failed: store unavailable: %s", fn.__name__, exc)
            raise ServiceUnavailable(str(exc)) from exc

    return wrapper


class NewsService:
    """All core operations behind one object with an explicit lifecycle."""

    def __init__(
        self,
        config: dict,
        store: DocumentStore,
        cache: CacheLayer,
        enricher=None,
        embedder=None,
    ):
        self.config = config
        self.store = store
        self.cache = cache
        self.engagement = EngagementTracker(config, store)
        self.trending_ranker = TrendingRanker(config, store, self.engagement, cache)
        self.similarity = SimilarityEngine(store, cache)
        self.personalization = PersonalizationEngine(
            config, store, cache, self.engagement, self.trending_ranker,
        )
        self._enricher = enricher
        self._embedder = embedder
        self._pipeline: IngestionPipeline | None = None
        self.max_page_size = get_personalization_config(config)["max_page_size"]

    @classmethod
    def open(
        cls,
        config: dict,
        enricher=None,
        embedder=None,
        clock: Callable[[], float] = time.time,
    ) -> NewsService:
        store = DocumentStore.open(config, clock=clock)
        cache = CacheLayer.from_config(config, store=store, clock=clock)
        return cls(config, store, cache, enricher=enricher, embedder=embedder)

    def close(self) -> None:
        self.store.close()

    async def __aenter__(self) -> NewsService:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    @property
    def pipeline(self) -> IngestionPipeline:
        """Built on first use so read-only callers never construct AI providers."""
        if self._pipeline is None:
            if self._enricher is None:
                from newshub.enrich import build_enricher

                self._enricher = build_enricher(self.config)
            if self._embedder is None:
                from newshub.embed import build_embedder

                self._embedder = build_embedder(self.config)
            self._pipeline = IngestionPipeline(
                self.config, self.store, self.cache, self.trending_ranker,
                self._enricher, self._embedder,
            )
        return self._pipeline

    def _check_page(self, page: int, limit: int) -> None:
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= limit <= self.max_page_size:
            raise ValidationError(f"limit must be between 1 and {self.max_page_size}")

    async def _query(
        self, text: str | None, filters: QueryFilters, page: int, limit: int
    ) -> dict[str, Any]:
        self._check_page(page, limit)

        async def compute():
            items, total = await self.store.query(text, filters, page, limit)
            return Page(items, Pagination.build(page, limit, total))

        result = await self.cache.get_or_compute(
            "query", query_key(text, filters, page, limit), compute,
        )
        return result.to_dict()

    # --- Articles ---

    @surface_store_errors
    async def list_articles(self, page: int = 1, limit: int = 12) -> dict[str, Any]:
        return await self._query(None, QueryFilters(), page, limit)

    @surface_store_errors
    async def search_articles(
        self,
        q: str | None = None,
        sentiment: str | None = None,
        source: str | None = None,
        topic: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = 12,
    ) -> dict[str, Any]:
        if sentiment and sentiment not in SENTIMENTS:
            raise ValidationError(f"Invalid sentiment: {sentiment!r}")
        filters = QueryFilters(
            sentiments=[sentiment] if sentiment else [],
            sources=[source] if source else [],
            topics=[topic] if topic else [],
            published_after=date_from,
            published_before=date_to,
        )
        return await self._query(q, filters, page, limit)

    async def articles_by_topic(self, topic: str, page: int = 1, limit: int = 12) -> dict[str, Any]:
        return await self.search_articles(topic=topic, page=page, limit=limit)

    async def articles_by_sentiment(
        self, sentiment: str, page: int = 1, limit: int = 12
    ) -> dict[str, Any]:
        return await self.search_articles(sentiment=sentiment, page=page, limit=limit)

    @surface_store_errors
    async def get_article(self, article_id: str, user_id: str | None = None) -> dict[str, Any]:
        """Article detail with metrics.

        Every fetch counts as a view engagement. A known user's ViewedSet gains
        the article once, so total and unique views diverge on repeat reads.
        """
        article = await self.cache.get_or_compute(
            "request", article_key(article_id), lambda: self.store.get(article_id),
        )
        await self.engagement.record_event(article_id, "view")
        if user_id and await self.personalization.state(user_id) != UNINITIALIZED:
            await self.personalization.record_view(user_id, article_id, count_engagement=False)

        data = article.to_dict()
        data["metrics"] = (await self._metrics(article_id, user_id)).to_dict()
        return data

    async def _metrics(self, article_id: str, user_id: str | None) -> ArticleMetrics:
        record = await self.engagement.get(article_id)
        now = self.store.clock()
        unique = await self.store.run(db.count_unique_viewers, article_id, now)
        user_views = 0
        if user_id:
            user_views = int(article_id in await self.personalization.viewed(user_id))
        return ArticleMetrics(
            total_views=record.view_count if record else 0,
            unique_views=unique,
            user_views=user_views,
            engagement=self.engagement.score_record(record),
            last_viewed=record.updated_at if record and record.view_count else None,
        )

    @surface_store_errors
    async def similar_articles(self, article_id: str, k: int = 5) -> dict[str, Any]:
        pairs = await self.similarity.similar_to(article_id, k)
        return {
            "data": [
                {**article.to_dict(), "similarity": round(sim, 6)} for article, sim in pairs
            ]
        }

    @surface_store_errors
    async def trending(self, limit: int = 10) -> dict[str, Any]:
        if not 1 <= limit <= self.max_page_size:
            raise ValidationError(f"limit must be between 1 and {self.max_page_size}")

        async def compute():
            entries = await self.trending_ranker.top(limit)
            articles = await self.store.get_many([e.article_id for e in entries])
            return [
                (articles[e.article_id], e.score)
                for e in entries
                if e.article_id in articles
            ]

        pairs = await self.cache.get_or_compute("request", trending_key(limit), compute)
        return {
            "trending_articles": [
                {**article.to_dict(), "trending_score": score} for article, score in pairs
            ],
            "total_count": len(pairs),
            "timestamp": utcnow().isoformat(),
        }

    @surface_store_errors
    async def record_engagement(self, article_id: str, action: str) -> dict[str, Any]:
        """Like/share (or anonymous view) events from the client."""
        await self.store.get(article_id)
        await self.engagement.record_event(article_id, action)
        return {"success": True}

    # --- Users ---

    @surface_store_errors
    async def generate_user_id(self) -> dict[str, Any]:
        return {"user_id": await self.personalization.generate_user_id()}

    @surface_store_errors
    async def user_state(self, user_id: str) -> dict[str, Any]:
        return {"user_id": user_id, "state": await self.personalization.state(user_id)}

    @surface_store_errors
    async def get_preferences(self, user_id: str) -> dict[str, Any]:
        prefs = await self.personalization.require_preferences(user_id)
        return prefs.to_dict()

    @surface_store_errors
    async def set_preferences(
        self,
        user_id: str,
        topics: list[str],
        sources: list[str] | None = None,
        sentiments: list[str] | None = None,
    ) -> dict[str, Any]:
        prefs = await self.personalization.set_preferences(user_id, topics, sources, sentiments)
        return {"success": True, "preferences": prefs.to_dict()}

    @surface_store_errors
    async def update_preferences(
        self,
        user_id: str,
        topics: list[str] | None = None,
        sources: list[str] | None = None,
        sentiments: list[str] | None = None,
    ) -> dict[str, Any]:
        prefs = await self.personalization.update_preferences(user_id, topics, sources, sentiments)
        return {"success": True, "preferences": prefs.to_dict()}

    @surface_store_errors
    async def clear_preferences(self, user_id: str) -> dict[str, Any]:
        return {"success": await self.personalization.clear_preferences(user_id)}

    @surface_store_errors
    async def personalized_feed(self, user_id: str, page: int = 1, limit: int = 12) -> dict[str, Any]:
        return (await self.personalization.feed(user_id, page, limit)).to_dict()

    @surface_store_errors
    async def personalized_search(
        self,
        user_id: str,
        q: str | None = None,
        sentiment: str | None = None,
        source: str | None = None,
        page: int = 1,
        limit: int = 12,
    ) -> dict[str, Any]:
        result = await self.personalization.search(user_id, q, sentiment, source, page, limit)
        return result.to_dict()

    @surface_store_errors
    async def record_view(self, user_id: str, article_id: str) -> dict[str, Any]:
        return {"recorded": await self.personalization.record_view(user_id, article_id)}

    @surface_store_errors
    async def clear_viewed(self, user_id: str) -> dict[str, Any]:
        return {"cleared": await self.personalization.clear_viewed(user_id)}

    # --- Metadata and health ---

    @surface_store_errors
    async def topics(self) -> list[str]:
        return await self.cache.get_or_compute("request", f"{META_PREFIX}topics", self.store.topics)

    @surface_store_errors
    async def sources(self) -> list[str]:
        return await self.cache.get_or_compute("request", f"{META_PREFIX}sources", self.store.sources)

    async def sentiments(self) -> list[str]:
        return list(SENTIMENTS)

    async def health(self) -> dict[str, Any]:
        try:
            healthy = await self.store.ping()
        except StoreUnavailable as exc:
            logger.warning("Health check failed: %s", exc)
            healthy = False
        return {
            "status": "ok" if healthy else "unavailable",
            "timestamp": utcnow().isoformat(),
        }

    # --- Administration ---

    async def cache_stats(self) -> dict[str, Any]:
        return await self.cache.stats()

    async def clear_cache(self, scope: str = "all") -> dict[str, Any]:
        if scope not in CACHE_SCOPES:
            raise ValidationError(f"Unknown cache scope: {scope!r}")
        if scope == "all":
            cleared = await self.cache.clear_all()
        else:
            cleared = await self.cache.clear_namespace(scope)
        return {"scope": scope, "cleared": cleared}

    @surface_store_errors
    async def purge_article(self, article_id: str) -> dict[str, Any]:
        """Administrative delete of an article and everything derived from it."""
        if not await self.store.delete(article_id):
            raise NotFound(f"Article {article_id} not found")
        await self.cache.invalidate("request", article_key(article_id))
        await self.cache.invalidate_prefix("request", TRENDING_PREFIX)
        await self.cache.invalidate_prefix("request", META_PREFIX)
        await self.cache.clear_namespace("query")
        await self.cache.clear_namespace("similarity")
        await self.cache.invalidate_where("user", is_user_listing_key)
        logger.info("Purged article %s", article_id)
        return {"success": True}

    @surface_store_errors
    async def purge_expired(self) -> dict[str, int]:
        return await self.store.purge_expired()

    # --- Background entry points ---

    @surface_store_errors
    async def refresh_trending(self) -> int | None:
        return await self.trending_ranker.refresh()

    async def run_batch(self, raws: list[RawArticle]) -> BatchReport:
        return await self.pipeline.run_batch(raws)

    async def ingest_sources(self) -> BatchReport:
        """One fetch cycle over every enabled source, ingested as a single batch."""
        from newshub.ingest import SOURCES

        async def _all_sources():
            for name in get_active_sources(self.config):
                if name not in SOURCES:
                    logger.warning("Source '%s' enabled but not registered", name)
                    continue
                async for raw in SOURCES[name](self.config).fetch():
                    yield raw

        return await self.pipeline.run_batch(_all_sources())
