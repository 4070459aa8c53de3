"""Ingestion pipeline: raw article -> enrichment -> embedding -> store -> refresh."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterable, Iterable

from newshub.cache.keys import (
    META_PREFIX,
    article_key,
    is_user_listing_key,
    query_key_admits,
)
from newshub.config import get_pipeline_config
from newshub.errors import (
    EmbeddingUnavailable,
    EnrichmentUnavailable,
    NewsHubError,
    NotFound,
    ValidationError,
)
from newshub.models import (
    Article,
    ArticleOutcome,
    BatchReport,
    RawArticle,
    content_hash,
    utcnow,
)
from newshub.retry import retry_async

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "general"
EMBED_BODY_CHARS = 1000


class IngestionPipeline:
    """Turns raw records into stored, enriched articles with per-article isolation.

    A failure on one article (enrichment, embedding, validation, storage) is
    recorded in that article's outcome and never aborts its siblings.
    """

    def __init__(self, config: dict, store, cache, trending, enricher, embedder):
        cfg = get_pipeline_config(config)
        self.store = store
        self.cache = cache
        self.trending = trending
        self.enricher = enricher
        self.embedder = embedder
        self.concurrency = cfg["concurrency"]
        self.max_retries = cfg["max_retries"]
        self.base_delay = cfg["base_delay"]

    async def run_batch(
        self,
        raws: Iterable[RawArticle] | AsyncIterable[RawArticle],
        refresh_trending: bool = True,
    ) -> BatchReport:
        """Ingest every record independently, then refresh trending once."""
        report = BatchReport()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _guarded(raw: RawArticle) -> ArticleOutcome:
            async with semaphore:
                return await self.ingest_one(raw)

        tasks = []
        if hasattr(raws, "__aiter__"):
            async for raw in raws:
                tasks.append(asyncio.create_task(_guarded(raw)))
        else:
            tasks = [asyncio.create_task(_guarded(raw)) for raw in raws]

        report.outcomes = list(await asyncio.gather(*tasks))

        if refresh_trending and any(o.status == "stored" for o in report.outcomes):
            report.trending_refreshed = await self.trending.refresh() is not None

        report.finished_at = utcnow()
        logger.info(
            "Batch finished: %d total, %d succeeded, %d failed",
            report.total, report.succeeded, report.failed,
        )
        return report

    async def retry_failed(self, report: BatchReport) -> BatchReport:
        """Run only the failed items of an earlier batch again."""
        return await self.run_batch(report.failed_items)

    async def ingest_one(self, raw: RawArticle) -> ArticleOutcome:
        """Ingest a single record, capturing any failure in the outcome."""
        article_id = raw.article_id()
        try:
            return await self._process(raw, article_id)
        except NewsHubError as exc:
            logger.warning("Ingestion failed for %s (%s): %s", article_id, raw.title, exc)
            return ArticleOutcome(
                raw=raw, status="failed", article_id=article_id,
                error=f"{type(exc).__name__}: {exc}",
            )
        except Exception as exc:
            logger.exception("Unexpected ingestion error for %s", article_id)
            return ArticleOutcome(
                raw=raw, status="failed", article_id=article_id,
                error=f"{type(exc).__name__}: {exc}",
            )

    async def _process(self, raw: RawArticle, article_id: str) -> ArticleOutcome:
        missing = [name for name in ("title", "body", "source") if not getattr(raw, name)]
        if missing:
            raise ValidationError(f"Raw article missing: {', '.join(missing)}")

        digest = content_hash(raw.title, raw.body)
        previous = await self._previous(article_id)
        if previous is not None and previous.content_hash == digest:
            logger.debug("Article %s unchanged, skipping enrichment", article_id)
            return ArticleOutcome(raw=raw, status="unchanged", article_id=article_id)

        attempts = 0

        async def _enrich():
            nonlocal attempts
            attempts += 1
            return await self.enricher.analyze(raw.body, title=raw.title, source=raw.source)

        enrichment = await retry_async(
            _enrich,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            retry_on=(EnrichmentUnavailable,),
        )
        embedding = await retry_async(
            self.embedder.embed,
            f"{raw.title}\n{enrichment.summary}\n{raw.body[:EMBED_BODY_CHARS]}",
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            retry_on=(EmbeddingUnavailable,),
        )

        topics = list(dict.fromkeys(
            [t for t in enrichment.topics if t]
            + ([raw.topic_hint] if raw.topic_hint else [])
        )) or [DEFAULT_TOPIC]

        article = Article(
            id=article_id,
            title=raw.title,
            content=raw.body,
            summary=enrichment.summary,
            sentiment=enrichment.sentiment,
            topics=topics,
            source=raw.source,
            published_at=raw.published_at or utcnow(),
            embedding=embedding,
            keywords=enrichment.keywords,
            url=raw.url,
            author=raw.author,
            content_hash=digest,
        )
        await self.store.put(article)
        await self.invalidate_for(article, previous)
        return ArticleOutcome(
            raw=raw, status="stored", article_id=article_id, attempts=attempts,
        )

    async def _previous(self, article_id: str) -> Article | None:
        try:
            return await self.store.get(article_id)
        except NotFound:
            return None

    async def invalidate_for(self, article: Article, previous: Article | None = None) -> None:
        """Drop every cache entry a stored article can make stale.

        A query entry is stale if its facets admit the new version, or the
        version it replaces, since that one may still be listed there.
        """
        await self.cache.invalidate("request", article_key(article.id))
        await self.cache.invalidate_prefix("request", META_PREFIX)
        await self.cache.invalidate_where(
            "query",
            lambda key: query_key_admits(key, article)
            or (previous is not None and query_key_admits(key, previous)),
        )
        await self.cache.clear_namespace("similarity")
        await self.cache.invalidate_where("user", is_user_listing_key)
