"""RSS feed source fetcher."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from time import mktime
from typing import AsyncIterator

import feedparser

from newshub.config import get_pipeline_config
from newshub.ingest import register_source
from newshub.ingest.base import BaseSource
from newshub.ingest.scraper import extract_content
from newshub.models import RawArticle

logger = logging.getLogger(__name__)

MIN_SUMMARY_CHARS = 200


@register_source("rss")
class RSSSource(BaseSource):
    """Fetch articles from the RSS feeds configured per topic."""

    @property
    def name(self) -> str:
        return "rss"

    async def fetch(self) -> AsyncIterator[RawArticle]:
        feeds = self.config.get("sources", {}).get("rss", {}).get("feeds", {})
        max_items = get_pipeline_config(self.config)["max_items_per_feed"]

        for topic, topic_feeds in feeds.items():
            for feed_cfg in topic_feeds:
                url = feed_cfg["url"]
                source_name = feed_cfg.get("name", url)
                try:
                    feed = await asyncio.to_thread(feedparser.parse, url)
                except Exception:
                    logger.exception("Failed to fetch RSS feed: %s", url)
                    continue

                count = 0
                for entry in feed.entries[:max_items]:
                    raw = await self._entry_to_raw(entry, source_name, topic)
                    if raw is not None:
                        count += 1
                        yield raw
                logger.info("RSS yielded %d articles from %s", count, source_name)

    async def _entry_to_raw(self, entry, source_name: str, topic: str) -> RawArticle | None:
        link = entry.get("link", "")
        title = entry.get("title", "")
        if not link or not title:
            return None

        published_at = None
        if getattr(entry, "published_parsed", None):
            published_at = datetime.fromtimestamp(
                mktime(entry.published_parsed), tz=timezone.utc,
            )

        # Feed summary as fallback, full extraction when it's too thin
        body = entry.get("summary", "")
        if len(body) < MIN_SUMMARY_CHARS:
            extracted = await extract_content(link)
            if extracted:
                body = extracted

        return RawArticle(
            title=title,
            body=body or title,
            source=source_name,
            published_at=published_at,
            url=link,
            author=entry.get("author"),
            topic_hint=topic,
        )
