"""Core data models for the news platform."""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

SENTIMENTS = ("positive", "negative", "neutral")
ACTIONS = ("view", "like", "share")
WORDS_PER_MINUTE = 200


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def content_hash(title: str, body: str) -> str:
    return hashlib.sha256(f"{title}\n{body}".encode()).hexdigest()[:16]


@dataclass
class RawArticle:
    """An un-enriched record as produced by a news source fetcher."""

    title: str
    body: str
    source: str
    published_at: datetime | None = None
    url: str | None = None
    author: str | None = None
    topic_hint: str | None = None  # topic the feed was configured under

    def article_id(self) -> str:
        """Stable ID: from the URL when present, else source + title + time."""
        if self.url:
            basis = self.url
        else:
            ts = self.published_at.isoformat() if self.published_at else ""
            basis = f"{self.source}|{self.title}|{ts}"
        return hashlib.sha256(basis.encode()).hexdigest()[:16]


@dataclass
class Enrichment:
    """What the AI provider returns for a piece of text."""

    summary: str
    sentiment: str  # positive, negative, neutral
    keywords: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)


@dataclass
class Article:
    """An enriched, stored article."""

    id: str
    title: str
    content: str
    summary: str
    sentiment: str
    topics: list[str]
    source: str
    published_at: datetime
    embedding: list[float] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    url: str | None = None
    author: str | None = None
    word_count: int = 0
    reading_time: int = 0  # minutes
    content_hash: str = ""
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.published_at = as_utc(self.published_at)
        self.created_at = as_utc(self.created_at)
        if not self.content_hash:
            self.content_hash = content_hash(self.title, self.content)
        if not self.word_count and self.content:
            self.word_count = len(self.content.split())
        if not self.reading_time and self.word_count:
            self.reading_time = max(1, math.ceil(self.word_count / WORDS_PER_MINUTE))

    def to_dict(self, include_embedding: bool = False) -> dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "content": self.content,
            "sentiment": self.sentiment,
            "topics": list(self.topics),
            "source": self.source,
            "published_at": self.published_at.isoformat(),
            "url": self.url,
            "author": self.author,
            "keywords": list(self.keywords),
            "word_count": self.word_count,
            "reading_time": self.reading_time,
        }
        if include_embedding:
            data["embedding"] = list(self.embedding)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Article:
        """Inverse of ``to_dict(include_embedding=True)``."""
        return cls(
            id=data["id"],
            title=data["title"],
            content=data["content"],
            summary=data["summary"],
            sentiment=data["sentiment"],
            topics=list(data["topics"]),
            source=data["source"],
            published_at=datetime.fromisoformat(data["published_at"]),
            embedding=list(data.get("embedding", [])),
            keywords=list(data.get("keywords", [])),
            url=data.get("url"),
            author=data.get("author"),
            word_count=data.get("word_count", 0),
            reading_time=data.get("reading_time", 0),
            created_at=(
                datetime.fromisoformat(data["created_at"]) if data.get("created_at") else utcnow()
            ),
        )


@dataclass
class UserPreferences:
    """Per-user personalization filters."""

    user_id: str
    topics: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    sentiments: list[str] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    @property
    def is_empty(self) -> bool:
        return not (self.topics or self.sources or self.sentiments)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "topics": list(self.topics),
            "sources": list(self.sources),
            "sentiments": list(self.sentiments),
            "updated_at": self.updated_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserPreferences:
        return cls(
            user_id=data["user_id"],
            topics=list(data.get("topics", [])),
            sources=list(data.get("sources", [])),
            sentiments=list(data.get("sentiments", [])),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]) if data.get("expires_at") else None,
        )


@dataclass
class EngagementRecord:
    """Per-article interaction counters."""

    article_id: str
    view_count: int = 0
    like_count: int = 0
    share_count: int = 0
    updated_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None


@dataclass
class TrendingEntry:
    """One row of the global trending ranking."""

    article_id: str
    score: float
    published_at: datetime
    cycle_id: int


@dataclass
class CacheEntry:
    """A namespaced, TTL-bound cache payload."""

    namespace: str
    key: str
    payload: Any
    created_at: float
    ttl: float  # seconds

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


@dataclass
class QueryFilters:
    """Exact-match facet filters; each facet is AND-ed, values within one are OR-ed."""

    sentiments: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    published_after: datetime | None = None
    published_before: datetime | None = None
    exclude_ids: set[str] = field(default_factory=set)
    exclude_viewed_by: str | None = None  # user ID whose ViewedSet is excluded

    def admits(self, article: Article) -> bool:
        """True if the article passes the facet filters (ignores exclusions)."""
        if self.sentiments and article.sentiment not in self.sentiments:
            return False
        if self.topics and not set(self.topics) & set(article.topics):
            return False
        if self.sources and article.source not in self.sources:
            return False
        if self.published_after and article.published_at < as_utc(self.published_after):
            return False
        if self.published_before and article.published_at > as_utc(self.published_before):
            return False
        return True

    def cache_key(self) -> str:
        parts = [
            "s=" + ",".join(sorted(self.sentiments)),
            "t=" + ",".join(sorted(self.topics)),
            "src=" + ",".join(sorted(self.sources)),
            "from=" + (self.published_after.isoformat() if self.published_after else ""),
            "to=" + (self.published_before.isoformat() if self.published_before else ""),
        ]
        return "|".join(parts)


@dataclass
class Pagination:
    """Pagination metadata returned alongside list results."""

    current_page: int
    total_pages: int
    has_next: bool
    has_prev: bool
    next_page: int | None
    prev_page: int | None
    total_count: int

    @classmethod
    def build(cls, page: int, page_size: int, total_count: int) -> Pagination:
        total_pages = math.ceil(total_count / page_size) if total_count else 0
        has_next = page < total_pages
        has_prev = page > 1
        return cls(
            current_page=page,
            total_pages=total_pages,
            has_next=has_next,
            has_prev=has_prev,
            next_page=page + 1 if has_next else None,
            prev_page=page - 1 if has_prev else None,
            total_count=total_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
            "next_page": self.next_page,
            "prev_page": self.prev_page,
            "total_count": self.total_count,
        }


@dataclass
class Page:
    """A page of articles plus its pagination metadata."""

    items: list[Article]
    pagination: Pagination

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [a.to_dict() for a in self.items],
            "pagination": self.pagination.to_dict(),
        }


@dataclass
class ArticleMetrics:
    """Engagement figures attached to an article detail view."""

    total_views: int = 0
    unique_views: int = 0
    user_views: int = 0
    engagement: float = 0.0
    last_viewed: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_views": self.total_views,
            "unique_views": self.unique_views,
            "user_views": self.user_views,
            "engagement": self.engagement,
            "last_viewed": self.last_viewed.isoformat() if self.last_viewed else None,
        }


@dataclass
class ArticleOutcome:
    """Result of ingesting a single raw article."""

    raw: RawArticle
    status: str  # stored, unchanged, failed
    article_id: str | None = None
    error: str | None = None
    attempts: int = 0


@dataclass
class BatchReport:
    """Aggregate result of one ingestion batch."""

    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    outcomes: list[ArticleOutcome] = field(default_factory=list)
    trending_refreshed: bool = False

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status != "failed")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def failed_items(self) -> list[RawArticle]:
        return [o.raw for o in self.outcomes if o.status == "failed"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "trending_refreshed": self.trending_refreshed,
            "failures": [
                {"article_id": o.article_id, "url": o.raw.url, "title": o.raw.title, "error": o.error}
                for o in self.outcomes
                if o.status == "failed"
            ],
        }
