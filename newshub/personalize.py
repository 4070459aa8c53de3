"""Per-user preferences, viewed-article state, and personalized feed/search."""

from __future__ import annotations

import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone

from newshub import db
from newshub.config import get_personalization_config, get_trending_config
from newshub.engagement import EngagementTracker
from newshub.errors import NotFound, PreferencesRequired, ValidationError
from newshub.models import SENTIMENTS, Page, Pagination, QueryFilters, UserPreferences
from newshub.trending import TrendingRanker

logger = logging.getLogger(__name__)

UNINITIALIZED = "uninitialized"
NEEDS_PREFERENCES = "needs_preferences"
PERSONALIZED = "personalized"

SECONDS_PER_DAY = 86400


def _clean(values: list[str] | None) -> list[str]:
    """Strip, drop blanks, and de-duplicate while keeping order."""
    seen: dict[str, None] = {}
    for value in values or []:
        value = str(value).strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)


class PersonalizationEngine:
    """Filters and ranks the shared corpus per user.

    Users move Uninitialized -> NeedsPreferences (ID issued) -> Personalized
    (preferences stored), and back to NeedsPreferences when their preferences
    expire or are cleared. Feed and search require Personalized.
    """

    def __init__(
        self,
        config: dict,
        store,
        cache,
        engagement: EngagementTracker,
        trending: TrendingRanker,
    ):
        cfg = get_personalization_config(config)
        self.store = store
        self.cache = cache
        self.engagement = engagement
        self.trending = trending
        self.max_topics = cfg["max_topics"]
        self.preferences_ttl = timedelta(days=cfg["preferences_ttl_days"])
        self.viewed_ttl_seconds = cfg["viewed_ttl_days"] * SECONDS_PER_DAY
        self.default_page_size = cfg["page_size"]
        self.max_page_size = cfg["max_page_size"]
        self.fallback_pool = get_trending_config(config)["fallback_pool"]
        # Bumped on every view so a feed computed across a view isn't cached
        self._view_epochs: dict[str, int] = {}

    # --- Users and state ---

    async def generate_user_id(self) -> str:
        user_id = uuid.uuid4().hex
        await self.store.run(db.insert_user, user_id, self.store.clock())
        logger.info("Issued user ID %s", user_id)
        return user_id

    async def state(self, user_id: str) -> str:
        if await self.preferences(user_id) is not None:
            return PERSONALIZED
        if await self.store.run(db.user_exists, user_id):
            return NEEDS_PREFERENCES
        return UNINITIALIZED

    async def _require_user(self, user_id: str) -> None:
        if not await self.store.run(db.user_exists, user_id):
            raise NotFound(f"User {user_id} not found")

    # --- Preferences ---

    def _prefs_key(self, user_id: str) -> str:
        return f"{user_id}:prefs"

    async def preferences(self, user_id: str) -> UserPreferences | None:
        """The user's valid (stored, unexpired) preferences, or None."""
        now = self._now()
        prefs = await self.cache.get("user", self._prefs_key(user_id))
        if prefs is None:
            prefs = await self.store.run(db.get_preferences, user_id)
            if prefs is not None and not prefs.is_expired(now):
                await self.cache.set("user", self._prefs_key(user_id), prefs)
        if prefs is None or prefs.is_expired(now):
            return None
        return prefs

    async def require_preferences(self, user_id: str) -> UserPreferences:
        prefs = await self.preferences(user_id)
        if prefs is None:
            known = await self.store.run(db.user_exists, user_id)
            raise PreferencesRequired(user_id, NEEDS_PREFERENCES if known else UNINITIALIZED)
        return prefs

    def _validate(self, topics: list[str], sources: list[str], sentiments: list[str]) -> None:
        if len(topics) > self.max_topics:
            raise ValidationError(
                f"At most {self.max_topics} topics allowed, got {len(topics)}"
            )
        bad = [s for s in sentiments if s not in SENTIMENTS]
        if bad:
            raise ValidationError(f"Invalid sentiment filter: {', '.join(bad)}")

    async def set_preferences(
        self,
        user_id: str,
        topics: list[str],
        sources: list[str] | None = None,
        sentiments: list[str] | None = None,
    ) -> UserPreferences:
        """Replace the user's preferences, moving them to Personalized."""
        topics, sources, sentiments = _clean(topics), _clean(sources), _clean(sentiments)
        self._validate(topics, sources, sentiments)
        now = self._now()
        prefs = UserPreferences(
            user_id=user_id,
            topics=topics,
            sources=sources,
            sentiments=sentiments,
            updated_at=now,
            expires_at=now + self.preferences_ttl,
        )
        await self.store.run(db.save_preferences, prefs)
        await self.cache.invalidate_prefix("user", f"{user_id}:")
        logger.info("Stored preferences for %s (%d topics)", user_id, len(topics))
        return prefs

    async def update_preferences(
        self,
        user_id: str,
        topics: list[str] | None = None,
        sources: list[str] | None = None,
        sentiments: list[str] | None = None,
    ) -> UserPreferences:
        """Merge new values into the current preferences (union per field)."""
        current = await self.preferences(user_id)
        if current is None:
            return await self.set_preferences(user_id, topics or [], sources, sentiments)
        return await self.set_preferences(
            user_id,
            current.topics + _clean(topics),
            current.sources + _clean(sources),
            current.sentiments + _clean(sentiments),
        )

    async def clear_preferences(self, user_id: str) -> bool:
        removed = await self.store.run(db.delete_preferences, user_id)
        await self.cache.invalidate_prefix("user", f"{user_id}:")
        return removed

    # --- Views ---

    async def record_view(
        self, user_id: str, article_id: str, count_engagement: bool = True
    ) -> bool:
        """Add an article to the user's ViewedSet. Returns True the first time only.

        The article is excluded from the user's feed until the set expires or is
        cleared. With ``count_engagement``, a first view is also forwarded to the
        engagement tracker; callers that count every view themselves pass False.
        """
        await self._require_user(user_id)
        await self.store.get(article_id)
        now = self.store.clock()
        self._view_epochs[user_id] = self._view_epochs.get(user_id, 0) + 1
        added = await self.store.run(
            db.add_viewed, user_id, article_id, now, now + self.viewed_ttl_seconds,
        )
        await self.cache.invalidate_prefix("user", f"{user_id}:feed:")
        if added and count_engagement:
            await self.engagement.record_event(article_id, "view")
        return added

    async def viewed(self, user_id: str) -> set[str]:
        return await self.store.run(db.get_viewed_ids, user_id, self.store.clock())

    async def clear_viewed(self, user_id: str) -> int:
        removed = await self.store.run(db.clear_viewed, user_id)
        self._view_epochs[user_id] = self._view_epochs.get(user_id, 0) + 1
        await self.cache.invalidate_prefix("user", f"{user_id}:feed:")
        return removed

    # --- Feed and search ---

    def _page_size(self, page: int, page_size: int | None) -> int:
        page_size = page_size or self.default_page_size
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= page_size <= self.max_page_size:
            raise ValidationError(f"page_size must be between 1 and {self.max_page_size}")
        return page_size

    async def feed(self, user_id: str, page: int = 1, page_size: int | None = None) -> Page:
        """Newest-first page of unseen articles matching the user's preferences."""
        page_size = self._page_size(page, page_size)
        prefs = await self.require_preferences(user_id)
        key = f"{user_id}:feed:{page}:{page_size}"

        cached = await self.cache.get("user", key)
        if cached is not None:
            return cached

        epoch = self._view_epochs.get(user_id, 0)
        if prefs.is_empty:
            result = await self._trending_feed(user_id, page, page_size)
        else:
            filters = QueryFilters(
                topics=prefs.topics,
                sources=prefs.sources,
                sentiments=prefs.sentiments,
                exclude_viewed_by=user_id,
            )
            items, total = await self.store.query(None, filters, page, page_size)
            result = Page(items, Pagination.build(page, page_size, total))

        if self._view_epochs.get(user_id, 0) == epoch:
            await self.cache.set("user", key, result)
        return result

    async def _trending_feed(self, user_id: str, page: int, page_size: int) -> Page:
        """Feed built from the trending corpus when the user set no filters."""
        ids = await self.trending.top_ids(self.fallback_pool)
        viewed = await self.viewed(user_id)
        articles = await self.store.get_many([i for i in ids if i not in viewed])
        ordered = sorted(articles.values(), key=lambda a: a.id)
        ordered.sort(key=lambda a: a.published_at, reverse=True)
        start = (page - 1) * page_size
        return Page(
            ordered[start:start + page_size],
            Pagination.build(page, page_size, len(ordered)),
        )

    async def search(
        self,
        user_id: str,
        query: str | None = None,
        sentiment: str | None = None,
        source: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> Page:
        """Free-text search within the user's preference filters.

        An explicit sentiment or source narrows the search to that value in
        place of the matching preference facet.
        """
        page_size = self._page_size(page, page_size)
        prefs = await self.require_preferences(user_id)
        if sentiment and sentiment not in SENTIMENTS:
            raise ValidationError(f"Invalid sentiment: {sentiment!r}")

        filters = QueryFilters(
            topics=prefs.topics,
            sources=[source] if source else prefs.sources,
            sentiments=[sentiment] if sentiment else prefs.sentiments,
        )
        digest = hashlib.sha256(
            f"{query or ''}|{filters.cache_key()}".encode()
        ).hexdigest()[:16]
        key = f"{user_id}:search:{digest}:{page}:{page_size}"

        async def compute():
            items, total = await self.store.query(query, filters, page, page_size)
            return Page(items, Pagination.build(page, page_size, total))

        return await self.cache.get_or_compute("user", key, compute)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.store.clock(), tz=timezone.utc)
