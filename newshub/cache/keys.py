"""Cache key conventions shared by the read paths and the invalidation paths."""

from __future__ import annotations

import json
from datetime import datetime

from newshub.models import Article, QueryFilters

TRENDING_PREFIX = "trending:"
META_PREFIX = "meta:"


def article_key(article_id: str) -> str:
    return f"article:{article_id}"


def trending_key(n: int) -> str:
    return f"{TRENDING_PREFIX}{n}"


def query_key(text: str | None, filters: QueryFilters, page: int, page_size: int) -> str:
    """Canonical JSON key for a query-result entry; the filters can be read back."""
    return json.dumps(
        {
            "q": (text or "").strip().lower(),
            "s": sorted(filters.sentiments),
            "t": sorted(filters.topics),
            "src": sorted(filters.sources),
            "from": filters.published_after.isoformat() if filters.published_after else None,
            "to": filters.published_before.isoformat() if filters.published_before else None,
            "page": page,
            "size": page_size,
        },
        sort_keys=True,
    )


def query_key_admits(key: str, article: Article) -> bool:
    """True if the query behind ``key`` could include ``article`` (text ignored).

    Unreadable keys count as admitting, so they get invalidated.
    """
    try:
        data = json.loads(key)
        filters = QueryFilters(
            sentiments=data.get("s") or [],
            topics=data.get("t") or [],
            sources=data.get("src") or [],
            published_after=datetime.fromisoformat(data["from"]) if data.get("from") else None,
            published_before=datetime.fromisoformat(data["to"]) if data.get("to") else None,
        )
    except (ValueError, TypeError, KeyError, AttributeError):
        return True
    return filters.admits(article)


def is_user_listing_key(key: str) -> bool:
    """User-namespace keys holding feed or search pages (not preferences)."""
    return ":feed:" in key or ":search:" in key
