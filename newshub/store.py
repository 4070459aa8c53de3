"""Async document store adapter over the SQLite helpers in ``newshub.db``.

All store access is a suspension point: each helper runs in a worker thread,
bounded by the configured timeout, with SQLite errors surfaced as
``StoreUnavailable``.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from typing import Any, Callable, TypeVar

import numpy as np

from newshub import db
from newshub.config import get_db_path, get_embedding_config, get_store_timeout
from newshub.errors import NotFound, StoreUnavailable, ValidationError
from newshub.models import SENTIMENTS, Article, QueryFilters

logger = logging.getLogger(__name__)

T = TypeVar("T")

REQUIRED_FIELDS = ("id", "title", "content", "summary", "source")


class DocumentStore:
    """Articles, preferences, engagement and ranking behind one explicit handle."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        dimension: int,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
    ):
        self.conn = conn
        self.dimension = dimension
        self.timeout = timeout
        self.clock = clock
        # sqlite3 connections are not safe for concurrent use from several threads
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(cls, config: dict, clock: Callable[[], float] = time.time) -> DocumentStore:
        """Open the configured database, creating the schema if needed."""
        db_path = get_db_path(config)
        conn = db.get_connection(db_path)
        db.init_schema(conn)
        logger.info("Opened document store at %s", db_path)
        return cls(
            conn,
            dimension=get_embedding_config(config)["dimension"],
            timeout=get_store_timeout(config),
            clock=clock,
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._lock:
            self.conn.close()
        logger.info("Closed document store")

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        with self._lock:
            return fn(self.conn, *args)

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a ``newshub.db`` helper off the event loop with the store timeout."""
        return await self.run_bounded(self.timeout, fn, *args)

    async def run_bounded(self, timeout: float | None, fn: Callable[..., T], *args: Any) -> T:
        """Run a helper with an explicit timeout. ``None`` waits for the thread to finish.

        A timed-out helper keeps running in its worker thread; callers whose
        helper commits must not treat the timeout as a rollback.
        """
        if self._closed:
            raise StoreUnavailable("Store is closed")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._call, fn, *args), timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise StoreUnavailable(
                f"{fn.__name__} timed out after {timeout:.1f}s"
            ) from exc
        except (sqlite3.OperationalError, sqlite3.ProgrammingError) as exc:
            raise StoreUnavailable(f"{fn.__name__} failed: {exc}") from exc

    # --- Articles ---

    def validate(self, article: Article) -> None:
        """Reject articles that are incomplete or carry the wrong embedding size."""
        missing = [name for name in REQUIRED_FIELDS if not getattr(article, name)]
        if missing:
            raise ValidationError(f"Article missing required fields: {', '.join(missing)}")
        if article.sentiment not in SENTIMENTS:
            raise ValidationError(f"Invalid sentiment: {article.sentiment!r}")
        if article.published_at is None:
            raise ValidationError("Article missing published_at")
        if len(article.embedding) != self.dimension:
            raise ValidationError(
                f"Embedding dimension {len(article.embedding)} != {self.dimension}"
            )
        if not np.all(np.isfinite(article.embedding)):
            raise ValidationError("Embedding contains non-finite values")

    async def put(self, article: Article) -> None:
        """Validate and upsert by ID. Re-putting the same article is a no-op overwrite."""
        self.validate(article)
        await self.run(db.upsert_article, article)

    async def get(self, article_id: str) -> Article:
        article = await self.run(db.get_article, article_id)
        if article is None:
            raise NotFound(f"Article {article_id} not found")
        return article

    async def get_many(self, article_ids: list[str]) -> dict[str, Article]:
        return await self.run(db.get_articles_by_ids, article_ids)

    async def delete(self, article_id: str) -> bool:
        return await self.run(db.delete_article, article_id)

    async def query(
        self,
        text: str | None = None,
        filters: QueryFilters | None = None,
        page: int = 1,
        page_size: int = 12,
    ) -> tuple[list[Article], int]:
        """Text + facet query, newest first. Returns (articles on page, total matches)."""
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")
        terms = text.split() if text else []
        return await self.run(
            db.query_articles,
            terms,
            filters or QueryFilters(),
            page_size,
            (page - 1) * page_size,
            self.clock(),
        )

    async def knn(
        self, embedding: list[float], k: int, exclude_id: str | None = None
    ) -> list[tuple[Article, float]]:
        """Up to k nearest articles by cosine similarity, nearest first.

        Ties are broken by publish time, newest first.
        """
        if len(embedding) != self.dimension:
            raise ValidationError(
                f"Query embedding dimension {len(embedding)} != {self.dimension}"
            )
        if k < 1:
            return []
        ids, published, matrix = await self.run(db.load_embeddings, self.dimension)
        if not ids:
            return []

        query = np.asarray(embedding, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            sims = np.where(norms > 0, matrix @ query / norms, 0.0)

        # lexsort sorts by the last key first
        order = np.lexsort((-published, -sims))
        picked = []
        for idx in order:
            if ids[idx] == exclude_id:
                continue
            picked.append((ids[idx], float(sims[idx])))
            if len(picked) == k:
                break

        articles = await self.get_many([article_id for article_id, _ in picked])
        return [
            (articles[article_id], sim)
            for article_id, sim in picked
            if article_id in articles
        ]

    async def topics(self) -> list[str]:
        return await self.run(db.distinct_topics)

    async def sources(self) -> list[str]:
        return await self.run(db.distinct_sources)

    async def count(self) -> int:
        return await self.run(db.count_articles)

    async def ping(self) -> bool:
        return await self.run(db.ping)

    async def purge_expired(self) -> dict[str, int]:
        counts = await self.run(db.purge_expired, self.clock())
        logger.info("Purged expired rows: %s", counts)
        return counts
