"""SQLite database schema and synchronous query helpers.

Every helper takes an open connection as its first argument. Async callers go
through ``newshub.store.DocumentStore``, which runs these in a worker thread
under a timeout.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import numpy as np

from newshub.models import (
    Article,
    CacheEntry,
    EngagementRecord,
    QueryFilters,
    TrendingEntry,
    UserPreferences,
)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS articles (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    summary TEXT NOT NULL,
    sentiment TEXT NOT NULL,
    source TEXT NOT NULL,
    published_at REAL NOT NULL,
    url TEXT,
    author TEXT,
    keywords TEXT NOT NULL DEFAULT '[]',
    topics TEXT NOT NULL DEFAULT '[]',
    embedding BLOB NOT NULL,
    embedding_dim INTEGER NOT NULL,
    word_count INTEGER NOT NULL DEFAULT 0,
    reading_time INTEGER NOT NULL DEFAULT 0,
    content_hash TEXT NOT NULL,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS article_topics (
    article_id TEXT NOT NULL,
    topic TEXT NOT NULL,
    PRIMARY KEY (article_id, topic)
);

CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS user_preferences (
    user_id TEXT PRIMARY KEY,
    topics TEXT NOT NULL DEFAULT '[]',
    sources TEXT NOT NULL DEFAULT '[]',
    sentiments TEXT NOT NULL DEFAULT '[]',
    updated_at REAL NOT NULL,
    expires_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS viewed_sets (
    user_id TEXT PRIMARY KEY,
    updated_at REAL NOT NULL,
    expires_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS viewed_articles (
    user_id TEXT NOT NULL,
    article_id TEXT NOT NULL,
    viewed_at REAL NOT NULL,
    PRIMARY KEY (user_id, article_id)
);

CREATE TABLE IF NOT EXISTS engagement (
    article_id TEXT PRIMARY KEY,
    view_count INTEGER NOT NULL DEFAULT 0,
    like_count INTEGER NOT NULL DEFAULT 0,
    share_count INTEGER NOT NULL DEFAULT 0,
    updated_at REAL NOT NULL,
    expires_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS trending_cycles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    built_at REAL NOT NULL,
    article_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS trending (
    article_id TEXT PRIMARY KEY,
    score REAL NOT NULL,
    published_at REAL NOT NULL,
    cycle_id INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS cache_entries (
    namespace TEXT NOT NULL,
    key TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at REAL NOT NULL,
    ttl REAL NOT NULL,
    PRIMARY KEY (namespace, key)
);

CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at DESC, id);
CREATE INDEX IF NOT EXISTS idx_articles_sentiment ON articles(sentiment);
CREATE INDEX IF NOT EXISTS idx_articles_source ON articles(source);
CREATE INDEX IF NOT EXISTS idx_article_topics_topic ON article_topics(topic);
CREATE INDEX IF NOT EXISTS idx_viewed_articles_article ON viewed_articles(article_id);
CREATE INDEX IF NOT EXISTS idx_trending_score ON trending(score DESC, published_at DESC);
"""


def get_connection(db_path: str) -> sqlite3.Connection:
    """Get a SQLite connection with WAL mode enabled.

    The connection may be handed to worker threads; callers serialize access.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.execute(
        "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    conn.commit()


def init_db(db_path: str) -> None:
    """Create all tables and set schema version."""
    conn = get_connection(db_path)
    try:
        init_schema(conn)
    finally:
        conn.close()


def ping(conn: sqlite3.Connection) -> bool:
    return conn.execute("SELECT 1").fetchone()[0] == 1


def _ts(dt: datetime | None) -> float | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _dt(ts: float | None) -> datetime | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _encode_embedding(embedding: list[float]) -> bytes:
    return np.asarray(embedding, dtype=np.float32).tobytes()


def _decode_embedding(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


# --- Article helpers ---


def upsert_article(conn: sqlite3.Connection, article: Article) -> None:
    """Insert or overwrite an article by ID, rewriting its topic index rows."""
    with conn:
        conn.execute(
            """INSERT INTO articles
               (id, title, content, summary, sentiment, source, published_at, url,
                author, keywords, topics, embedding, embedding_dim, word_count,
                reading_time, content_hash, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                 title = excluded.title,
                 content = excluded.content,
                 summary = excluded.summary,
                 sentiment = excluded.sentiment,
                 source = excluded.source,
                 published_at = excluded.published_at,
                 url = excluded.url,
                 author = excluded.author,
                 keywords = excluded.keywords,
                 topics = excluded.topics,
                 embedding = excluded.embedding,
                 embedding_dim = excluded.embedding_dim,
                 word_count = excluded.word_count,
                 reading_time = excluded.reading_time,
                 content_hash = excluded.content_hash""",
            (
                article.id,
                article.title,
                article.content,
                article.summary,
                article.sentiment,
                article.source,
                _ts(article.published_at),
                article.url,
                article.author,
                json.dumps(article.keywords),
                json.dumps(article.topics),
                _encode_embedding(article.embedding),
                len(article.embedding),
                article.word_count,
                article.reading_time,
                article.content_hash,
                _ts(article.created_at),
            ),
        )
        conn.execute("DELETE FROM article_topics WHERE article_id = ?", (article.id,))
        conn.executemany(
            "INSERT OR IGNORE INTO article_topics (article_id, topic) VALUES (?, ?)",
            [(article.id, topic) for topic in article.topics],
        )


def get_article(conn: sqlite3.Connection, article_id: str) -> Article | None:
    row = conn.execute("SELECT * FROM articles WHERE id = ?", (article_id,)).fetchone()
    return _row_to_article(row) if row else None


def get_articles_by_ids(conn: sqlite3.Connection, article_ids: Iterable[str]) -> dict[str, Article]:
    ids = list(article_ids)
    if not ids:
        return {}
    placeholders = ",".join("?" * len(ids))
    rows = conn.execute(
        f"SELECT * FROM articles WHERE id IN ({placeholders})", ids
    ).fetchall()
    return {row["id"]: _row_to_article(row) for row in rows}


def delete_article(conn: sqlite3.Connection, article_id: str) -> bool:
    """Remove an article and every row derived from it."""
    with conn:
        cur = conn.execute("DELETE FROM articles WHERE id = ?", (article_id,))
        conn.execute("DELETE FROM article_topics WHERE article_id = ?", (article_id,))
        conn.execute("DELETE FROM engagement WHERE article_id = ?", (article_id,))
        conn.execute("DELETE FROM trending WHERE article_id = ?", (article_id,))
        conn.execute("DELETE FROM viewed_articles WHERE article_id = ?", (article_id,))
    return cur.rowcount > 0


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _build_where(
    terms: list[str], filters: QueryFilters, now: float
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []

    for term in terms:
        pattern = f"%{_escape_like(term)}%"
        clauses.append(
            "(a.title LIKE ? ESCAPE '\\' OR a.summary LIKE ? ESCAPE '\\'"
            " OR a.content LIKE ? ESCAPE '\\' OR a.keywords LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern] * 4)

    if filters.sentiments:
        clauses.append(f"a.sentiment IN ({','.join('?' * len(filters.sentiments))})")
        params.extend(filters.sentiments)
    if filters.sources:
        clauses.append(f"a.source IN ({','.join('?' * len(filters.sources))})")
        params.extend(filters.sources)
    if filters.topics:
        clauses.append(
            "EXISTS (SELECT 1 FROM article_topics t WHERE t.article_id = a.id"
            f" AND t.topic IN ({','.join('?' * len(filters.topics))}))"
        )
        params.extend(filters.topics)
    if filters.published_after:
        clauses.append("a.published_at >= ?")
        params.append(_ts(filters.published_after))
    if filters.published_before:
        clauses.append("a.published_at <= ?")
        params.append(_ts(filters.published_before))
    if filters.exclude_ids:
        ids = sorted(filters.exclude_ids)
        clauses.append(f"a.id NOT IN ({','.join('?' * len(ids))})")
        params.extend(ids)
    if filters.exclude_viewed_by:
        clauses.append(
            """a.id NOT IN (
                 SELECT va.article_id FROM viewed_articles va
                 JOIN viewed_sets vs ON vs.user_id = va.user_id
                 WHERE va.user_id = ? AND vs.expires_at > ?)"""
        )
        params.extend([filters.exclude_viewed_by, now])

    where = " AND ".join(clauses) if clauses else "1 = 1"
    return where, params


def query_articles(
    conn: sqlite3.Connection,
    terms: list[str],
    filters: QueryFilters,
    limit: int,
    offset: int,
    now: float,
) -> tuple[list[Article], int]:
    """Filtered text query ordered by publish time desc, ID asc. Returns (page, total)."""
    where, params = _build_where(terms, filters, now)
    total = conn.execute(
        f"SELECT COUNT(*) FROM articles a WHERE {where}", params
    ).fetchone()[0]
    rows = conn.execute(
        f"""SELECT a.* FROM articles a WHERE {where}
            ORDER BY a.published_at DESC, a.id ASC
            LIMIT ? OFFSET ?""",
        [*params, limit, offset],
    ).fetchall()
    return [_row_to_article(row) for row in rows], total


def load_embeddings(
    conn: sqlite3.Connection, dimension: int
) -> tuple[list[str], np.ndarray, np.ndarray]:
    """Return (ids, published_at timestamps, embedding matrix) for KNN scans."""
    rows = conn.execute(
        "SELECT id, published_at, embedding FROM articles WHERE embedding_dim = ?",
        (dimension,),
    ).fetchall()
    ids = [row["id"] for row in rows]
    published = np.array([row["published_at"] for row in rows], dtype=np.float64)
    if rows:
        matrix = np.vstack([_decode_embedding(row["embedding"]) for row in rows])
    else:
        matrix = np.empty((0, dimension), dtype=np.float32)
    return ids, published, matrix


def list_article_timestamps(conn: sqlite3.Connection) -> list[tuple[str, float]]:
    rows = conn.execute(
        "SELECT id, published_at FROM articles WHERE embedding_dim > 0"
    ).fetchall()
    return [(row["id"], row["published_at"]) for row in rows]


def distinct_topics(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute("SELECT DISTINCT topic FROM article_topics ORDER BY topic").fetchall()
    return [row["topic"] for row in rows]


def distinct_sources(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute("SELECT DISTINCT source FROM articles ORDER BY source").fetchall()
    return [row["source"] for row in rows]


def count_articles(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0]


def _row_to_article(row: sqlite3.Row) -> Article:
    return Article(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        summary=row["summary"],
        sentiment=row["sentiment"],
        topics=json.loads(row["topics"]),
        source=row["source"],
        published_at=_dt(row["published_at"]),
        embedding=_decode_embedding(row["embedding"]).tolist(),
        keywords=json.loads(row["keywords"]),
        url=row["url"],
        author=row["author"],
        word_count=row["word_count"],
        reading_time=row["reading_time"],
        content_hash=row["content_hash"],
        created_at=_dt(row["created_at"]),
    )


# --- User and preference helpers ---


def insert_user(conn: sqlite3.Connection, user_id: str, now: float) -> None:
    conn.execute(
        "INSERT OR IGNORE INTO users (user_id, created_at) VALUES (?, ?)", (user_id, now)
    )
    conn.commit()


def user_exists(conn: sqlite3.Connection, user_id: str) -> bool:
    row = conn.execute("SELECT 1 FROM users WHERE user_id = ?", (user_id,)).fetchone()
    return row is not None


def get_preferences(conn: sqlite3.Connection, user_id: str) -> UserPreferences | None:
    row = conn.execute(
        "SELECT * FROM user_preferences WHERE user_id = ?", (user_id,)
    ).fetchone()
    if not row:
        return None
    return UserPreferences(
        user_id=row["user_id"],
        topics=json.loads(row["topics"]),
        sources=json.loads(row["sources"]),
        sentiments=json.loads(row["sentiments"]),
        updated_at=_dt(row["updated_at"]),
        expires_at=_dt(row["expires_at"]),
    )


def save_preferences(conn: sqlite3.Connection, prefs: UserPreferences) -> None:
    """Replace a user's preferences, registering the user if needed."""
    with conn:
        conn.execute(
            "INSERT OR IGNORE INTO users (user_id, created_at) VALUES (?, ?)",
            (prefs.user_id, _ts(prefs.updated_at)),
        )
        conn.execute(
            """INSERT INTO user_preferences
               (user_id, topics, sources, sentiments, updated_at, expires_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                 topics = excluded.topics,
                 sources = excluded.sources,
                 sentiments = excluded.sentiments,
                 updated_at = excluded.updated_at,
                 expires_at = excluded.expires_at""",
            (
                prefs.user_id,
                json.dumps(prefs.topics),
                json.dumps(prefs.sources),
                json.dumps(prefs.sentiments),
                _ts(prefs.updated_at),
                _ts(prefs.expires_at),
            ),
        )


def delete_preferences(conn: sqlite3.Connection, user_id: str) -> bool:
    cur = conn.execute("DELETE FROM user_preferences WHERE user_id = ?", (user_id,))
    conn.commit()
    return cur.rowcount > 0


# --- Viewed set helpers ---


def add_viewed(
    conn: sqlite3.Connection, user_id: str, article_id: str, now: float, expires_at: float
) -> bool:
    """Add an article to a user's ViewedSet. Returns False if it was already there."""
    with conn:
        row = conn.execute(
            "SELECT expires_at FROM viewed_sets WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row and row["expires_at"] <= now:
            # The whole set lapsed; start a fresh one
            conn.execute("DELETE FROM viewed_articles WHERE user_id = ?", (user_id,))
        conn.execute(
            """INSERT INTO viewed_sets (user_id, updated_at, expires_at) VALUES (?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                 updated_at = excluded.updated_at,
                 expires_at = excluded.expires_at""",
            (user_id, now, expires_at),
        )
        cur = conn.execute(
            """INSERT OR IGNORE INTO viewed_articles (user_id, article_id, viewed_at)
               VALUES (?, ?, ?)""",
            (user_id, article_id, now),
        )
    return cur.rowcount > 0


def get_viewed_ids(conn: sqlite3.Connection, user_id: str, now: float) -> set[str]:
    rows = conn.execute(
        """SELECT va.article_id FROM viewed_articles va
           JOIN viewed_sets vs ON vs.user_id = va.user_id
           WHERE va.user_id = ? AND vs.expires_at > ?""",
        (user_id, now),
    ).fetchall()
    return {row["article_id"] for row in rows}


def clear_viewed(conn: sqlite3.Connection, user_id: str) -> int:
    with conn:
        cur = conn.execute("DELETE FROM viewed_articles WHERE user_id = ?", (user_id,))
        conn.execute("DELETE FROM viewed_sets WHERE user_id = ?", (user_id,))
    return cur.rowcount


def count_unique_viewers(conn: sqlite3.Connection, article_id: str, now: float) -> int:
    return conn.execute(
        """SELECT COUNT(*) FROM viewed_articles va
           JOIN viewed_sets vs ON vs.user_id = va.user_id
           WHERE va.article_id = ? AND vs.expires_at > ?""",
        (article_id, now),
    ).fetchone()[0]


# --- Engagement helpers ---

_ENGAGEMENT_COLUMNS = {"view": "view_count", "like": "like_count", "share": "share_count"}


def increment_engagement(
    conn: sqlite3.Connection, article_id: str, action: str, now: float, expires_at: float
) -> None:
    """Atomically bump one counter; an expired record restarts from zero."""
    deltas = {col: int(name == action) for name, col in _ENGAGEMENT_COLUMNS.items()}
    conn.execute(
        """INSERT INTO engagement
           (article_id, view_count, like_count, share_count, updated_at, expires_at)
           VALUES (?, ?, ?, ?, ?, ?)
           ON CONFLICT(article_id) DO UPDATE SET
             view_count = CASE WHEN engagement.expires_at <= excluded.updated_at
                          THEN 0 ELSE engagement.view_count END + excluded.view_count,
             like_count = CASE WHEN engagement.expires_at <= excluded.updated_at
                          THEN 0 ELSE engagement.like_count END + excluded.like_count,
             share_count = CASE WHEN engagement.expires_at <= excluded.updated_at
                           THEN 0 ELSE engagement.share_count END + excluded.share_count,
             updated_at = excluded.updated_at,
             expires_at = excluded.expires_at""",
        (
            article_id,
            deltas["view_count"],
            deltas["like_count"],
            deltas["share_count"],
            now,
            expires_at,
        ),
    )
    conn.commit()


def _row_to_engagement(row: sqlite3.Row) -> EngagementRecord:
    return EngagementRecord(
        article_id=row["article_id"],
        view_count=row["view_count"],
        like_count=row["like_count"],
        share_count=row["share_count"],
        updated_at=_dt(row["updated_at"]),
        expires_at=_dt(row["expires_at"]),
    )


def get_engagement(
    conn: sqlite3.Connection, article_id: str, now: float
) -> EngagementRecord | None:
    row = conn.execute(
        "SELECT * FROM engagement WHERE article_id = ? AND expires_at > ?",
        (article_id, now),
    ).fetchone()
    return _row_to_engagement(row) if row else None


def get_engagement_snapshot(conn: sqlite3.Connection, now: float) -> dict[str, EngagementRecord]:
    rows = conn.execute("SELECT * FROM engagement WHERE expires_at > ?", (now,)).fetchall()
    return {row["article_id"]: _row_to_engagement(row) for row in rows}


# --- Trending helpers ---


def rebuild_ranking(conn: sqlite3.Connection, score_fn, now: float) -> int:
    """Recompute and swap the whole ranking in one transaction. Returns the cycle ID.

    ``score_fn(published_at, engagement_record_or_None, now)`` gives each score.
    Readers on other connections see the old ranking until commit; on any
    error the transaction rolls back and the previous ranking stays intact.
    """
    with conn:
        snapshot = get_engagement_snapshot(conn, now)
        timestamps = list_article_timestamps(conn)
        cur = conn.execute(
            "INSERT INTO trending_cycles (built_at, article_count) VALUES (?, 0)", (now,)
        )
        cycle_id = cur.lastrowid
        rows = []
        for article_id, published in timestamps:
            score = score_fn(published, snapshot.get(article_id), now)
            rows.append((article_id, score, published, cycle_id))
        conn.execute("DELETE FROM trending")
        conn.executemany(
            "INSERT INTO trending (article_id, score, published_at, cycle_id) VALUES (?, ?, ?, ?)",
            rows,
        )
        conn.execute(
            "UPDATE trending_cycles SET article_count = ? WHERE id = ?", (len(rows), cycle_id)
        )
    return cycle_id


def get_trending(conn: sqlite3.Connection, limit: int) -> list[TrendingEntry]:
    rows = conn.execute(
        """SELECT * FROM trending
           ORDER BY score DESC, published_at DESC, article_id ASC
           LIMIT ?""",
        (limit,),
    ).fetchall()
    return [
        TrendingEntry(
            article_id=row["article_id"],
            score=row["score"],
            published_at=_dt(row["published_at"]),
            cycle_id=row["cycle_id"],
        )
        for row in rows
    ]


def get_last_cycle(conn: sqlite3.Connection) -> dict | None:
    row = conn.execute("SELECT * FROM trending_cycles ORDER BY id DESC LIMIT 1").fetchone()
    return dict(row) if row else None


# --- Cache helpers ---


def cache_get(conn: sqlite3.Connection, namespace: str, key: str) -> CacheEntry | None:
    row = conn.execute(
        "SELECT * FROM cache_entries WHERE namespace = ? AND key = ?", (namespace, key)
    ).fetchone()
    if not row:
        return None
    return CacheEntry(
        namespace=row["namespace"],
        key=row["key"],
        payload=row["payload"],
        created_at=row["created_at"],
        ttl=row["ttl"],
    )


def cache_set(conn: sqlite3.Connection, entry: CacheEntry) -> None:
    conn.execute(
        """INSERT OR REPLACE INTO cache_entries (namespace, key, payload, created_at, ttl)
           VALUES (?, ?, ?, ?, ?)""",
        (entry.namespace, entry.key, entry.payload, entry.created_at, entry.ttl),
    )
    conn.commit()


def cache_delete_keys(conn: sqlite3.Connection, namespace: str, keys: list[str]) -> int:
    if not keys:
        return 0
    cur = conn.executemany(
        "DELETE FROM cache_entries WHERE namespace = ? AND key = ?",
        [(namespace, key) for key in keys],
    )
    conn.commit()
    return cur.rowcount


def cache_clear(conn: sqlite3.Connection, namespace: str | None = None) -> int:
    if namespace is None:
        cur = conn.execute("DELETE FROM cache_entries")
    else:
        cur = conn.execute("DELETE FROM cache_entries WHERE namespace = ?", (namespace,))
    conn.commit()
    return cur.rowcount


def cache_keys(conn: sqlite3.Connection, namespace: str) -> list[str]:
    rows = conn.execute(
        "SELECT key FROM cache_entries WHERE namespace = ?", (namespace,)
    ).fetchall()
    return [row["key"] for row in rows]


def cache_counts(conn: sqlite3.Connection) -> dict[str, int]:
    rows = conn.execute(
        "SELECT namespace, COUNT(*) AS n FROM cache_entries GROUP BY namespace"
    ).fetchall()
    return {row["namespace"]: row["n"] for row in rows}


# --- Maintenance ---


def purge_expired(conn: sqlite3.Connection, now: float) -> dict[str, int]:
    """Delete every expired preference, viewed set, engagement and cache row."""
    with conn:
        prefs = conn.execute(
            "DELETE FROM user_preferences WHERE expires_at <= ?", (now,)
        ).rowcount
        conn.execute(
            """DELETE FROM viewed_articles WHERE user_id IN
               (SELECT user_id FROM viewed_sets WHERE expires_at <= ?)""",
            (now,),
        )
        viewed = conn.execute("DELETE FROM viewed_sets WHERE expires_at <= ?", (now,)).rowcount
        engagement = conn.execute(
            "DELETE FROM engagement WHERE expires_at <= ?", (now,)
        ).rowcount
        cache = conn.execute(
            "DELETE FROM cache_entries WHERE created_at + ttl <= ?", (now,)
        ).rowcount
    return {
        "preferences": prefs,
        "viewed_sets": viewed,
        "engagement": engagement,
        "cache_entries": cache,
    }
