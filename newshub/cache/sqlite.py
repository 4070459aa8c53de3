"""Cache backend sharing the document store's SQLite database."""

from __future__ import annotations

import json
from typing import Any

from newshub import db
from newshub.cache import register_backend
from newshub.cache.base import BaseCacheBackend
from newshub.models import Article, CacheEntry, Page, Pagination, UserPreferences

TYPE_TAG = "__type__"


def encode_payload(payload: Any) -> str:
    """Serialize a cache payload to tagged JSON. Unsupported types raise TypeError."""
    return json.dumps(_encode(payload))


def decode_payload(text: str) -> Any:
    return json.loads(text, object_hook=_decode)


def _encode(value: Any) -> Any:
    if isinstance(value, Article):
        data = value.to_dict(include_embedding=True)
        data["created_at"] = value.created_at.isoformat()
        return {TYPE_TAG: "article", "data": data}
    if isinstance(value, Page):
        return {
            TYPE_TAG: "page",
            "items": [_encode(a) for a in value.items],
            "pagination": value.pagination.to_dict(),
        }
    if isinstance(value, UserPreferences):
        return {TYPE_TAG: "preferences", "data": value.to_dict()}
    if isinstance(value, tuple):
        return {TYPE_TAG: "tuple", "items": [_encode(v) for v in value]}
    if isinstance(value, list):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _encode(v) for k, v in value.items()}
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise TypeError(f"Cannot cache payload of type {type(value).__name__}")


def _decode(obj: dict) -> Any:
    # json calls this innermost-first, so nested payloads are already decoded
    tag = obj.get(TYPE_TAG)
    if tag == "article":
        return Article.from_dict(obj["data"])
    if tag == "page":
        return Page(items=obj["items"], pagination=Pagination(**obj["pagination"]))
    if tag == "preferences":
        return UserPreferences.from_dict(obj["data"])
    if tag == "tuple":
        return tuple(obj["items"])
    return obj


@register_backend("sqlite")
class SQLiteBackend(BaseCacheBackend):
    """Persists entries as JSON in the ``cache_entries`` table so they survive restarts."""

    def __init__(self, store, **_):
        self.store = store

    @property
    def name(self) -> str:
        return "sqlite"

    async def get(self, namespace: str, key: str) -> CacheEntry | None:
        entry = await self.store.run(db.cache_get, namespace, key)
        if entry is not None:
            entry.payload = decode_payload(entry.payload)
        return entry

    async def set(self, entry: CacheEntry) -> None:
        stored = CacheEntry(
            namespace=entry.namespace,
            key=entry.key,
            payload=encode_payload(entry.payload),
            created_at=entry.created_at,
            ttl=entry.ttl,
        )
        await self.store.run(db.cache_set, stored)

    async def delete(self, namespace: str, keys: list[str]) -> int:
        return await self.store.run(db.cache_delete_keys, namespace, keys)

    async def clear(self, namespace: str | None = None) -> int:
        return await self.store.run(db.cache_clear, namespace)

    async def keys(self, namespace: str) -> list[str]:
        return await self.store.run(db.cache_keys, namespace)

    async def counts(self) -> dict[str, int]:
        return await self.store.run(db.cache_counts)
