"""Namespaced, TTL-bound read-through cache in front of the store.

Backend failures never fail a request: a failed read is a forced miss, a
failed write or invalidation is logged and skipped.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable

from newshub.cache import BACKENDS
from newshub.cache.base import BaseCacheBackend
from newshub.config import get_cache_config
from newshub.errors import ValidationError
from newshub.models import CacheEntry

logger = logging.getLogger(__name__)

NAMESPACES = ("request", "query", "similarity", "user")


class CacheLayer:
    """Get / set / invalidate over independent namespaces with per-namespace TTLs."""

    def __init__(
        self,
        backend: BaseCacheBackend,
        ttls: dict[str, float],
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.ttls = ttls
        self.clock = clock
        self._stats: dict[str, dict[str, int]] = defaultdict(
            lambda: {"hits": 0, "misses": 0, "errors": 0}
        )

    @classmethod
    def from_config(cls, config: dict, store=None, clock: Callable[[], float] = time.time) -> CacheLayer:
        cfg = get_cache_config(config)
        backend_name = cfg["backend"]
        if backend_name not in BACKENDS:
            raise ValueError(f"Unknown cache backend: {backend_name}")
        backend = BACKENDS[backend_name](store=store, max_entries=cfg["max_entries"])
        logger.info("Cache layer using %s backend", backend.name)
        return cls(backend, cfg["ttl"], clock=clock)

    def _check(self, namespace: str) -> None:
        if namespace not in NAMESPACES:
            raise ValidationError(f"Unknown cache namespace: {namespace}")

    async def get(self, namespace: str, key: str) -> Any | None:
        """Return the cached payload, or None on a miss (absent, expired or evicted)."""
        self._check(namespace)
        stats = self._stats[namespace]
        try:
            entry = await self.backend.get(namespace, key)
        except Exception as exc:
            stats["errors"] += 1
            stats["misses"] += 1
            logger.warning("Cache read failed for %s:%s, treating as miss: %s", namespace, key, exc)
            return None

        if entry is None:
            stats["misses"] += 1
            return None
        if entry.is_expired(self.clock()):
            stats["misses"] += 1
            await self._delete(namespace, [key])
            return None
        stats["hits"] += 1
        return entry.payload

    async def set(
        self, namespace: str, key: str, payload: Any, ttl: float | None = None
    ) -> None:
        """Overwrite unconditionally and restart the TTL clock. None is never cached."""
        self._check(namespace)
        if payload is None:
            return
        entry = CacheEntry(
            namespace=namespace,
            key=key,
            payload=payload,
            created_at=self.clock(),
            ttl=ttl if ttl is not None else self.ttls[namespace],
        )
        try:
            await self.backend.set(entry)
        except Exception as exc:
            self._stats[namespace]["errors"] += 1
            logger.warning("Cache write failed for %s:%s: %s", namespace, key, exc)

    async def get_or_compute(
        self,
        namespace: str,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """Read-through: serve a hit, otherwise compute, populate and return."""
        cached = await self.get(namespace, key)
        if cached is not None:
            return cached
        value = await compute()
        await self.set(namespace, key, value, ttl)
        return value

    async def invalidate(self, namespace: str, key: str) -> bool:
        self._check(namespace)
        return await self._delete(namespace, [key]) > 0

    async def invalidate_where(self, namespace: str, predicate: Callable[[str], bool]) -> int:
        """Remove every entry in a namespace whose key satisfies ``predicate``."""
        self._check(namespace)
        try:
            keys = await self.backend.keys(namespace)
        except Exception as exc:
            self._stats[namespace]["errors"] += 1
            logger.warning("Cache key scan failed for %s: %s", namespace, exc)
            return 0
        doomed = [key for key in keys if predicate(key)]
        return await self._delete(namespace, doomed)

    async def invalidate_prefix(self, namespace: str, prefix: str) -> int:
        return await self.invalidate_where(namespace, lambda key: key.startswith(prefix))

    async def clear_namespace(self, namespace: str) -> int:
        self._check(namespace)
        try:
            removed = await self.backend.clear(namespace)
        except Exception as exc:
            self._stats[namespace]["errors"] += 1
            logger.warning("Cache clear failed for %s: %s", namespace, exc)
            return 0
        logger.info("Cleared %d entries from cache namespace '%s'", removed, namespace)
        return removed

    async def clear_all(self) -> int:
        total = 0
        for namespace in NAMESPACES:
            total += await self.clear_namespace(namespace)
        return total

    async def stats(self) -> dict[str, Any]:
        try:
            counts = await self.backend.counts()
        except Exception as exc:
            logger.warning("Cache stats unavailable: %s", exc)
            counts = {}
        namespaces = {}
        for namespace in NAMESPACES:
            s = self._stats[namespace]
            lookups = s["hits"] + s["misses"]
            namespaces[namespace] = {
                "entries": counts.get(namespace, 0),
                "ttl_seconds": self.ttls[namespace],
                "hits": s["hits"],
                "misses": s["misses"],
                "errors": s["errors"],
                "hit_rate": round(s["hits"] / lookups, 3) if lookups else 0.0,
            }
        return {"backend": self.backend.name, "namespaces": namespaces}

    async def _delete(self, namespace: str, keys: list[str]) -> int:
        if not keys:
            return 0
        try:
            return await self.backend.delete(namespace, keys)
        except Exception as exc:
            self._stats[namespace]["errors"] += 1
            logger.warning("Cache invalidation failed for %s: %s", namespace, exc)
            return 0
