"""In-process LRU cache backend."""

from __future__ import annotations

import logging
from collections import OrderedDict

from newshub.cache import register_backend
from newshub.cache.base import BaseCacheBackend
from newshub.models import CacheEntry

logger = logging.getLogger(__name__)


@register_backend("memory")
class MemoryBackend(BaseCacheBackend):
    """Dict-backed store that evicts the least recently used entry past ``max_entries``."""

    def __init__(self, max_entries: int = 10000, **_):
        self.max_entries = max_entries
        self._entries: OrderedDict[tuple[str, str], CacheEntry] = OrderedDict()
        self.evictions = 0

    @property
    def name(self) -> str:
        return "memory"

    async def get(self, namespace: str, key: str) -> CacheEntry | None:
        entry = self._entries.get((namespace, key))
        if entry is not None:
            self._entries.move_to_end((namespace, key))
        return entry

    async def set(self, entry: CacheEntry) -> None:
        slot = (entry.namespace, entry.key)
        self._entries[slot] = entry
        self._entries.move_to_end(slot)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug("Evicted cache entry %s:%s", *evicted)

    async def delete(self, namespace: str, keys: list[str]) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop((namespace, key), None) is not None:
                removed += 1
        return removed

    async def clear(self, namespace: str | None = None) -> int:
        if namespace is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        doomed = [slot for slot in self._entries if slot[0] == namespace]
        for slot in doomed:
            del self._entries[slot]
        return len(doomed)

    async def keys(self, namespace: str) -> list[str]:
        return [key for ns, key in self._entries if ns == namespace]

    async def counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for ns, _ in self._entries:
            counts[ns] = counts.get(ns, 0) + 1
        return counts
