"""Abstract base class for cache backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

from newshub.models import CacheEntry


class BaseCacheBackend(ABC):
    """Raw keyed storage for cache entries. Expiry is judged by the cache layer."""

    @abstractmethod
    async def get(self, namespace: str, key: str) -> CacheEntry | None:
        ...

    @abstractmethod
    async def set(self, entry: CacheEntry) -> None:
        ...

    @abstractmethod
    async def delete(self, namespace: str, keys: list[str]) -> int:
        """Delete the given keys, returning how many existed."""
        ...

    @abstractmethod
    async def clear(self, namespace: str | None = None) -> int:
        """Delete a whole namespace (or everything), returning the count removed."""
        ...

    @abstractmethod
    async def keys(self, namespace: str) -> list[str]:
        ...

    @abstractmethod
    async def counts(self) -> dict[str, int]:
        """Number of stored entries per namespace."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...
