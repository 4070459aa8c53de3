"""Cache backend registry and the namespaced cache layer."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from newshub.cache.base import BaseCacheBackend

BACKENDS: dict[str, type[BaseCacheBackend]] = {}


def register_backend(name: str):
    """Decorator to register a cache backend."""

    def decorator(cls):
        BACKENDS[name] = cls
        return cls

    return decorator


# Import implementations to trigger registration
from newshub.cache.memory import MemoryBackend  # noqa: E402, F401
from newshub.cache.sqlite import SQLiteBackend  # noqa: E402, F401
from newshub.cache.layer import NAMESPACES, CacheLayer  # noqa: E402, F401
