"""Embedding provider registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from newshub.embed.base import BaseEmbedder

EMBEDDERS: dict[str, type[BaseEmbedder]] = {}


def register_embedder(name: str):
    """Decorator to register an embedding provider."""

    def decorator(cls):
        EMBEDDERS[name] = cls
        return cls

    return decorator


def build_embedder(config: dict) -> BaseEmbedder:
    from newshub.config import get_embedding_config

    name = get_embedding_config(config)["provider"]
    if name not in EMBEDDERS:
        raise ValueError(f"Unknown embedding provider: {name}")
    return EMBEDDERS[name](config)


# Import implementations to trigger registration
from newshub.embed.model2vec import Model2VecEmbedder  # noqa: E402, F401
from newshub.embed.openai_compat import OpenAICompatibleEmbedder  # noqa: E402, F401
