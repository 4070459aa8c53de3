"""AI enrichment provider registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from newshub.enrich.base import BaseEnricher

ENRICHERS: dict[str, type[BaseEnricher]] = {}


def register_enricher(name: str):
    """Decorator to register an enrichment provider."""

    def decorator(cls):
        ENRICHERS[name] = cls
        return cls

    return decorator


def build_enricher(config: dict) -> BaseEnricher:
    from newshub.config import get_enrichment_config

    name = get_enrichment_config(config)["provider"]
    if name not in ENRICHERS:
        raise ValueError(f"Unknown enrichment provider: {name}")
    return ENRICHERS[name](config)


# Import implementations to trigger registration
from newshub.enrich.llm import LLMEnricher  # noqa: E402, F401
