"""Abstract base class for enrichment providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from newshub.models import Enrichment


class BaseEnricher(ABC):
    """Turns article text into summary, sentiment, keywords and topics."""

    def __init__(self, config: dict):
        self.config = config

    @abstractmethod
    async def analyze(self, text: str, title: str = "", source: str = "") -> Enrichment:
        """Annotate text. Raises EnrichmentUnavailable on provider error or timeout."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...
