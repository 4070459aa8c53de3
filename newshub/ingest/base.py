"""Abstract base class for raw article sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from newshub.models import RawArticle


class BaseSource(ABC):
    """Produces a finite, lazily generated batch of raw articles per fetch cycle."""

    def __init__(self, config: dict):
        self.config = config

    @abstractmethod
    def fetch(self) -> AsyncIterator[RawArticle]:
        """Yield raw articles for one fetch cycle. Not restartable mid-cycle."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable source name."""
        ...
