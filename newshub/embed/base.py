"""Abstract base class for embedding providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from newshub.config import get_embedding_config
from newshub.errors import EmbeddingUnavailable


class BaseEmbedder(ABC):
    """Maps text to a fixed-length float vector."""

    def __init__(self, config: dict):
        cfg = get_embedding_config(config)
        self.config = config
        self.model = cfg["model"]
        self.dimension = cfg["dimension"]
        self.timeout = cfg["timeout"]

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed text. Raises EmbeddingUnavailable on provider error or timeout."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    def _check_dimension(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimension:
            raise EmbeddingUnavailable(
                f"{self.name} returned {len(vector)} dims, expected {self.dimension}"
            )
        return vector
