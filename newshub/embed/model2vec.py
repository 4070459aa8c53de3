"""Local embeddings with Model2Vec (lightweight, CPU-only)."""

from __future__ import annotations

import asyncio
import logging

from newshub.embed import register_embedder
from newshub.embed.base import BaseEmbedder
from newshub.errors import EmbeddingUnavailable
from newshub.retry import with_timeout

logger = logging.getLogger(__name__)


@register_embedder("model2vec")
class Model2VecEmbedder(BaseEmbedder):
    """Static embedding model, loaded on first use."""

    def __init__(self, config: dict):
        super().__init__(config)
        self._model = None

    @property
    def name(self) -> str:
        return "model2vec"

    def _get_model(self):
        if self._model is None:
            from model2vec import StaticModel

            logger.info("Loading embedding model: %s", self.model)
            self._model = StaticModel.from_pretrained(self.model)
        return self._model

    def _encode(self, text: str) -> list[float]:
        return self._get_model().encode([text])[0].tolist()

    async def embed(self, text: str) -> list[float]:
        try:
            vector = await with_timeout(
                asyncio.to_thread(self._encode, text),
                self.timeout,
                EmbeddingUnavailable,
                what="embedding",
            )
        except EmbeddingUnavailable:
            raise
        except (OSError, RuntimeError, ValueError) as exc:
            raise EmbeddingUnavailable(f"Model2Vec failed: {exc}") from exc
        return self._check_dimension(vector)
