"""Embeddings from an OpenAI-compatible ``/embeddings`` endpoint."""

from __future__ import annotations

import logging

import httpx

from newshub.config import get_embedding_config
from newshub.embed import register_embedder
from newshub.embed.base import BaseEmbedder
from newshub.errors import EmbeddingUnavailable
from newshub.retry import retry_async, with_timeout

logger = logging.getLogger(__name__)


@register_embedder("openai_compatible")
class OpenAICompatibleEmbedder(BaseEmbedder):
    """Remote embedding API (OpenAI, Ollama, vLLM, etc.)."""

    def __init__(self, config: dict):
        super().__init__(config)
        cfg = get_embedding_config(config)
        self.base_url = cfg["base_url"]
        self.api_key = cfg["api_key"]

    @property
    def name(self) -> str:
        return "openai_compatible"

    async def embed(self, text: str) -> list[float]:
        try:
            vector = await with_timeout(
                retry_async(self._do_embed, text, max_retries=2, base_delay=0.5),
                self.timeout,
                EmbeddingUnavailable,
                what="embedding",
            )
        except EmbeddingUnavailable:
            raise
        except (
            httpx.HTTPError, ConnectionError, TimeoutError,
            KeyError, IndexError, TypeError,
        ) as exc:
            raise EmbeddingUnavailable(f"Embedding provider error: {exc}") from exc
        return self._check_dimension(vector)

    async def _do_embed(self, text: str) -> list[float]:
        url = f"{self.base_url.rstrip('/')}/embeddings"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {"model": self.model, "input": text}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()

        return [float(x) for x in data["data"][0]["embedding"]]
