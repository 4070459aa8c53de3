"""OpenAI-compatible chat completions (OpenAI, DeepSeek, Ollama, vLLM, etc.)."""

from __future__ import annotations

import logging

import httpx

from newshub.llm import register_provider
from newshub.llm.base import BaseLLMProvider, LLMResponse
from newshub.retry import retry_async

logger = logging.getLogger(__name__)

SCHEMA_NAME = "article_annotation"


@register_provider("openai_compatible")
class OpenAICompatibleProvider(BaseLLMProvider):
    """Provider for any OpenAI-compatible chat completions API."""

    @property
    def provider_name(self) -> str:
        return "openai_compatible"

    async def complete(
        self,
        prompt: str,
        system: str = "",
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 800,
        schema: dict | None = None,
    ) -> LLMResponse:
        payload = self.build_payload(
            prompt, system, model or self.default_model, temperature, max_tokens, schema,
        )
        return await retry_async(self._post, payload, max_retries=self.max_retries)

    def build_payload(
        self,
        prompt: str,
        system: str,
        model: str,
        temperature: float,
        max_tokens: int,
        schema: dict | None,
    ) -> dict:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self.response_format == "json_schema" and schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": SCHEMA_NAME, "schema": schema, "strict": True},
            }
        elif self.response_format != "text":
            # json_schema without a schema degrades to a plain JSON object
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def _post(self, payload: dict) -> LLMResponse:
        url = f"{self.base_url.rstrip('/')}/chat/completions"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()

        choice = data["choices"][0]
        usage = data.get("usage", {})
        truncated = choice.get("finish_reason") == "length"
        if truncated:
            logger.warning("Completion from %s hit max_tokens", payload["model"])
        return LLMResponse(
            text=choice["message"].get("content") or "",
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            model=payload["model"],
            truncated=truncated,
        )
