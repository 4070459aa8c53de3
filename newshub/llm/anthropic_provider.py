"""Anthropic Claude provider."""

from __future__ import annotations

import logging

import anthropic

from newshub.llm import register_provider
from newshub.llm.base import BaseLLMProvider, LLMResponse
from newshub.retry import retry_async

logger = logging.getLogger(__name__)

# The Messages API has no response_format; prefilling the reply with an
# opening brace keeps the model from wrapping its JSON in prose.
JSON_PREFILL = "{"


@register_provider("anthropic")
class AnthropicProvider(BaseLLMProvider):
    """Provider for Anthropic Claude models."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._client: anthropic.AsyncAnthropic | None = None

    @property
    def provider_name(self) -> str:
        return "anthropic"

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key, timeout=self.timeout, max_retries=0,
            )
        return self._client

    async def complete(
        self,
        prompt: str,
        system: str = "",
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 800,
        schema: dict | None = None,
    ) -> LLMResponse:
        prefill = JSON_PREFILL if self.response_format != "text" else ""
        kwargs = {
            "model": model or self.default_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if prefill:
            kwargs["messages"].append({"role": "assistant", "content": prefill})
        if system:
            kwargs["system"] = system
        return await retry_async(self._create, kwargs, prefill, max_retries=self.max_retries)

    async def _create(self, kwargs: dict, prefill: str) -> LLMResponse:
        response = await self.client.messages.create(**kwargs)
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        truncated = response.stop_reason == "max_tokens"
        if truncated:
            logger.warning("Completion from %s hit max_tokens", kwargs["model"])
        return LLMResponse(
            text=prefill + text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=kwargs["model"],
            truncated=truncated,
        )
