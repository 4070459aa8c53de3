"""Abstract base class for the LLM providers behind article enrichment."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

RESPONSE_FORMATS = ("text", "json_object", "json_schema")


@dataclass
class LLMResponse:
    """Text of one completion plus what the provider reported about it."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    # Generation stopped at max_tokens; any JSON in ``text`` is likely cut off
    truncated: bool = False


class BaseLLMProvider(ABC):
    """A chat model that answers annotation prompts.

    ``response_format`` says how hard the provider should push the model
    towards JSON: ``text`` relies on the prompt alone, ``json_object`` asks
    for any JSON object, and ``json_schema`` passes the caller's schema where
    the API supports it.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        default_model: str,
        max_retries: int = 3,
        timeout: int = 120,
        response_format: str = "text",
    ):
        if response_format not in RESPONSE_FORMATS:
            raise ValueError(f"Unknown response_format: {response_format!r}")
        self.api_key = api_key
        self.base_url = base_url
        self.default_model = default_model
        self.max_retries = max_retries
        self.timeout = timeout
        self.response_format = response_format

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: str = "",
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 800,
        schema: dict | None = None,
    ) -> LLMResponse:
        """Send a completion request. ``schema`` describes the expected JSON reply."""
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...
