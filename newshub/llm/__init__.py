"""LLM provider registry and task routing."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from newshub.llm.base import BaseLLMProvider

PROVIDERS: dict[str, type[BaseLLMProvider]] = {}


def register_provider(name: str):
    """Decorator to register an LLM provider."""

    def decorator(cls):
        PROVIDERS[name] = cls
        return cls

    return decorator


def build_provider_for_task(config: dict, task: str) -> BaseLLMProvider:
    """Construct the provider configured for a task. Callers own the instance."""
    from newshub.config import get_llm_task_config

    task_cfg = get_llm_task_config(config, task)
    provider_type = task_cfg["provider_type"]
    if provider_type not in PROVIDERS:
        raise ValueError(f"Unknown LLM provider type: {provider_type}")
    return PROVIDERS[provider_type](
        api_key=task_cfg["api_key"],
        base_url=task_cfg["base_url"],
        default_model=task_cfg["model"],
        max_retries=task_cfg["max_retries"],
        timeout=task_cfg["timeout"],
        response_format=task_cfg["response_format"],
    )


# Import implementations to trigger registration
from newshub.llm.anthropic_provider import AnthropicProvider  # noqa: E402, F401
from newshub.llm.openai_compat import OpenAICompatibleProvider  # noqa: E402, F401
