"""LLM-backed enrichment using a JSON-answering prompt."""

from __future__ import annotations

import json
import logging
import re

import httpx

from newshub.config import get_enrichment_config
from newshub.enrich import register_enricher
from newshub.enrich.base import BaseEnricher
from newshub.errors import EnrichmentUnavailable
from newshub.llm import build_provider_for_task
from newshub.llm.prompts import ENRICH_ARTICLE, ENRICHMENT_SCHEMA, SYSTEM_EDITOR
from newshub.models import SENTIMENTS, Enrichment
from newshub.retry import with_timeout

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 8
MAX_TOPICS = 3

_SMART_QUOTES = str.maketrans({
    "“": '"', "”": '"', "″": '"',
    "‘": "'", "’": "'", "′": "'",
})


def _try_parse(text: str) -> dict | None:
    for candidate in (text, text.translate(_SMART_QUOTES)):
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def extract_json(text: str) -> dict | None:
    """Pull a JSON object out of LLM output that may carry fences or chatter."""
    result = _try_parse(text)
    if result is not None:
        return result

    fenced = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if fenced:
        result = _try_parse(fenced.group(1))
        if result is not None:
            return result

    brace = re.search(r"\{.*\}", text, re.DOTALL)
    if brace:
        return _try_parse(brace.group(0))
    return None


def _string_list(value, limit: int) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    cleaned = [str(v).strip() for v in value if str(v).strip()]
    return cleaned[:limit]


def parse_enrichment(text: str) -> Enrichment:
    data = extract_json(text)
    if data is None:
        raise EnrichmentUnavailable("Enrichment response was not valid JSON")

    summary = str(data.get("summary", "")).strip()
    if not summary:
        raise EnrichmentUnavailable("Enrichment response had no summary")

    sentiment = str(data.get("sentiment", "")).strip().lower()
    if sentiment not in SENTIMENTS:
        logger.debug("Unexpected sentiment %r, using neutral", sentiment)
        sentiment = "neutral"

    return Enrichment(
        summary=summary,
        sentiment=sentiment,
        keywords=_string_list(data.get("keywords"), MAX_KEYWORDS),
        topics=[t.lower() for t in _string_list(data.get("topics"), MAX_TOPICS)],
    )


@register_enricher("llm")
class LLMEnricher(BaseEnricher):
    """Asks the LLM configured for the ``enrich`` task to annotate an article."""

    def __init__(self, config: dict):
        super().__init__(config)
        cfg = get_enrichment_config(config)
        self.timeout = cfg["timeout"]
        self.max_chars = cfg["max_chars"]
        self.provider = build_provider_for_task(config, "enrich")

    @property
    def name(self) -> str:
        return "llm"

    async def analyze(self, text: str, title: str = "", source: str = "") -> Enrichment:
        prompt = ENRICH_ARTICLE.format(
            title=title, source=source, content=text[: self.max_chars],
        )
        try:
            response = await with_timeout(
                self.provider.complete(prompt, system=SYSTEM_EDITOR, schema=ENRICHMENT_SCHEMA),
                self.timeout,
                EnrichmentUnavailable,
                what="enrichment",
            )
        except EnrichmentUnavailable:
            raise
        except (httpx.HTTPError, ConnectionError, TimeoutError) as exc:
            raise EnrichmentUnavailable(f"Enrichment provider error: {exc}") from exc
        except Exception as exc:
            if type(exc).__module__.startswith("anthropic"):
                raise EnrichmentUnavailable(f"Enrichment provider error: {exc}") from exc
            raise

        if response.truncated:
            raise EnrichmentUnavailable("Enrichment response cut off at max_tokens")
        return parse_enrichment(response.text)
