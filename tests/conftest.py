"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from newshub.cache import CacheLayer
from newshub.cache.memory import MemoryBackend
from newshub.config import get_cache_config, load_config
from newshub.embed.base import BaseEmbedder
from newshub.enrich.base import BaseEnricher
from newshub.errors import EmbeddingUnavailable, EnrichmentUnavailable
from newshub.models import Article, Enrichment, RawArticle
from newshub.store import DocumentStore

START = 1_760_000_000.0  # fixed "now" for every test clock


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def hours_ago(self, hours: float) -> datetime:
        return datetime.fromtimestamp(self.now - hours * 3600, tz=timezone.utc)


class FakeEnricher(BaseEnricher):
    """Deterministic enricher; titles in ``fail_titles`` raise EnrichmentUnavailable."""

    def __init__(self, config: dict, fail_titles=(), fail_times: int | None = None):
        super().__init__(config)
        self.fail_titles = set(fail_titles)
        self.fail_times = fail_times
        self.calls = 0

    @property
    def name(self) -> str:
        return "fake"

    async def analyze(self, text: str, title: str = "", source: str = "") -> Enrichment:
        self.calls += 1
        if title in self.fail_titles:
            if self.fail_times is None or self.calls <= self.fail_times:
                raise EnrichmentUnavailable(f"provider down for {title}")
        sentiment = "positive" if "good" in text.lower() else "neutral"
        return Enrichment(
            summary=f"Summary: {title}",
            sentiment=sentiment,
            keywords=[w.lower() for w in title.split()[:3]],
            topics=["tech"],
        )


class FakeEmbedder(BaseEmbedder):
    """Four-dimensional embeddings derived from the text length."""

    def __init__(self, config: dict, fail: bool = False):
        super().__init__(config)
        self.fail = fail

    @property
    def name(self) -> str:
        return "fake"

    async def embed(self, text: str) -> list[float]:
        if self.fail:
            raise EmbeddingUnavailable("embedding backend down")
        n = len(text)
        return self._check_dimension([1.0, float(n % 7) + 1.0, float(n % 3), 0.5])


@pytest.fixture
def sample_config(tmp_path):
    """Minimal config for testing (no real API keys)."""
    config_text = """
llm:
  providers:
    mock:
      type: "openai_compatible"
      api_key: "test-key"
      base_url: "http://localhost:9999"
      default_model: "test-model"
  tasks:
    enrich: { provider: "mock" }

embeddings:
  provider: "model2vec"
  model: "minishlab/potion-base-8M"
  dimension: 4

enrichment:
  timeout: 5

cache:
  backend: "memory"
  ttl:
    request: 60
    query: 300
    similarity: 3600
    user: 120

engagement:
  retention_days: 7

trending:
  half_life_hours: 24

personalization:
  max_topics: 10
  page_size: 12
  max_page_size: 50

pipeline:
  concurrency: 2
  max_retries: 1
  base_delay: 0.0

sources:
  rss:
    enabled: true
    feeds:
      tech:
        - url: "https://example.com/feed.xml"
          name: "Test Feed"

database:
  path: "DB_PATH_PLACEHOLDER"
"""
    db_path = str(tmp_path / "test.db")
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(config_text.replace("DB_PATH_PLACEHOLDER", db_path))
    return load_config(str(cfg_path))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(sample_config, clock):
    """Open document store on a fresh database."""
    s = DocumentStore.open(sample_config, clock=clock)
    yield s
    s.close()


@pytest.fixture
def cache(sample_config, clock):
    return CacheLayer(MemoryBackend(), get_cache_config(sample_config)["ttl"], clock=clock)


@pytest.fixture
def make_article(clock):
    """Factory for valid articles published ``hours_old`` before the clock."""

    def _make(
        article_id: str,
        title: str = "",
        embedding=(1.0, 0.0, 0.0, 0.0),
        hours_old: float = 1.0,
        topics=("tech",),
        sentiment: str = "neutral",
        source: str = "Tech News",
        content: str = "",
    ) -> Article:
        title = title or f"Article {article_id}"
        return Article(
            id=article_id,
            title=title,
            content=content or f"Body of {title}. " * 20,
            summary=f"Summary of {title}",
            sentiment=sentiment,
            topics=list(topics),
            source=source,
            published_at=clock.hours_ago(hours_old),
            embedding=list(embedding),
            keywords=[w.lower() for w in title.split()],
            url=f"https://example.com/{article_id}",
        )

    return _make


@pytest.fixture
def sample_raws(clock):
    """Raw records as a feed fetcher would produce them."""
    return [
        RawArticle(
            title=f"Story number {i}",
            body=f"Full text of story {i}. " * 30,
            source="Test Feed",
            published_at=clock.hours_ago(i),
            url=f"https://example.com/story-{i}",
            topic_hint="tech",
        )
        for i in range(1, 5)
    ]


@pytest.fixture
def fake_enricher(sample_config):
    return FakeEnricher(sample_config)


@pytest.fixture
def fake_embedder(sample_config):
    return FakeEmbedder(sample_config)
