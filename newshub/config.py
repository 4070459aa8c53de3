"""Load configuration from YAML with env var substitution, plus typed getters."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")

DEFAULT_CACHE_TTLS = {
    "request": 60,
    "query": 300,
    "similarity": 3600,
    "user": 120,
}


def _load_dotenv(path: str | Path = ".env") -> None:
    """Copy KEY=VALUE lines from a .env file into os.environ, keeping existing vars."""
    env_path = Path(path)
    if not env_path.is_file():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if key and key not in os.environ:
            os.environ[key] = value.strip().strip("'\"")


def _resolve_env_vars(value: Any) -> Any:
    """Recursively replace ${ENV_VAR} placeholders."""
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value
    match = _ENV_PATTERN.fullmatch(value)
    if match:
        return os.environ.get(match.group(1), "")
    return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)


def load_config(path: str | Path = "config.yaml") -> dict[str, Any]:
    """Load config from a YAML file and resolve environment variables."""
    _load_dotenv()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return _resolve_env_vars(raw)


def get_db_path(config: dict) -> str:
    return config.get("database", {}).get("path", "data/newshub.db")


def get_store_timeout(config: dict) -> float:
    """Seconds a single store operation may take before it counts as unavailable."""
    return float(config.get("database", {}).get("timeout", 5.0))


def get_embedding_config(config: dict) -> dict:
    cfg = config.get("embeddings", {})
    return {
        "provider": cfg.get("provider", "model2vec"),
        "model": cfg.get("model", "minishlab/potion-base-8M"),
        "dimension": int(cfg.get("dimension", 256)),
        "timeout": float(cfg.get("timeout", 30)),
        "base_url": cfg.get("base_url", ""),
        "api_key": cfg.get("api_key", ""),
    }


def get_enrichment_config(config: dict) -> dict:
    cfg = config.get("enrichment", {})
    return {
        "provider": cfg.get("provider", "llm"),
        "timeout": float(cfg.get("timeout", 60)),
        "max_chars": int(cfg.get("max_chars", 4000)),
    }


def get_llm_task_config(config: dict, task: str) -> dict:
    """Get provider name and model for a given LLM task."""
    llm_cfg = config.get("llm", {})
    task_cfg = llm_cfg.get("tasks", {}).get(task, {})
    provider_name = task_cfg.get("provider", "openai")
    provider_cfg = llm_cfg.get("providers", {}).get(provider_name, {})

    return {
        "provider_name": provider_name,
        "provider_type": provider_cfg.get("type", "openai_compatible"),
        "api_key": provider_cfg.get("api_key", ""),
        "base_url": provider_cfg.get("base_url", ""),
        "model": task_cfg.get("model") or provider_cfg.get("default_model", ""),
        "max_retries": provider_cfg.get("max_retries", 3),
        "timeout": provider_cfg.get("timeout", 120),
        "response_format": provider_cfg.get("response_format", "text"),
    }


def get_cache_config(config: dict) -> dict:
    """Cache backend settings with a TTL (seconds) for every namespace."""
    cfg = config.get("cache", {})
    ttls = dict(DEFAULT_CACHE_TTLS)
    ttls.update({k: float(v) for k, v in cfg.get("ttl", {}).items()})
    return {
        "backend": cfg.get("backend", "memory"),
        "max_entries": int(cfg.get("max_entries", 10000)),
        "ttl": ttls,
    }


def get_engagement_config(config: dict) -> dict:
    cfg = config.get("engagement", {})
    weights = {"view": 1.0, "like": 2.0, "share": 3.0}
    weights.update({k: float(v) for k, v in cfg.get("weights", {}).items()})
    return {
        "weights": weights,
        "retention_days": float(cfg.get("retention_days", 7)),
        "cold_start_score": float(cfg.get("cold_start_score", 1.0)),
    }


def get_trending_config(config: dict) -> dict:
    cfg = config.get("trending", {})
    return {
        "half_life_hours": float(cfg.get("half_life_hours", 24)),
        "refresh_minutes": float(cfg.get("refresh_minutes", 15)),
        "fallback_pool": int(cfg.get("fallback_pool", 100)),
        "rebuild_timeout_seconds": float(cfg.get("rebuild_timeout_seconds", 120)),
    }


def get_personalization_config(config: dict) -> dict:
    cfg = config.get("personalization", {})
    return {
        "max_topics": int(cfg.get("max_topics", 10)),
        "preferences_ttl_days": float(cfg.get("preferences_ttl_days", 30)),
        "viewed_ttl_days": float(cfg.get("viewed_ttl_days", 30)),
        "page_size": int(cfg.get("page_size", 12)),
        "max_page_size": int(cfg.get("max_page_size", 50)),
    }


def get_pipeline_config(config: dict) -> dict:
    cfg = config.get("pipeline", {})
    return {
        "concurrency": int(cfg.get("concurrency", 4)),
        "max_retries": int(cfg.get("max_retries", 2)),
        "base_delay": float(cfg.get("base_delay", 1.0)),
        "ingest_minutes": float(cfg.get("ingest_minutes", 60)),
        "max_items_per_feed": int(cfg.get("max_items_per_feed", 30)),
    }


def get_active_sources(config: dict) -> list[str]:
    """Return list of enabled source names."""
    sources = config.get("sources", {})
    return [name for name, cfg in sources.items() if cfg.get("enabled", False)]
