"""Periodic triggers for trending refresh and source ingestion.

The core components hold no timing logic; this module registers their
re-runnable entry points as APScheduler interval jobs.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from newshub.config import get_pipeline_config, get_trending_config

logger = logging.getLogger(__name__)


def logged_job(fn: Callable[[], Awaitable[object]], name: str) -> Callable[[], Awaitable[None]]:
    """Wrap a job so a failing run is logged and the next one goes ahead on schedule."""

    async def job() -> None:
        try:
            await fn()
        except Exception:
            logger.exception("Scheduled job '%s' failed; retrying next cycle", name)

    return job


def build_scheduler(service, config: dict) -> AsyncIOScheduler:
    """Ingestion and trending jobs, each run at most once at a time.

    Both fire immediately on start. A trigger that comes due while its job is
    still running is coalesced into the next run rather than queued.
    """
    refresh_minutes = get_trending_config(config)["refresh_minutes"]
    ingest_minutes = get_pipeline_config(config)["ingest_minutes"]
    now = datetime.now(timezone.utc)

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        logged_job(service.ingest_sources, "ingest"),
        IntervalTrigger(minutes=ingest_minutes),
        id="ingest",
        name="ingest",
        max_instances=1,
        coalesce=True,
        next_run_time=now,
    )
    scheduler.add_job(
        logged_job(service.refresh_trending, "trending"),
        IntervalTrigger(minutes=refresh_minutes),
        id="trending",
        name="trending",
        max_instances=1,
        coalesce=True,
        next_run_time=now,
    )
    logger.info(
        "Scheduler configured: trending every %.1f min, ingestion every %.1f min",
        refresh_minutes, ingest_minutes,
    )
    return scheduler


async def run_schedules(service, config: dict, stop: asyncio.Event | None = None) -> None:
    """Run the scheduled jobs until ``stop`` is set."""
    stop = stop or asyncio.Event()
    scheduler = build_scheduler(service, config)
    scheduler.start()
    try:
        await stop.wait()
    finally:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
