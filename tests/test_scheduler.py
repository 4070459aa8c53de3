"""Tests for periodic job scheduling."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from newshub.scheduler import build_scheduler, logged_job, run_schedules


@pytest.mark.asyncio
async def test_logged_job_swallows_and_logs_failure(caplog):
    job = logged_job(AsyncMock(side_effect=RuntimeError("boom")), "ingest")
    with caplog.at_level(logging.ERROR, logger="newshub.scheduler"):
        await job()
    assert "Scheduled job 'ingest' failed" in caplog.text


@pytest.mark.asyncio
async def test_logged_job_runs_function():
    fn = AsyncMock()
    await logged_job(fn, "trending")()
    fn.assert_awaited_once()


@pytest.mark.asyncio
async def test_jobs_are_coalesced_single_instance(sample_config):
    sample_config["trending"] = {"refresh_minutes": 5}
    sample_config["pipeline"]["ingest_minutes"] = 30
    service = MagicMock()
    service.ingest_sources = AsyncMock()
    service.refresh_trending = AsyncMock()

    jobs = {job.id: job for job in build_scheduler(service, sample_config).get_jobs()}

    assert set(jobs) == {"ingest", "trending"}
    assert jobs["trending"].trigger.interval == timedelta(minutes=5)
    assert jobs["ingest"].trigger.interval == timedelta(minutes=30)
    for job in jobs.values():
        assert job.max_instances == 1
        assert job.coalesce is True


@pytest.mark.asyncio
async def test_run_schedules_drives_both_jobs(sample_config):
    stop = asyncio.Event()
    service = MagicMock()
    service.refresh_trending = AsyncMock()

    async def ingest():
        await asyncio.sleep(0.01)
        stop.set()

    service.ingest_sources = AsyncMock(side_effect=ingest)

    await asyncio.wait_for(run_schedules(service, sample_config, stop), timeout=5)
    service.ingest_sources.assert_awaited_once()
    service.refresh_trending.assert_awaited_once()
