"""Time-decay x engagement trending ranking, rebuilt wholesale each cycle."""

from __future__ import annotations

import asyncio
import logging
import math

from newshub import db
from newshub.cache.keys import TRENDING_PREFIX
from newshub.config import get_trending_config
from newshub.engagement import EngagementTracker
from newshub.models import EngagementRecord, TrendingEntry

logger = logging.getLogger(__name__)


class TrendingRanker:
    """Maintains the global ranking of articles by trending score.

    ``refresh()`` rescans every article and replaces the ranking in a single
    store transaction, so readers see either the previous ranking or the new
    one. Only one rebuild runs at a time; a refresh requested while another is
    in flight is skipped rather than queued.
    """

    def __init__(self, config: dict, store, engagement: EngagementTracker, cache=None):
        cfg = get_trending_config(config)
        self.store = store
        self.engagement = engagement
        self.cache = cache
        self.half_life_seconds = cfg["half_life_hours"] * 3600
        self.rebuild_timeout = cfg["rebuild_timeout_seconds"]
        self._in_flight = False
        self.last_cycle_id: int | None = None
        self._rebuild_task: asyncio.Future | None = None

    def time_decay(self, published_ts: float, now: float) -> float:
        age = max(0.0, now - published_ts)
        return math.exp(-age / self.half_life_seconds)

    def trending_score(
        self, published_ts: float, record: EngagementRecord | None, now: float
    ) -> float:
        return self.time_decay(published_ts, now) * self.engagement.score_record(record)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def refresh(self) -> int | None:
        """Rebuild the ranking. Returns the new cycle ID, or None if skipped or failed.

        The rebuild is bounded by ``rebuild_timeout``. A rebuild that outlives
        the bound is not abandoned: the ranker stays in flight until it
        finishes, and the cycle is published when the transaction commits.
        """
        if self._in_flight:
            logger.info("Trending refresh already in flight, skipping")
            return None
        self._in_flight = True
        self._rebuild_task = asyncio.ensure_future(self._rebuild(self.store.clock()))
        try:
            return await asyncio.wait_for(
                asyncio.shield(self._rebuild_task), timeout=self.rebuild_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Trending rebuild still running after %.1fs; publishing when it commits",
                self.rebuild_timeout,
            )
            return None

    async def _rebuild(self, now: float) -> int | None:
        try:
            cycle_id = await self.store.run_bounded(
                None, db.rebuild_ranking, self.trending_score, now,
            )
        except Exception:
            logger.exception("Trending refresh failed; keeping previous ranking")
            return None
        else:
            self.last_cycle_id = cycle_id
            logger.info("Trending ranking rebuilt (cycle %d)", cycle_id)
            if self.cache is not None:
                await self.cache.invalidate_prefix("request", TRENDING_PREFIX)
            return cycle_id
        finally:
            self._in_flight = False

    async def wait_idle(self) -> None:
        """Wait for a rebuild still running past its bound to finish."""
        if self._rebuild_task is not None:
            await asyncio.shield(self._rebuild_task)

    async def top(self, n: int) -> list[TrendingEntry]:
        """The n highest-scoring entries, ties broken by more recent publish time."""
        if n < 1:
            return []
        return await self.store.run(db.get_trending, n)

    async def top_ids(self, n: int) -> list[str]:
        return [entry.article_id for entry in await self.top(n)]

    async def last_cycle(self) -> dict | None:
        return await self.store.run(db.get_last_cycle)
