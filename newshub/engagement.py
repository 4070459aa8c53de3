"""Per-article interaction counters with bounded retention."""

from __future__ import annotations

import logging

from newshub import db
from newshub.config import get_engagement_config
from newshub.errors import ValidationError
from newshub.models import ACTIONS, EngagementRecord

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class EngagementTracker:
    """Records view/like/share events and turns them into an engagement score."""

    def __init__(self, config: dict, store):
        cfg = get_engagement_config(config)
        self.store = store
        self.weights = cfg["weights"]
        self.retention_seconds = cfg["retention_days"] * SECONDS_PER_DAY
        self.cold_start_score = cfg["cold_start_score"]

    async def record_event(self, article_id: str, action: str) -> None:
        """Increment one counter. Creates the record if absent and resets its retention."""
        if action not in ACTIONS:
            raise ValidationError(f"Unknown engagement action: {action!r}")
        now = self.store.clock()
        await self.store.run(
            db.increment_engagement, article_id, action, now, now + self.retention_seconds,
        )
        logger.debug("Recorded %s for article %s", action, article_id)

    async def get(self, article_id: str) -> EngagementRecord | None:
        """The live record, or None if it never existed or has expired."""
        return await self.store.run(db.get_engagement, article_id, self.store.clock())

    def score_record(self, record: EngagementRecord | None) -> float:
        if record is None:
            return self.cold_start_score
        return (
            self.weights["view"] * record.view_count
            + self.weights["like"] * record.like_count
            + self.weights["share"] * record.share_count
        )

    async def score(self, article_id: str) -> float:
        return self.score_record(await self.get(article_id))
