"""Retention sweep: drop snapshots older than the configured max age."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from windserver.clock import Clock, SystemClock
from windserver.data.store import ArtifactStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    deleted: int
    raw_deleted: int
    remaining: int
    swept_at: datetime

    def to_dict(self) -> dict:
        return {
            "deleted": self.deleted,
            "raw_deleted": self.raw_deleted,
            "remaining": self.remaining,
            "swept_at": self.swept_at.isoformat(),
        }


class RetentionSweeper:
    """Deletes servable artifacts (and orphaned raw downloads) past ``max_age_days``."""

    def __init__(self, store: ArtifactStore, clock: Clock = None, max_age_days: float = 14.0):
        if max_age_days <= 0:
            raise ValueError("max_age_days must be positive")
        self.store = store
        self.clock = clock or SystemClock()
        self.max_age_days = max_age_days

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = now if now is not None else self.clock.now()
        max_age = timedelta(days=self.max_age_days)

        deleted = self.store.delete_if_older_than(max_age, now)
        raw_deleted = self.store.delete_raw_older_than(max_age, now)
        remaining = self.store.count()

        report = SweepReport(
            deleted=deleted,
            raw_deleted=raw_deleted,
            remaining=remaining,
            swept_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Retention sweep: deleted={deleted} raw_deleted={raw_deleted} "
            f"remaining={remaining} (max age {self.max_age_days:g} days)"
        )
        return report
