"""
Harvest engine: fetch, convert and backfill GFS snapshots.

One invocation walks the time grid backwards from a starting stamp:

    Idle -> Probing(cursor) -> {Fetching | Skipping} -> Converting -> Backfilling -> ... -> Idle

- Probing stops when the cursor is older than the horizon or when a
  servable artifact already exists for it.
- Fetching failures (network, non-2xx) are read as "not published yet":
  the cursor steps back one interval and probing resumes.
- Skipping is taken when a raw download from an earlier cycle is still on
  disk; it goes straight to conversion.
- A conversion failure ends the invocation and drops the raw download;
  the next walk that reaches the stamp fetches it again.
- After a successful conversion the previous interval is checked; if it is
  missing the whole procedure runs again anchored there, which repairs gaps
  left by earlier failed cycles.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from windserver.clock import Clock, SystemClock
from windserver.data.gfs import SnapshotFetcher
from windserver.data.store import ArtifactStore
from windserver.errors import ConversionError, StoreError, TransportError
from windserver.grid import INTERVAL_HOURS, Stamp, age_days, stamp_of, step

logger = logging.getLogger(__name__)


class HarvestState(Enum):
    IDLE = "idle"
    PROBING = "probing"
    FETCHING = "fetching"
    SKIPPING = "skipping"
    CONVERTING = "converting"
    BACKFILLING = "backfilling"


class HarvestOutcome(Enum):
    """Terminal state of one harvest invocation."""
    UP_TO_DATE = "up_to_date"                # reached an interval that is already servable
    HORIZON_EXHAUSTED = "horizon_exhausted"  # harvest complete or large gap in data
    CONVERSION_FAILED = "conversion_failed"
    STORE_FAILED = "store_failed"
    BUSY = "busy"                            # another invocation is in flight


@dataclass
class HarvestReport:
    """Summary of one harvest invocation."""
    start: Stamp
    started_at: datetime
    outcome: Optional[HarvestOutcome] = None
    harvested: List[Stamp] = field(default_factory=list)
    failed_fetches: List[Stamp] = field(default_factory=list)
    fetch_attempts: int = 0
    stopped_at: Optional[Stamp] = None
    error: Optional[str] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "start": str(self.start),
            "outcome": self.outcome.value if self.outcome else None,
            "harvested": [str(s) for s in self.harvested],
            "failed_fetches": [str(s) for s in self.failed_fetches],
            "fetch_attempts": self.fetch_attempts,
            "stopped_at": str(self.stopped_at) if self.stopped_at else None,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


# Event hook: (event_name, stamp). Events: fetch_failed, fetched,
# raw_reused, converted, conversion_failed, store_failed.
HarvestListener = Callable[[str, Stamp], None]


class HarvestEngine:
    """Drives retrieval and conversion of snapshots through the store."""

    def __init__(
        self,
        store: ArtifactStore,
        fetcher: SnapshotFetcher,
        clock: Clock = None,
        horizon_days: float = 30.0,
        interval_hours: int = INTERVAL_HOURS,
        listener: Optional[HarvestListener] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.clock = clock or SystemClock()
        self.horizon_days = horizon_days
        self.interval_hours = interval_hours
        self.listener = listener
        self.state = HarvestState.IDLE
        self._lock = threading.Lock()

    def _emit(self, event: str, stamp: Stamp) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event, stamp)
        except Exception:
            logger.exception(f"Harvest listener failed on {event} {stamp}")

    def harvest(self, start: Optional[datetime] = None) -> HarvestReport:
        """
        Run one harvest invocation.

        Args:
            start: Time to start probing from (defaults to the clock's now).
                The horizon is always measured from the clock's now.

        Returns:
            HarvestReport describing what was fetched and why it stopped
        """
        now = self.clock.now()
        anchor = stamp_of(start if start is not None else now, self.interval_hours)
        report = HarvestReport(start=anchor, started_at=datetime.now(timezone.utc))

        if not self._lock.acquire(blocking=False):
            logger.info("Harvest already in progress, skipping this trigger")
            report.outcome = HarvestOutcome.BUSY
            report.finished_at = datetime.now(timezone.utc)
            return report

        try:
            self._run(anchor, now, report)
        except StoreError as e:
            logger.error(f"Harvest aborted by storage failure: {e}")
            self._emit("store_failed", anchor)
            report.outcome = HarvestOutcome.STORE_FAILED
            report.error = str(e)
        finally:
            self.state = HarvestState.IDLE
            self._lock.release()

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Harvest finished: outcome={report.outcome.value}, "
            f"harvested={[str(s) for s in report.harvested]}, attempts={report.fetch_attempts}"
        )
        return report

    def _run(self, anchor: Stamp, now: datetime, report: HarvestReport) -> None:
        while True:
            cursor = self._probe(anchor, now, report)
            if cursor is None:
                return

            self.state = HarvestState.CONVERTING
            try:
                self.store.convert_raw_to_servable(cursor)
            except ConversionError as e:
                logger.error(f"Conversion failed for {cursor}: {e}")
                # A bad download must be fetched again, not reconverted
                self.store.discard_raw(cursor)
                self._emit("conversion_failed", cursor)
                report.outcome = HarvestOutcome.CONVERSION_FAILED
                report.stopped_at = cursor
                report.error = str(e)
                return

            logger.info(f"Converted file {cursor}")
            self._emit("converted", cursor)
            report.harvested.append(cursor)

            self.state = HarvestState.BACKFILLING
            prev = step(cursor, -1)
            if self.store.exists(prev):
                logger.info(f"Got older {prev}, no need to harvest further")
                report.outcome = HarvestOutcome.UP_TO_DATE
                report.stopped_at = prev
                return

            logger.info(f"Attempting to harvest older data from {prev}")
            anchor = prev

    def _probe(self, anchor: Stamp, now: datetime, report: HarvestReport) -> Optional[Stamp]:
        """
        Walk back from ``anchor`` until a stamp has a raw artifact ready.

        Returns the stamp to convert, or None after recording a terminal
        outcome on ``report``.
        """
        cursor = anchor
        while True:
            self.state = HarvestState.PROBING
            if age_days(cursor, now) > self.horizon_days:
                logger.info(f"Reached limit at {cursor}, harvest complete or large gap in data")
                report.outcome = HarvestOutcome.HORIZON_EXHAUSTED
                report.stopped_at = cursor
                return None

            if self.store.exists(cursor):
                logger.info(f"End reached at {cursor}, not looking further")
                report.outcome = HarvestOutcome.UP_TO_DATE
                report.stopped_at = cursor
                return None

            if self.store.raw_exists(cursor):
                self.state = HarvestState.SKIPPING
                logger.info(f"Raw data for {cursor} already downloaded, skipping fetch")
                self._emit("raw_reused", cursor)
                return cursor

            self.state = HarvestState.FETCHING
            report.fetch_attempts += 1
            try:
                data = self.fetcher.fetch(cursor)
            except TransportError as e:
                logger.warning(f"Fetch failed for {cursor} ({e}), trying previous interval")
                self._emit("fetch_failed", cursor)
                report.failed_fetches.append(cursor)
                cursor = step(cursor, -1)
                continue

            self.store.write_raw(cursor, data)
            self._emit("fetched", cursor)
            return cursor
