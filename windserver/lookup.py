"""
Lookup resolver: find the latest snapshot, or the one nearest a time.

Both queries are bounded walks over the time grid that only ask the store
whether a servable artifact exists. They never trigger a harvest and never
block on one.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from windserver.clock import Clock, SystemClock, ensure_utc
from windserver.data.store import ArtifactStore
from windserver.errors import RejectedQuery
from windserver.grid import INTERVAL_HOURS, Stamp, age_days, stamp_of, step

logger = logging.getLogger(__name__)

NO_DATA_WITHIN_LIMIT = "No data within searchLimit"


class LookupStatus(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"


@dataclass
class LookupResult:
    """Terminal state of a lookup walk."""
    status: LookupStatus
    stamp: Optional[Stamp] = None
    message: Optional[str] = None
    probes: int = 0

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND


def parse_time_iso(value: Optional[str]) -> datetime:
    """
    Parse an ISO 8601 query time into an aware UTC datetime.

    Raises:
        RejectedQuery: missing or unparseable value
    """
    if value is None or not str(value).strip():
        raise RejectedQuery("Invalid params, expecting: timeIso=ISO_TIME_STRING")
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except (ValueError, OverflowError):
        raise RejectedQuery(f"Invalid timeIso: {value!r}, expecting: timeIso=ISO_TIME_STRING")


def parse_search_limit(value) -> Optional[float]:
    """Parse the optional ``searchLimit`` (days). Rejects non-positive values."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        limit = float(value)
    except (TypeError, ValueError):
        raise RejectedQuery(f"Invalid searchLimit: {value!r}, expecting a number of days")
    if not math.isfinite(limit) or limit <= 0:
        raise RejectedQuery(f"Invalid searchLimit: {value!r}, must be a positive number of days")
    return limit


class LookupResolver:
    """Resolves latest / nearest queries against the artifact store."""

    def __init__(
        self,
        store: ArtifactStore,
        clock: Clock = None,
        horizon_days: float = 30.0,
        interval_hours: int = INTERVAL_HOURS,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.horizon_days = horizon_days
        self.interval_hours = interval_hours

    def resolve_latest(self, now: Optional[datetime] = None) -> LookupResult:
        """Newest servable stamp at or before ``now`` within the serving horizon."""
        now = ensure_utc(now) if now is not None else self.clock.now()
        cursor = stamp_of(now, self.interval_hours)
        probes = 0
        while age_days(cursor, now) <= self.horizon_days:
            probes += 1
            if self.store.exists(cursor):
                return LookupResult(LookupStatus.FOUND, cursor, probes=probes)
            logger.debug(f"{cursor} does not exist yet, trying previous interval")
            cursor = step(cursor, -1)

        logger.warning(f"No data found within {self.horizon_days} days of {now.isoformat()}")
        return LookupResult(
            LookupStatus.NOT_FOUND,
            message=f"No data within {self.horizon_days:g} days",
            probes=probes,
        )

    def resolve_nearest(
        self,
        target: datetime,
        limit_days: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> LookupResult:
        """
        Servable stamp nearest to ``target``.

        Walks backwards from the target. With ``limit_days`` set, once the
        walk is ``limit_days`` away from the target it turns around once,
        restarting ``limit_days`` later (back at the target's slot), and
        walks forwards until it is ``limit_days`` past the target. Without a
        limit the backward walk is bounded by the serving horizon.

        Raises:
            RejectedQuery: target is not a datetime or too close to the
                calendar edge to walk, or the limit is invalid or longer than
                the serving horizon
        """
        if not isinstance(target, datetime):
            raise RejectedQuery("Invalid params, expecting: timeIso=ISO_TIME_STRING")
        if limit_days is not None and (not math.isfinite(limit_days) or limit_days <= 0):
            raise RejectedQuery(f"Invalid searchLimit: {limit_days}, must be a positive number of days")
        if limit_days is not None and limit_days > self.horizon_days:
            raise RejectedQuery(
                f"Invalid searchLimit: {limit_days:g}, must not exceed {self.horizon_days:g} days"
            )

        now = ensure_utc(now) if now is not None else self.clock.now()
        interval = timedelta(hours=self.interval_hours)
        span = timedelta(days=limit_days if limit_days is not None else self.horizon_days) + interval
        try:
            target = ensure_utc(target)
            earliest, latest = target - span, target + span
        except OverflowError:
            raise RejectedQuery(f"Invalid timeIso: {target.isoformat()} is out of range")
        logger.debug(f"Nearest walk for {target.isoformat()} stays within {earliest:%Y%m%d%H}..{latest:%Y%m%d%H}")

        position = target
        forwards = False
        probes = 0
        while True:
            distance = abs((position - target).total_seconds()) / 86400.0
            if limit_days is not None:
                if distance >= limit_days:
                    if forwards:
                        return LookupResult(LookupStatus.NOT_FOUND, message=NO_DATA_WITHIN_LIMIT, probes=probes)
                    forwards = True
                    position = position + timedelta(days=limit_days)
                    continue
            else:
                stamp = stamp_of(position, self.interval_hours)
                if distance > self.horizon_days or age_days(stamp, now) > self.horizon_days:
                    return LookupResult(
                        LookupStatus.NOT_FOUND,
                        message=f"No data within {self.horizon_days:g} days",
                        probes=probes,
                    )

            stamp = stamp_of(position, self.interval_hours)
            probes += 1
            if self.store.exists(stamp):
                return LookupResult(LookupStatus.FOUND, stamp, probes=probes)
            position = position + interval if forwards else position - interval
