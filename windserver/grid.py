"""
Fixed-interval time grid for GFS snapshots.

GFS runs four times a day (00, 06, 12, 18 UTC). Every snapshot is keyed by
a canonical stamp: the UTC time truncated to the nearest lower interval
boundary, rendered as ``YYYYMMDDHH``.

Usage:
    from windserver.grid import stamp_of, step, age_days

    s = stamp_of(datetime.now(timezone.utc))
    prev = step(s, -1)
    print(str(prev), age_days(prev, now))
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from windserver.clock import ensure_utc

# GFS cycle spacing
INTERVAL_HOURS = 6

_STAMP_RE = re.compile(r"^(\d{8})(\d{2})$")


@dataclass(frozen=True, order=True)
class Stamp:
    """Canonical snapshot time-stamp (aware UTC, aligned to the grid)."""
    time: datetime
    interval_hours: int = INTERVAL_HOURS

    def __str__(self) -> str:
        return f"{self.time:%Y%m%d}{self.time.hour:02d}"

    @property
    def date_str(self) -> str:
        """Date part, e.g. ``20240101``."""
        return f"{self.time:%Y%m%d}"

    @property
    def hour_str(self) -> str:
        """Zero-padded cycle hour, e.g. ``06``."""
        return f"{self.time.hour:02d}"

    @classmethod
    def parse(cls, text: str, interval_hours: int = INTERVAL_HOURS) -> "Stamp":
        """
        Parse a ``YYYYMMDDHH`` stamp.

        Raises:
            ValueError: if the text is malformed or not on the grid
        """
        m = _STAMP_RE.match(text)
        if not m:
            raise ValueError(f"Invalid stamp: {text!r}")
        day = datetime.strptime(m.group(1), "%Y%m%d").replace(tzinfo=timezone.utc)
        hour = int(m.group(2))
        if hour >= 24 or hour % interval_hours:
            raise ValueError(f"Stamp hour {hour:02d} is not on the {interval_hours}h grid")
        return cls(day + timedelta(hours=hour), interval_hours)


def stamp_of(t: datetime, interval_hours: int = INTERVAL_HOURS) -> Stamp:
    """Truncate ``t`` to the lower interval boundary. Naive times are UTC."""
    if interval_hours <= 0:
        raise ValueError("interval_hours must be positive")
    t = ensure_utc(t)
    hour = (t.hour // interval_hours) * interval_hours
    aligned = t.replace(hour=hour, minute=0, second=0, microsecond=0)
    return Stamp(aligned, interval_hours)


def step(s: Stamp, delta_intervals: int) -> Stamp:
    """Move ``s`` by whole intervals (negative = backwards)."""
    return Stamp(s.time + timedelta(hours=s.interval_hours * delta_intervals), s.interval_hours)


def age_days(s: Stamp, now: datetime) -> float:
    """Fractional days between ``s`` and ``now``; negative for future stamps."""
    return (ensure_utc(now) - s.time).total_seconds() / 86400.0
