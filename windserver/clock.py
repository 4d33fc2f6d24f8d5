"""Clock abstraction so harvest and lookup code never read wall time directly."""

from datetime import datetime, timedelta, timezone


class Clock:
    """Source of the current UTC time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """
    Clock pinned to a fixed instant.

    Used by the CLI (``harvest --at``) and by tests to make walks
    deterministic. ``advance`` moves the instant forward.
    """

    def __init__(self, instant: datetime):
        self._instant = ensure_utc(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = ensure_utc(instant)

    def advance(self, **delta) -> None:
        self._instant = self._instant + timedelta(**delta)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
