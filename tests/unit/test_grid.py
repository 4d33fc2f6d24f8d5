"""Tests for the 6-hourly time grid."""

from datetime import datetime, timedelta, timezone

import pytest

from windserver.grid import Stamp, age_days, stamp_of, step


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ============================================================================
# stamp_of
# ============================================================================

class TestStampOf:

    @pytest.mark.parametrize("hour,expected", [
        (0, "00"), (5, "00"), (6, "06"), (11, "06"),
        (12, "12"), (17, "12"), (18, "18"), (23, "18"),
    ])
    def test_truncates_to_cycle_hour(self, hour, expected):
        s = stamp_of(_utc(2024, 3, 7, hour, 59, 59))
        assert s.hour_str == expected
        assert str(s) == f"20240307{expected}"

    def test_hour_always_on_grid(self):
        t = _utc(2024, 1, 1)
        for i in range(0, 24 * 7, 5):
            assert stamp_of(t + timedelta(hours=i, minutes=17)).hour_str in {"00", "06", "12", "18"}

    def test_idempotent(self):
        s = stamp_of(_utc(2024, 2, 29, 20, 45))
        assert stamp_of(s.time) == s

    def test_naive_time_is_utc(self):
        assert stamp_of(datetime(2024, 1, 10, 7, 0)) == stamp_of(_utc(2024, 1, 10, 7, 0))

    def test_aware_non_utc_is_converted(self):
        cet = timezone(timedelta(hours=1))
        # 00:30 CET is 23:30 UTC on the previous day
        s = stamp_of(datetime(2024, 1, 10, 0, 30, tzinfo=cet))
        assert str(s) == "2024010918"

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            stamp_of(_utc(2024, 1, 1), interval_hours=0)


# ============================================================================
# step / ordering
# ============================================================================

class TestStep:

    def test_forward_is_exactly_one_interval(self):
        s = stamp_of(_utc(2024, 1, 10, 14))
        nxt = step(s, 1)
        assert nxt > s
        assert nxt.time - s.time == timedelta(hours=6)

    def test_round_trip(self):
        s = stamp_of(_utc(2024, 1, 10, 14))
        assert step(step(s, 1), -1) == s
        assert step(step(s, -9), 9) == s

    def test_crosses_day_boundary(self):
        s = Stamp.parse("2024010100")
        assert str(step(s, -1)) == "2023123118"
        assert str(step(Stamp.parse("2024022918"), 1)) == "2024030100"

    def test_total_order(self):
        a = Stamp.parse("2024010106")
        b = Stamp.parse("2024010112")
        assert a < b
        assert sorted([b, a]) == [a, b]
        assert max([a, b]) == b


# ============================================================================
# age_days
# ============================================================================

class TestAgeDays:

    def test_fractional_age(self):
        s = Stamp.parse("2024011000")
        assert age_days(s, _utc(2024, 1, 11, 12)) == pytest.approx(1.5)

    def test_future_stamp_is_negative(self):
        s = Stamp.parse("2024011018")
        assert age_days(s, _utc(2024, 1, 10, 12)) < 0


# ============================================================================
# Stamp.parse
# ============================================================================

class TestParse:

    def test_round_trips_rendering(self):
        assert str(Stamp.parse("2023123118")) == "2023123118"

    @pytest.mark.parametrize("text", ["", "2024010", "20240101xx", "2024010103", "2024010124", "2024133100"])
    def test_rejects_invalid(self, text):
        with pytest.raises(ValueError):
            Stamp.parse(text)
