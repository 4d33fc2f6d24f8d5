"""Tests for the harvest engine walk: probe, fetch, convert, backfill."""

from datetime import timedelta

from windserver.errors import StoreError
from windserver.harvest import HarvestEngine, HarvestOutcome, HarvestState


def _names(stamps):
    return [str(s) for s in stamps]


# ============================================================================
# Walking back over unpublished cycles
# ============================================================================

class TestWalkBack:

    def test_skips_unpublished_cycles(self, engine, fetcher, make_servable, stamps_back):
        fetcher.missing = {str(stamps_back(0)), str(stamps_back(1))}
        make_servable(stamps_back(3))

        report = engine.harvest()

        assert fetcher.calls == _names([stamps_back(0), stamps_back(1), stamps_back(2)])
        assert report.harvested == [stamps_back(2)]
        assert report.failed_fetches == [stamps_back(0), stamps_back(1)]
        assert report.fetch_attempts == 3
        assert report.outcome == HarvestOutcome.UP_TO_DATE
        assert report.stopped_at == stamps_back(3)

    def test_current_cycle_published(self, engine, fetcher, store, make_servable, now_stamp, stamps_back):
        make_servable(stamps_back(1))

        report = engine.harvest()

        assert fetcher.calls == [str(now_stamp)]
        assert store.exists(now_stamp)
        assert not store.raw_exists(now_stamp)
        assert report.outcome == HarvestOutcome.UP_TO_DATE

    def test_idempotent_when_current_exists(self, engine, fetcher, make_servable, now_stamp):
        make_servable(now_stamp)

        report = engine.harvest()

        assert fetcher.calls == []
        assert report.harvested == []
        assert report.outcome == HarvestOutcome.UP_TO_DATE
        assert report.stopped_at == now_stamp

    def test_second_run_fetches_nothing(self, engine, fetcher, make_servable, stamps_back):
        make_servable(stamps_back(2))
        engine.harvest()
        calls_after_first = list(fetcher.calls)

        report = engine.harvest()

        assert fetcher.calls == calls_after_first
        assert report.outcome == HarvestOutcome.UP_TO_DATE


# ============================================================================
# Backfill
# ============================================================================

class TestBackfill:

    def test_fills_gap_down_to_existing(self, engine, fetcher, store, make_servable, stamps_back):
        make_servable(stamps_back(3))

        report = engine.harvest()

        expected = [stamps_back(0), stamps_back(1), stamps_back(2)]
        assert fetcher.calls == _names(expected)
        assert report.harvested == expected
        assert all(store.exists(s) for s in expected)
        assert report.outcome == HarvestOutcome.UP_TO_DATE
        assert report.stopped_at == stamps_back(3)

    def test_explicit_start_in_the_past(self, engine, fetcher, make_servable, stamps_back):
        make_servable(stamps_back(7))

        report = engine.harvest(start=stamps_back(5).time + timedelta(hours=2))

        assert report.start == stamps_back(5)
        assert fetcher.calls == _names([stamps_back(5), stamps_back(6)])
        assert report.outcome == HarvestOutcome.UP_TO_DATE

    def test_backfill_walks_past_unpublished_gap(self, engine, fetcher, make_servable, stamps_back):
        fetcher.missing = {str(stamps_back(2))}
        make_servable(stamps_back(4))

        report = engine.harvest()

        assert report.harvested == [stamps_back(0), stamps_back(1), stamps_back(3)]
        assert report.failed_fetches == [stamps_back(2)]


# ============================================================================
# Horizon
# ============================================================================

class TestHorizon:

    def test_all_fetches_fail(self, store, fetcher, clock, stamps_back):
        # NOW is 14:30; the stamp two intervals back is 14.5h old
        engine = HarvestEngine(store, fetcher, clock=clock, horizon_days=0.5)
        fetcher.missing = {str(stamps_back(i)) for i in range(10)}

        report = engine.harvest()

        assert fetcher.calls == _names([stamps_back(0), stamps_back(1)])
        assert report.outcome == HarvestOutcome.HORIZON_EXHAUSTED
        assert report.stopped_at == stamps_back(2)
        assert report.harvested == []

    def test_empty_store_fills_whole_horizon(self, store, fetcher, clock, stamps_back):
        engine = HarvestEngine(store, fetcher, clock=clock, horizon_days=1)

        report = engine.harvest()

        assert report.harvested == [stamps_back(i) for i in range(4)]
        assert report.outcome == HarvestOutcome.HORIZON_EXHAUSTED
        assert store.count() == 4

    def test_start_older_than_horizon_does_nothing(self, engine, fetcher, clock):
        report = engine.harvest(start=clock.now() - timedelta(days=45))

        assert fetcher.calls == []
        assert report.outcome == HarvestOutcome.HORIZON_EXHAUSTED


# ============================================================================
# Failures
# ============================================================================

class TestFailures:

    def test_conversion_failure_stops_and_drops_raw(self, engine, fetcher, converter, store, now_stamp):
        converter.broken = {str(now_stamp)}

        report = engine.harvest()

        assert report.outcome == HarvestOutcome.CONVERSION_FAILED
        assert report.stopped_at == now_stamp
        assert report.error
        assert not store.raw_exists(now_stamp)
        assert not store.exists(now_stamp)
        assert fetcher.calls == [str(now_stamp)]

    def test_next_run_fetches_again_after_conversion_failure(
            self, engine, fetcher, converter, store, make_servable, now_stamp, stamps_back):
        make_servable(stamps_back(1))
        converter.broken = {str(now_stamp)}
        engine.harvest()

        converter.broken = set()
        report = engine.harvest()

        assert fetcher.calls == [str(now_stamp), str(now_stamp)]
        assert report.harvested == [now_stamp]
        assert report.fetch_attempts == 1
        assert store.exists(now_stamp)

    def test_bad_leftover_raw_does_not_block_backfill(
            self, engine, fetcher, converter, store, make_servable, stamps_back):
        bad = stamps_back(1)
        store.write_raw(bad, b"truncated")
        converter.broken = {str(bad)}
        make_servable(stamps_back(3))

        first = engine.harvest()
        converter.broken = set()
        second = engine.harvest(start=bad.time)

        assert first.outcome == HarvestOutcome.CONVERSION_FAILED
        assert second.outcome == HarvestOutcome.UP_TO_DATE
        assert fetcher.calls == _names([stamps_back(0), bad, stamps_back(2)])
        assert all(store.exists(stamps_back(i)) for i in range(4))

    def test_leftover_raw_is_converted_without_fetch(
            self, engine, fetcher, store, make_servable, now_stamp, stamps_back):
        make_servable(stamps_back(1))
        store.write_raw(now_stamp, b"GRIB from an interrupted cycle")

        report = engine.harvest()

        assert fetcher.calls == []
        assert report.fetch_attempts == 0
        assert report.harvested == [now_stamp]
        assert not store.raw_exists(now_stamp)

    def test_store_failure(self, engine, store, monkeypatch):
        def broken_write(stamp, data):
            raise StoreError("disk full")
        monkeypatch.setattr(store, "write_raw", broken_write)

        report = engine.harvest()

        assert report.outcome == HarvestOutcome.STORE_FAILED
        assert "disk full" in report.error
        assert engine.state == HarvestState.IDLE

    def test_concurrent_invocation_is_busy(self, engine, fetcher):
        engine._lock.acquire()
        try:
            report = engine.harvest()
        finally:
            engine._lock.release()

        assert report.outcome == HarvestOutcome.BUSY
        assert fetcher.calls == []


# ============================================================================
# Listener and report
# ============================================================================

class TestListener:

    def test_events_in_order(self, store, fetcher, clock, make_servable, stamps_back):
        events = []
        engine = HarvestEngine(store, fetcher, clock=clock,
                               listener=lambda event, stamp: events.append((event, str(stamp))))
        fetcher.missing = {str(stamps_back(0))}
        make_servable(stamps_back(2))

        engine.harvest()

        assert events == [
            ("fetch_failed", str(stamps_back(0))),
            ("fetched", str(stamps_back(1))),
            ("converted", str(stamps_back(1))),
        ]

    def test_listener_errors_do_not_abort(self, store, fetcher, clock, make_servable, stamps_back):
        def angry(event, stamp):
            raise RuntimeError("listener down")
        engine = HarvestEngine(store, fetcher, clock=clock, listener=angry)
        make_servable(stamps_back(1))

        report = engine.harvest()

        assert report.outcome == HarvestOutcome.UP_TO_DATE
        assert report.harvested == [stamps_back(0)]

    def test_report_to_dict(self, engine, make_servable, now_stamp, stamps_back):
        make_servable(stamps_back(1))
        data = engine.harvest().to_dict()

        assert data["start"] == str(now_stamp)
        assert data["outcome"] == "up_to_date"
        assert data["harvested"] == [str(now_stamp)]
        assert data["finished_at"] is not None
