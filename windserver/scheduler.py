"""
Periodic trigger for harvest + retention.

One asyncio task runs a cycle (harvest, then sweep) immediately on start
and then every ``interval_seconds``. The blocking work runs in a worker
thread so HTTP queries keep being served. ``stop()`` lets the in-flight
cycle finish before returning.
"""

import asyncio
import logging
import threading
from typing import Callable, Optional

from windserver.harvest import HarvestEngine, HarvestReport
from windserver.retention import RetentionSweeper, SweepReport
from windserver.errors import StoreError

logger = logging.getLogger(__name__)


class PollScheduler:
    """Runs harvest + sweep cycles on a fixed period."""

    def __init__(
        self,
        engine: HarvestEngine,
        sweeper: RetentionSweeper,
        interval_seconds: float = 900.0,
        on_cycle: Optional[Callable[[HarvestReport, Optional[SweepReport]], None]] = None,
    ):
        self.engine = engine
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds
        self.on_cycle = on_cycle
        self.cycles = 0
        self.last_harvest: Optional[HarvestReport] = None
        self.last_sweep: Optional[SweepReport] = None

        self._report_lock = threading.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    # -- one cycle ---------------------------------------------------------

    def run_cycle(self):
        """Harvest then sweep. Returns (HarvestReport, SweepReport or None)."""
        harvest_report = self.engine.harvest()

        sweep_report = None
        try:
            sweep_report = self.sweeper.sweep()
        except StoreError as e:
            logger.error(f"Retention sweep failed: {e}")

        with self._report_lock:
            self.cycles += 1
            self.last_harvest = harvest_report
            if sweep_report is not None:
                self.last_sweep = sweep_report

        if self.on_cycle is not None:
            self.on_cycle(harvest_report, sweep_report)
        return harvest_report, sweep_report

    def status(self) -> dict:
        with self._report_lock:
            return {
                "running": self.is_running,
                "interval_seconds": self.interval_seconds,
                "cycles": self.cycles,
                "harvest_state": self.engine.state.value,
                "last_harvest": self.last_harvest.to_dict() if self.last_harvest else None,
                "last_sweep": self.last_sweep.to_dict() if self.last_sweep else None,
            }

    # -- background loop ---------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        logger.info(f"Poll scheduler started (every {self.interval_seconds:g}s)")
        while not self._stop_event.is_set():
            try:
                await asyncio.to_thread(self.run_cycle)
            except Exception:
                logger.exception("Harvest cycle crashed, waiting for next trigger")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Poll scheduler stopped")

    def start(self) -> asyncio.Task:
        """Start the loop on the running event loop."""
        if self.is_running:
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        return self._task

    async def stop(self) -> None:
        """Signal the loop to exit and wait for the current cycle to finish."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
