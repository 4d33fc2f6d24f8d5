"""
Application state for the wind server API.

Holds the single artifact store and the engine components wired around it.
Components are built lazily from settings; tests inject their own via
``configure()``.
"""
import threading
import logging
from typing import Optional
from dataclasses import dataclass
from datetime import datetime, timezone

from windserver.clock import Clock, SystemClock
from windserver.data.store import ArtifactStore
from windserver.data.gfs import SnapshotFetcher, NomadsFetcher
from windserver.data.converter import SnapshotConverter, Grib2JsonConverter
from windserver.harvest import HarvestEngine
from windserver.lookup import LookupResolver
from windserver.retention import RetentionSweeper
from windserver.scheduler import PollScheduler

logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Engine components sharing one store and one clock."""
    clock: Clock
    store: ArtifactStore
    engine: HarvestEngine
    resolver: LookupResolver
    sweeper: RetentionSweeper
    scheduler: PollScheduler


def build_components(
    settings,
    clock: Optional[Clock] = None,
    fetcher: Optional[SnapshotFetcher] = None,
    converter: Optional[SnapshotConverter] = None,
) -> Components:
    """
    Wire store, harvest engine, resolver, sweeper and scheduler from settings.

    Collaborators default to the NOMADS fetcher and the grib2json converter.
    """
    from api.middleware import metrics_collector

    clock = clock or SystemClock()
    fetcher = fetcher or NomadsFetcher(
        base_url=settings.nomads_url,
        timeout=settings.fetch_timeout_seconds,
        max_attempts=settings.fetch_max_attempts,
    )
    converter = converter or Grib2JsonConverter(
        binary=settings.grib2json_path,
        timeout=settings.convert_timeout_seconds,
    )

    store = ArtifactStore(settings.data_dir, converter=converter)
    engine = HarvestEngine(
        store,
        fetcher,
        clock=clock,
        horizon_days=settings.harvest_horizon_days,
        listener=metrics_collector.record_harvest_event,
    )
    resolver = LookupResolver(store, clock=clock, horizon_days=settings.serving_horizon_days)
    sweeper = RetentionSweeper(store, clock=clock, max_age_days=settings.retention_max_age_days)

    def _record_cycle(harvest_report, sweep_report):
        if harvest_report.outcome is not None:
            metrics_collector.record_harvest_outcome(harvest_report.outcome.value)
        if sweep_report is not None:
            metrics_collector.record_sweep(sweep_report.deleted, sweep_report.remaining)

    scheduler = PollScheduler(
        engine,
        sweeper,
        interval_seconds=settings.poll_interval_seconds,
        on_cycle=_record_cycle,
    )
    return Components(clock, store, engine, resolver, sweeper, scheduler)


class ApplicationState:
    """
    Singleton application state manager.

    Usage:
        state = get_app_state()
        result = state.components.resolver.resolve_latest()
    """

    _instance: Optional['ApplicationState'] = None
    _lock: threading.Lock = threading.Lock()

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True
        self._components: Optional[Components] = None
        self._components_lock = threading.Lock()
        self._startup_time = datetime.now(timezone.utc)

        logger.info("Application state initialized")

    @property
    def components(self) -> Components:
        """Engine components (built from settings on first access)."""
        if self._components is None:
            with self._components_lock:
                if self._components is None:
                    from api.config import settings
                    self._components = build_components(settings)
                    logger.info(f"Artifact store at {self._components.store.root.resolve()}")
        return self._components

    def configure(self, components: Components) -> None:
        """Replace the engine components (tests, CLI)."""
        with self._components_lock:
            self._components = components

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next access starts fresh."""
        with cls._lock:
            cls._instance = None

    @property
    def uptime_seconds(self) -> float:
        """Get application uptime in seconds."""
        return (datetime.now(timezone.utc) - self._startup_time).total_seconds()


def get_app_state() -> ApplicationState:
    """
    Get the application state singleton.

    Returns:
        ApplicationState: The singleton application state instance
    """
    return ApplicationState()
