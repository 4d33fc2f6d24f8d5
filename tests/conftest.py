"""
Shared pytest fixtures for wind server tests.

Environment is set before any api.* import so settings never point the
store at the working directory and the poll scheduler never starts.
"""

import json
import os
import tempfile
from datetime import datetime, timezone

import pytest

# ---------------------------------------------------------------------------
# Section 1: Environment setup (before ANY api.* imports)
# ---------------------------------------------------------------------------
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("POLL_ENABLED", "false")
os.environ.setdefault("WHITELIST", "http://localhost:3000")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="windserver-test-"))

from windserver.clock import FrozenClock  # noqa: E402
from windserver.data.converter import SnapshotConverter  # noqa: E402
from windserver.data.gfs import SnapshotFetcher  # noqa: E402
from windserver.data.store import ArtifactStore  # noqa: E402
from windserver.errors import ConversionError, TransportError  # noqa: E402
from windserver.grid import Stamp, stamp_of, step  # noqa: E402
from windserver.harvest import HarvestEngine  # noqa: E402
from windserver.lookup import LookupResolver  # noqa: E402
from windserver.retention import RetentionSweeper  # noqa: E402

# 2024-01-10 14:30 UTC -> current stamp 2024011012
NOW = datetime(2024, 1, 10, 14, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Section 2: Fake collaborators
# ---------------------------------------------------------------------------


class FakeFetcher(SnapshotFetcher):
    """Returns fake GRIB bytes; fails for stamps listed in ``missing``."""

    def __init__(self, missing=()):
        self.missing = {str(s) for s in missing}
        self.calls = []

    def fetch(self, stamp: Stamp) -> bytes:
        self.calls.append(str(stamp))
        if str(stamp) in self.missing:
            raise TransportError(stamp, "HTTP 404", status=404)
        return b"GRIB" + str(stamp).encode() * 20


class FakeConverter(SnapshotConverter):
    """Writes a small JSON document; fails for stamps listed in ``broken``."""

    def __init__(self, broken=()):
        self.broken = {str(s) for s in broken}
        self.calls = []

    def convert(self, stamp, source, destination) -> None:
        self.calls.append(str(stamp))
        if str(stamp) in self.broken:
            raise ConversionError(stamp, "grib2json exited with 1")
        destination.write_text(json.dumps([{"header": {"refTime": str(stamp)}, "data": [1.0]}]))


# ---------------------------------------------------------------------------
# Section 3: Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def now_stamp():
    return stamp_of(NOW)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def converter():
    return FakeConverter()


@pytest.fixture
def store(tmp_path, converter):
    return ArtifactStore(tmp_path / "data", converter=converter)


@pytest.fixture
def make_servable(store):
    """Create servable artifacts directly, bypassing harvest."""
    def _make(*stamps):
        for s in stamps:
            store.servable_path(s).write_text(json.dumps({"stamp": str(s)}))
    return _make


@pytest.fixture
def engine(store, fetcher, clock):
    return HarvestEngine(store, fetcher, clock=clock, horizon_days=30)


@pytest.fixture
def resolver(store, clock):
    return LookupResolver(store, clock=clock, horizon_days=30)


@pytest.fixture
def sweeper(store, clock):
    return RetentionSweeper(store, clock=clock, max_age_days=14)


# ---------------------------------------------------------------------------
# Section 4: HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def components(tmp_path, clock, fetcher, converter):
    from api.config import settings
    from api.state import build_components

    test_settings = settings.model_copy(update={"data_dir": str(tmp_path / "served")})
    return build_components(test_settings, clock=clock, fetcher=fetcher, converter=converter)


@pytest.fixture
def client(components):
    """FastAPI TestClient over injected components (no real NOMADS or grib2json)."""
    from fastapi.testclient import TestClient
    from api.main import app
    from api.state import get_app_state

    get_app_state().configure(components)
    with TestClient(app) as test_client:
        yield test_client
    get_app_state().configure(None)


@pytest.fixture
def stamps_back(now_stamp):
    """Stamp ``n`` intervals before the current one."""
    def _back(n: int) -> Stamp:
        return step(now_stamp, -n)
    return _back
