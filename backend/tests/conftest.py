"""
Pytest configuration for the file status tracker test suite.
"""

import os
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add backend to Python path for test imports
backend_path = Path(__file__).parent.parent
if str(backend_path) not in sys.path:
    sys.path.insert(0, str(backend_path))

from filestatus.persistence.manager import StatusStore
from filestatus.watchfolders.engine import ReconciliationEngine
from filestatus.watchfolders.models import MonitoredPaths, WatchedLocation
from filestatus.watchfolders.scanner import DirectorySnapshotter
from filestatus.watchfolders.stability import FileStabilityChecker


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests that wait on real timers or threads"
    )


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def make_file(directory: Path, name: str, content: str = "data", age: float = 3600.0) -> Path:
    """Create a file whose mtime lies `age` seconds in the past (settled by default)."""
    path = directory / name
    path.write_text(content)
    if age:
        stamp = time.time() - age
        os.utime(path, (stamp, stamp))
    return path


class FakeTimer:
    """Stand-in for threading.Timer that only fires when the test says so."""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.callback()


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, callback):
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    def live(self, interval=None):
        return [
            t for t in self.timers
            if t.started and not t.cancelled and not t.fired
            and (interval is None or t.interval == interval)
        ]

    def fire_all(self, interval=None) -> int:
        timers = self.live(interval)
        for timer in timers:
            timer.fire()
        return len(timers)


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

GRACE_SECONDS = 1.0
TIMEOUT_SECONDS = 24 * 3600.0


@pytest.fixture
def store(tmp_path: Path) -> StatusStore:
    return StatusStore(db_path=str(tmp_path / "filestatus.db"))


@pytest.fixture
def store_factory(tmp_path: Path):
    """Opens additional empty stores in the same temporary directory."""
    counter = iter(range(1, 1000))

    def factory() -> StatusStore:
        return StatusStore(db_path=str(tmp_path / f"extra-{next(counter)}.db"))

    return factory


@pytest.fixture
def import_dir(tmp_path: Path) -> Path:
    path = tmp_path / "import"
    path.mkdir()
    return path


@pytest.fixture
def failed_dir(tmp_path: Path) -> Path:
    path = tmp_path / "failed"
    path.mkdir()
    return path


@pytest.fixture
def configured_store(store: StatusStore, import_dir: Path, failed_dir: Path) -> StatusStore:
    store.update_monitored_paths(MonitoredPaths(
        import_locations=[WatchedLocation(id="import-path", name="Import", path=str(import_dir))],
        failed=WatchedLocation(id="failed-path", name="Failed", path=str(failed_dir)),
    ))
    return store


@pytest.fixture
def timer_factory() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(configured_store, timer_factory, clock) -> ReconciliationEngine:
    """Engine with fake timers; files created with make_file() are settled."""
    return ReconciliationEngine(
        configured_store,
        snapshotter=DirectorySnapshotter(stability_checker=FileStabilityChecker(quiet_period=3.0)),
        grace_seconds=GRACE_SECONDS,
        timer_factory=timer_factory,
        clock=clock,
    )
