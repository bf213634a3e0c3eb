"""
Shared fixtures: a throwaway SQLite store, a controllable clock and a
location source that records what the recorder asked of it.
"""

import pytest

from tracklog.recording.config import RecorderConfig
from tracklog.recording.session import RecordingSession
from tracklog.recording.types import Fix
from tracklog.storage.dao import DAO

T0 = 1_700_000_000_000


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeSource:
    """Location source that keeps every registration request."""

    def __init__(self) -> None:
        self.listener = None
        self.registrations: list[tuple[int, float]] = []
        self.unregistrations = 0

    def register(self, listener, interval_ms, min_distance):
        self.listener = listener
        self.registrations.append((interval_ms, min_distance))

    def unregister(self, listener):
        if self.listener == listener:
            self.listener = None
        self.unregistrations += 1

    def is_registered(self, listener):
        return self.listener is not None and self.listener == listener

    def drop(self):
        """Simulate the source silently forgetting its listener."""
        self.listener = None

    def emit(self, fix):
        assert self.listener is not None, "no listener registered"
        return self.listener(fix)


class FakeWakeLock:
    def __init__(self) -> None:
        self.held = 0

    def acquire(self):
        self.held += 1

    def release(self):
        self.held -= 1


def make_fix(lat: float, lon: float, time: int, accuracy: float = 5.0, **kwargs) -> Fix:
    return Fix(latitude=lat, longitude=lon, accuracy=accuracy, time=time, **kwargs)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "tracklog_test.sqlite")


@pytest.fixture
def dao(db_path):
    d = DAO(db_path)
    yield d
    d.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def wake_lock():
    return FakeWakeLock()


@pytest.fixture
def config():
    # watchdog effectively off unless a test asks for it
    return RecorderConfig(watchdog_initial_delay=3600.0, watchdog_period=3600.0)


@pytest.fixture
def make_session(dao, source, clock, config, wake_lock):
    """Build sessions over the shared store; all are shut down at teardown."""
    sessions = []

    def _make(**kwargs):
        kwargs.setdefault("config", config)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("wake_lock", wake_lock)
        s = RecordingSession(kwargs.pop("dao", dao), kwargs.pop("source", source), **kwargs)
        sessions.append(s)
        return s

    yield _make
    for s in sessions:
        s.watchdog.cancel()
