import sys
import threading
from pathlib import Path
from typing import List, Optional

import pytest

# Ensure project packages are importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from focus_app.timer.engine import FocusTimerEngine
from focus_app.timer.models import TimerConfig, TrackingResult
from focus_app.timer.notifications import NotificationDispatcher
from focus_app.timer.persistence import PersistenceGateway
from focus_app.timer.storage import KeyValueStore
from focus_app.timer.tracking import SessionLinker


class ManualClock:
    """Clock stand-in; tests drive the engine with engine.tick()."""

    def __init__(self) -> None:
        self.running = False
        self.starts = 0
        self.stops = 0

    def start(self, on_tick) -> bool:
        if self.running:
            return False
        self.running = True
        self.starts += 1
        return True

    def stop(self, wait: bool = False) -> None:
        if self.running:
            self.stops += 1
        self.running = False

    def owns_current_thread(self) -> bool:
        return False


class FakeTracker:
    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.started: List[tuple] = []
        self.ended: List[str] = []
        self.gate: Optional[threading.Event] = None
        self._counter = 0
        self._lock = threading.Lock()

    def start_session(self, session_type, task_id=None):
        if self.gate is not None:
            self.gate.wait(5)
        if not self.available:
            return TrackingResult(ok=False, error="offline")
        with self._lock:
            self._counter += 1
            session_id = f"s{self._counter}"
            self.started.append((session_id, session_type, task_id))
        return TrackingResult(ok=True, session_id=session_id)

    def end_session(self, session_id):
        with self._lock:
            self.ended.append(session_id)
        return TrackingResult(ok=True, session_id=session_id)


class FakeChannel:
    def __init__(self, granted: bool = True) -> None:
        self.granted = granted
        self.permission_requests = 0
        self.shown: List[tuple] = []
        self.sounds: List[str] = []

    def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.granted

    def show(self, title, body):
        self.shown.append((title, body))

    def play_sound(self, path):
        self.sounds.append(path)


@pytest.fixture
def store(tmp_path):
    return KeyValueStore(tmp_path / "focus.db")


@pytest.fixture
def tracker():
    return FakeTracker()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def make_engine(store, tracker, channel):
    engines = []

    def _make(config: Optional[TimerConfig] = None, tracker_override=tracker, user_id=None):
        engine = FocusTimerEngine(
            PersistenceGateway(store, user_id=user_id),
            linker=SessionLinker(tracker_override),
            dispatcher=NotificationDispatcher(channel),
            clock=ManualClock(),
            config=config,
        )
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.shutdown()


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def offline_tracker():
    return FakeTracker(available=False)
