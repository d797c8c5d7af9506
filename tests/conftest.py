"""
Shared fixtures: a controllable clock and timer so scheduling runs deterministically
"""

import os
import tempfile
from datetime import datetime, timedelta

# Must be set before any backend module reads the configuration
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(
    tempfile.gettempdir(), f"posture_monitor_test_{os.getpid()}.db"
)
os.environ["SERIAL_ENABLED"] = "false"

import pytest

from models import (
    FusedReading, HeadPosition, PostureLevel, PostureScore, BehaviorProfile
)
from session_context import SessionContext
from utils import LOCAL_TZ


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float):
        self.current = self.current + timedelta(seconds=seconds)


class FakeTimer:
    """Stands in for threading.Timer; fires only through fire()"""

    def __init__(self, interval, function, args=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


class TimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=None):
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> FakeTimer:
        return self.timers[-1]


@pytest.fixture
def clock():
    # A Monday morning, inside work hours
    return FakeClock(LOCAL_TZ.localize(datetime(2024, 3, 4, 10, 0, 0)))


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def context(clock):
    return SessionContext(clock=clock, echo=False)


@pytest.fixture
def neutral_behavior():
    """Profile that triggers none of the behavior adjustments"""
    return BehaviorProfile(reminder_response_rate=0.5)


@pytest.fixture
def make_reading(clock):
    def _make_reading(tilt=0.0, distance=50.0, x=0.0, y=0.0, rotation=0.0,
                      confidence=0.9, face_detected=True, device_stable=True):
        return FusedReading(
            tilt_angle=tilt,
            head_distance=distance,
            head_position=HeadPosition(x=x, y=y, rotation=rotation),
            confidence=confidence,
            face_detected=face_detected,
            device_stable=device_stable,
            timestamp=clock()
        )
    return _make_reading


@pytest.fixture
def make_score(clock):
    def _make_score(overall=50.0, level=PostureLevel.FAIR, recommendations=None):
        return PostureScore(
            overall=overall,
            tilt_score=overall,
            distance_score=overall,
            position_score=overall,
            level=level,
            recommendations=recommendations or ["Time to sit up"],
            timestamp=clock()
        )
    return _make_score
