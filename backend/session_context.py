"""
Session-scoped context: identity, clock and log buffer of one monitoring session.
Every component of a session receives the same context explicitly.
"""

import threading
import uuid
from collections import deque
from datetime import datetime
from typing import Callable, List, Optional
from pydantic import BaseModel

from config import LOG_LEVEL, MAX_LOG_ENTRIES
from models import PostureScore, ReminderEvent
from utils import now_local

LOG_LEVELS = {"VERBOSE": 0, "DEBUG": 1, "INFO": 2, "WARN": 3, "WARNING": 3, "ERROR": 4}


class LogEntry(BaseModel):
    timestamp: datetime
    level: str
    tag: str
    message: str

    @property
    def formatted_time(self) -> str:
        return self.timestamp.strftime("%H:%M:%S.%f")[:-3]

    def format(self) -> str:
        return f"[{self.formatted_time}] {self.level}/{self.tag}: {self.message}"


class SessionContext:
    """
    Owns the per-session log buffer and clock.
    Lives from session start to session stop.
    """

    def __init__(self, clock: Callable[[], datetime] = now_local,
                 log_level: str = LOG_LEVEL, echo: bool = True):
        self.session_id = uuid.uuid4().hex[:8]
        self.clock = clock
        self.started_at = clock()
        self.echo = echo
        self.min_level = LOG_LEVELS.get(log_level.upper(), LOG_LEVELS["INFO"])

        self._entries: deque = deque(maxlen=MAX_LOG_ENTRIES)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        return self.clock()

    def log(self, tag: str, message: str, level: str = "INFO"):
        """Record a log entry and print it when at or above the configured level"""
        level = "WARN" if level == "WARNING" else level
        entry = LogEntry(timestamp=self.clock(), level=level, tag=tag, message=message)

        with self._lock:
            self._entries.append(entry)

        if self.echo and LOG_LEVELS.get(level, 0) >= self.min_level:
            print(f"[{self.session_id}] {entry.format()}")

    def debug(self, tag: str, message: str):
        self.log(tag, message, "DEBUG")

    def info(self, tag: str, message: str):
        self.log(tag, message, "INFO")

    def warning(self, tag: str, message: str):
        self.log(tag, message, "WARN")

    def error(self, tag: str, message: str, error: Optional[Exception] = None):
        if error is not None:
            message = f"{message} ({type(error).__name__}: {error})"
        self.log(tag, message, "ERROR")

    def log_score(self, score: PostureScore):
        self.debug(
            "PostureScore",
            f"Overall: {score.overall:.1f}, Level: {score.level.display_name}, "
            f"Tilt: {score.tilt_score:.1f}, Distance: {score.distance_score:.1f}, "
            f"Position: {score.position_score:.1f}"
        )

    def log_reminder(self, event: ReminderEvent):
        self.info(
            "Reminder",
            f"Level: {event.level.display_name}, Type: {event.type.value}, "
            f"Score: {event.posture_score.overall:.1f}"
        )

    def log_sensor_status(self, sensor_name: str, is_active: bool, data: str = ""):
        status = "ACTIVE" if is_active else "INACTIVE"
        self.debug("Sensors", f"Sensor [{sensor_name}] - {status} {data}".rstrip())

    def get_logs(self, level: Optional[str] = None, tag: Optional[str] = None) -> List[LogEntry]:
        with self._lock:
            entries = list(self._entries)
        if level:
            entries = [e for e in entries if e.level == level.upper()]
        if tag:
            entries = [e for e in entries if e.tag == tag]
        return entries

    def export_logs(self) -> str:
        return "\n".join(entry.format() for entry in self.get_logs())

    def clear_logs(self):
        with self._lock:
            self._entries.clear()
