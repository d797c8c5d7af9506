"""
Monitoring session: wires sensor fusion, adaptive scoring and reminders
into one ordered pipeline
"""

import threading
from typing import Optional, Callable

from models import (
    TiltReading, VisionReading, StabilityReading, FusedReading, PostureScore,
    ReminderConfig, ReminderEvent, SessionStats, UserAction
)
from posture_scorer import PostureScorer
from reminder_manager import ReminderManager
from sensor_fusion import SensorFusion
from session_context import SessionContext
from config import STATS_REFRESH_SECONDS


class PostureMonitor:
    """
    One monitoring session.

    Every reading goes through fusion, scoring and reminder evaluation
    under a single lock, so readings are handled strictly in arrival order.
    """

    def __init__(self, context: Optional[SessionContext] = None,
                 config: Optional[ReminderConfig] = None,
                 timer_factory: Callable = threading.Timer,
                 stats_interval: float = STATS_REFRESH_SECONDS):
        self.context = context or SessionContext()
        self.fusion = SensorFusion(clock=self.context.clock)
        self.scorer = PostureScorer(self.context)
        self.reminders = ReminderManager(self.context, config, timer_factory)

        # Close the loop: responses update the behavior profile
        self.reminders.on_response_rate = self._update_response_rate

        self.stats_interval = stats_interval
        self.session_stats = SessionStats()
        self.is_monitoring = False

        self._lock = threading.RLock()
        self._stats_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        # Called with every newly accepted score
        self.on_score: Optional[Callable[[PostureScore], None]] = None

    # ==================== LIFECYCLE ====================

    def start(self):
        """Start monitoring; a no-op when already active"""
        with self._lock:
            if self.is_monitoring:
                return

            self.context.info("PostureMonitor", "Starting posture monitoring")
            self.reminders.start()

            self._stop_event = threading.Event()
            self._stats_thread = threading.Thread(target=self._stats_loop, daemon=True)
            self._stats_thread.start()

            self.is_monitoring = True

    def stop(self):
        """Stop monitoring and cancel timers; safe to call repeatedly"""
        with self._lock:
            self._stop_event.set()
            thread = self._stats_thread
            self._stats_thread = None
            self.reminders.stop()

            if self.is_monitoring:
                self.is_monitoring = False
                self.context.info("PostureMonitor", "Posture monitoring stopped")

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2)

    def _stats_loop(self):
        """Refresh the session statistics snapshot periodically"""
        stop_event = self._stop_event
        while not stop_event.wait(self.stats_interval):
            self.refresh_stats()

    def refresh_stats(self) -> SessionStats:
        self.session_stats = self.scorer.get_session_stats()
        return self.session_stats

    # ==================== INGEST ====================

    def ingest_tilt(self, reading: TiltReading) -> Optional[PostureScore]:
        with self._lock:
            return self._process(self.fusion.update_tilt(reading))

    def ingest_vision(self, reading: VisionReading) -> Optional[PostureScore]:
        with self._lock:
            return self._process(self.fusion.update_vision(reading))

    def ingest_stability(self, reading: StabilityReading) -> Optional[PostureScore]:
        with self._lock:
            return self._process(self.fusion.update_stability(reading))

    def _process(self, reading: Optional[FusedReading]) -> Optional[PostureScore]:
        if reading is None or not self.is_monitoring:
            return None

        previous = self.scorer.current_score
        score = self.scorer.process_reading(reading)
        if score is None:
            return None

        if score is not previous and self.on_score:
            self.on_score(score)

        self.reminders.evaluate(score, self.scorer.behavior)
        return score

    # ==================== ACTIONS ====================

    def respond(self, action: UserAction) -> bool:
        """Apply a user action to the active reminder"""
        self.context.debug("PostureMonitor", f"User action: {action.value}")
        with self._lock:
            return self.reminders.respond_with_action(action)

    def _update_response_rate(self, response_rate: float):
        # Also reached from the expiry timer thread
        with self._lock:
            self.scorer.update_response_rate(response_rate)

    def request_check(self) -> Optional[ReminderEvent]:
        """User-requested reminder for the current score"""
        with self._lock:
            score = self.scorer.current_score
            if score is None:
                return None
            return self.reminders.trigger_now(score, self.scorer.behavior)

    def update_config(self, config: ReminderConfig):
        self.reminders.update_config(config)

    def calibrate(self):
        """Drop held channel values so the next reading needs fresh input on every channel"""
        with self._lock:
            self.fusion.reset()
        self.context.info("PostureMonitor", "Sensors calibrated")

    def reset_session(self):
        with self._lock:
            self.scorer.reset_session()
            self.scorer.update_response_rate(self.reminders.response_rate())
            self.session_stats = SessionStats()

    # ==================== REPORT ====================

    def generate_report(self) -> str:
        """Plain-text summary of statistics, behavior and reminder counts"""
        stats = self.scorer.get_session_stats()
        behavior = self.scorer.behavior
        reminder_stats = self.reminders.get_reminder_stats()

        lines = [
            "=== Posture Session Report ===",
            f"Session: {self.context.session_id}",
            f"Generated: {self.context.now():%Y-%m-%d %H:%M:%S}",
            "",
            "Posture Statistics:",
            f"Average Score: {stats.average_score:.1f}",
            f"Best Score: {stats.best_score:.1f}",
            f"Worst Score: {stats.worst_score:.1f}",
            f"Total Measurements: {stats.total_measurements}",
            f"Improvement Trend: {stats.improvement_trend:+.2f}",
            "",
            "User Behavior:",
            f"Session Duration: {behavior.session_duration} updates",
            f"Daily Usage: {behavior.daily_usage} updates",
            f"Average Posture Score: {behavior.average_score:.1f}",
            f"Reminder Response Rate: {int(behavior.reminder_response_rate * 100)}%",
            "",
            "Reminder Statistics:",
            f"Total Reminders: {reminder_stats.total_reminders}",
            f"Acknowledged Reminders: {reminder_stats.acknowledged_reminders}",
            f"Ignored In A Row: {reminder_stats.consecutive_ignored}",
            f"Response Rate: {int(reminder_stats.response_rate * 100)}%",
            f"Average Interval: {int(reminder_stats.average_interval)}s",
            "",
            "=== End Report ===",
        ]
        return "\n".join(lines)
