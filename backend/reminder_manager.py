"""
Adaptive reminder scheduling: interval computation, trigger decision,
single active reminder with auto-expiry, and response bookkeeping
"""

import math
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Optional, Callable, Tuple

import reminder_levels
from models import (
    PostureLevel, PostureScore, BehaviorProfile, ReminderConfig, ReminderEvent,
    ReminderResponse, ReminderStats, UserAction
)
from session_context import SessionContext
from utils import to_local, seconds_between
from config import (
    LEVEL_INTERVAL_FACTORS,
    TIME_OF_DAY_MULTIPLIERS,
    REMINDER_HISTORY_SIZE,
    REMINDER_TIMEOUT_SECONDS,
    DISABLE_TEMPORARILY_SECONDS,
)


def time_of_day_multiplier(hour: int) -> float:
    """Reminders are spaced out during likely break and leisure hours"""
    for first_hour, last_hour, multiplier in TIME_OF_DAY_MULTIPLIERS:
        if first_hour <= hour <= last_hour:
            return multiplier
    return 1.0


def behavior_multiplier(behavior: BehaviorProfile) -> float:
    """First matching rule wins"""
    if behavior.improvement_trend > 0.2:
        return 1.3  # improving: less frequent
    elif behavior.improvement_trend < -0.2:
        return 0.7  # declining: more frequent
    elif behavior.reminder_response_rate > 0.8:
        return 1.2  # responsive: less frequent
    elif behavior.reminder_response_rate < 0.3:
        return 0.8  # unresponsive: more frequent
    return 1.0


def session_multiplier(behavior: BehaviorProfile) -> float:
    if behavior.session_duration > 120:
        return 0.8
    elif behavior.session_duration > 60:
        return 0.9
    return 1.0


def calculate_adaptive_interval(score: PostureScore, behavior: BehaviorProfile,
                                config: ReminderConfig, hour: int) -> float:
    """
    Seconds to wait before the next reminder.

    Clamped to [minimum_interval, maximum_interval]; when the two are
    misconfigured (minimum > maximum) the minimum wins.
    """
    if score.level == PostureLevel.CRITICAL:
        base_interval = config.minimum_interval
    else:
        base_interval = config.maximum_interval * LEVEL_INTERVAL_FACTORS[score.level.value]

    interval = base_interval
    if config.adapt_to_behavior:
        interval *= behavior_multiplier(behavior)
    interval *= session_multiplier(behavior)
    interval *= time_of_day_multiplier(hour)

    return max(config.minimum_interval, min(config.maximum_interval, interval))


class ReminderManager:
    """
    Owns reminder timing for one session.

    Idle -> Active -> (resolved by response | expired) -> Idle.
    Only one reminder is active at a time.
    """

    def __init__(self, context: SessionContext, config: Optional[ReminderConfig] = None,
                 timer_factory: Callable = threading.Timer):
        self.context = context
        self.config = config or ReminderConfig()
        self.timer_factory = timer_factory

        self._lock = threading.RLock()
        self._expiry_timer = None

        self.is_running = False
        self.app_in_foreground = True

        self.active_reminder: Optional[ReminderEvent] = None
        self.history: deque = deque(maxlen=REMINDER_HISTORY_SIZE)

        self.last_reminder_time: Optional[datetime] = None
        self.paused_until: Optional[datetime] = None

        self.total_reminders: int = 0
        self.acknowledged_reminders: int = 0
        self.consecutive_ignored: int = 0

        # Presentation hooks
        self.on_reminder: Optional[Callable[[ReminderEvent], None]] = None
        self.on_haptic: Optional[Callable[[Tuple[int, ...]], None]] = None
        self.on_resolved: Optional[Callable[[ReminderEvent, ReminderResponse], None]] = None
        self.on_response_rate: Optional[Callable[[float], None]] = None

    # ==================== LIFECYCLE ====================

    def start(self):
        """Start evaluating; a no-op when already running"""
        with self._lock:
            if self.is_running:
                return
            self.is_running = True
            self.context.info("ReminderManager", "Reminder monitoring started")

    def stop(self):
        """Cancel the expiry timer and clear the active slot; safe to call repeatedly"""
        with self._lock:
            self._cancel_expiry_timer()
            self.active_reminder = None
            if self.is_running:
                self.is_running = False
                self.context.info("ReminderManager", "Reminder monitoring stopped")

    def update_config(self, new_config: ReminderConfig):
        """Replace the whole configuration; takes effect on the next evaluation"""
        with self._lock:
            self.config = new_config
        self.context.info("ReminderManager", "Reminder configuration updated")

    # ==================== DECISION ====================

    def seconds_since_last_reminder(self, now: datetime) -> float:
        # No reminder yet: any interval has passed
        if self.last_reminder_time is None:
            return math.inf
        return seconds_between(self.last_reminder_time, now)

    def should_trigger(self, score: PostureScore, seconds_since_last: float,
                       adaptive_interval: float) -> bool:
        if self.active_reminder is not None:
            return False

        # Critical posture only waits for the minimum interval
        if (score.level == PostureLevel.CRITICAL
                and seconds_since_last >= self.config.minimum_interval):
            return True

        return seconds_since_last >= adaptive_interval

    def evaluate(self, score: PostureScore, behavior: BehaviorProfile) -> Optional[ReminderEvent]:
        """
        Decide whether the current score warrants a reminder and fire it.

        Returns:
            The new ReminderEvent, or None
        """
        with self._lock:
            config = self.config
            if not self.is_running or not config.enabled:
                return None

            now = self.context.now()
            if self.paused_until is not None and now < self.paused_until:
                return None

            seconds_since_last = self.seconds_since_last_reminder(now)
            interval = calculate_adaptive_interval(score, behavior, config, to_local(now).hour)

            if not self.should_trigger(score, seconds_since_last, interval):
                return None

            return self._trigger(score, behavior, config, now, seconds_since_last)

    def trigger_now(self, score: PostureScore, behavior: BehaviorProfile) -> Optional[ReminderEvent]:
        """User-requested posture check; still respects the single active reminder"""
        with self._lock:
            if self.active_reminder is not None:
                return None
            now = self.context.now()
            return self._trigger(score, behavior, self.config, now,
                                 self.seconds_since_last_reminder(now), user_triggered=True)

    def _trigger(self, score: PostureScore, behavior: BehaviorProfile, config: ReminderConfig,
                 now: datetime, seconds_since_last: float,
                 user_triggered: bool = False) -> ReminderEvent:
        level = reminder_levels.determine_reminder_level(
            score, behavior, self.consecutive_ignored, seconds_since_last
        )
        reminder_type = reminder_levels.determine_reminder_type(
            level, config, self.app_in_foreground, to_local(now).hour
        )
        message = reminder_levels.generate_reminder_message(score, level, behavior)

        event = ReminderEvent(
            level=level,
            type=reminder_type,
            message=message,
            posture_score=score,
            created_at=now,
            is_user_triggered=user_triggered
        )

        self.active_reminder = event
        self.last_reminder_time = now
        self.total_reminders += 1
        self.history.append(event)

        self._start_expiry_timer(event)
        self.context.log_reminder(event)

        if self.on_haptic:
            self.on_haptic(level.vibration_pattern)
        if self.on_reminder:
            self.on_reminder(event)

        return event

    # ==================== RESPONSES ====================

    def _start_expiry_timer(self, event: ReminderEvent):
        self._cancel_expiry_timer()
        timer = self.timer_factory(REMINDER_TIMEOUT_SECONDS, self._on_expiry, args=(event,))
        timer.daemon = True
        timer.start()
        self._expiry_timer = timer

    def _cancel_expiry_timer(self):
        if self._expiry_timer is not None:
            self._expiry_timer.cancel()
            self._expiry_timer = None

    def _on_expiry(self, event: ReminderEvent):
        """Nobody answered within the timeout: count it as ignored"""
        resolved = self.handle_response(ReminderResponse(
            acknowledged=False,
            ignored=True,
            response_time=REMINDER_TIMEOUT_SECONDS,
            user_action=None
        ), event=event)
        if resolved:
            self.context.debug("ReminderManager", "Reminder expired without response")

    def handle_response(self, response: ReminderResponse,
                        event: Optional[ReminderEvent] = None) -> bool:
        """
        Resolve the active reminder.

        Args:
            response: The user's (or the timeout's) reaction
            event: Only resolve if this is still the active reminder

        Returns:
            False when there was nothing to resolve
        """
        with self._lock:
            active = self.active_reminder
            if active is None or (event is not None and active is not event):
                return False

            self.active_reminder = None
            self._cancel_expiry_timer()

            action = response.user_action
            if response.acknowledged or action == UserAction.CORRECTED_POSTURE:
                self.acknowledged_reminders += 1
                self.consecutive_ignored = 0
            elif response.ignored or action == UserAction.DISMISSED:
                self.consecutive_ignored += 1

            if action == UserAction.DISABLED_TEMPORARILY:
                self.paused_until = self.context.now() + timedelta(seconds=DISABLE_TEMPORARILY_SECONDS)
                self.context.info("ReminderManager", f"Reminders paused until {self.paused_until:%H:%M}")

            response_rate = self.response_rate()
            self.context.debug(
                "ReminderManager",
                f"Response: action={action.value if action else None}, "
                f"ignored streak={self.consecutive_ignored}, rate={response_rate:.2f}"
            )

        # Listeners run outside the lock; they may take their own
        if self.on_response_rate:
            self.on_response_rate(response_rate)
        if self.on_resolved:
            self.on_resolved(active, response)

        return True

    def respond_with_action(self, action: UserAction) -> bool:
        """Translate a user action on the active reminder into a response"""
        with self._lock:
            event = self.active_reminder
            if event is None:
                return False
            response = ReminderResponse(
                acknowledged=action == UserAction.CORRECTED_POSTURE,
                ignored=action == UserAction.DISMISSED,
                response_time=seconds_between(event.created_at, self.context.now()),
                user_action=action
            )

        return self.handle_response(response, event=event)

    # ==================== STATISTICS ====================

    def response_rate(self) -> float:
        if self.total_reminders == 0:
            return 0.0
        return self.acknowledged_reminders / self.total_reminders

    @property
    def reminder_history(self) -> Tuple[ReminderEvent, ...]:
        return tuple(self.history)

    def calculate_average_interval(self) -> float:
        """Mean seconds between consecutive reminders in the history"""
        history = self.reminder_history
        if len(history) < 2:
            return 0.0

        intervals = [
            seconds_between(previous.created_at, current.created_at)
            for previous, current in zip(history, history[1:])
        ]
        return sum(intervals) / len(intervals)

    def get_reminder_stats(self) -> ReminderStats:
        return ReminderStats(
            total_reminders=self.total_reminders,
            acknowledged_reminders=self.acknowledged_reminders,
            response_rate=self.response_rate(),
            consecutive_ignored=self.consecutive_ignored,
            average_interval=self.calculate_average_interval()
        )
