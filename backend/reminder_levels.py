"""
Escalation policy: reminder level, presentation type and message text
"""

from typing import Optional, Tuple

from models import (
    PostureLevel, PostureScore, BehaviorProfile, ReminderLevel, ReminderType,
    ReminderConfig, REMINDER_LEVEL_ORDER
)
from config import (
    STALE_REMINDER_MINUTES,
    RAPID_REMINDER_MINUTES,
    WORK_HOURS_START,
    WORK_HOURS_END,
    STRICT_AVERAGE,
    TREND_BONUS_THRESHOLD,
)

BASE_LEVELS = {
    PostureLevel.EXCELLENT: ReminderLevel.GENTLE,
    PostureLevel.GOOD: ReminderLevel.GENTLE,
    PostureLevel.FAIR: ReminderLevel.GENTLE,
    PostureLevel.POOR: ReminderLevel.MODERATE,
    PostureLevel.CRITICAL: ReminderLevel.STRONG,
}

BASE_MESSAGES = {
    PostureLevel.CRITICAL: "Your posture needs immediate attention!",
    PostureLevel.POOR: "Please check your posture",
    PostureLevel.FAIR: "Time for a posture check",
    PostureLevel.GOOD: "Gentle posture reminder",
    PostureLevel.EXCELLENT: "Gentle posture reminder",
}


def escalate_level(current: ReminderLevel, steps: int) -> ReminderLevel:
    """Move up the level order by steps, stopping at the most intrusive level"""
    index = REMINDER_LEVEL_ORDER.index(current) + steps
    index = max(0, min(index, len(REMINDER_LEVEL_ORDER) - 1))
    return REMINDER_LEVEL_ORDER[index]


def deescalate_level(current: ReminderLevel, steps: int) -> ReminderLevel:
    return escalate_level(current, -steps)


def escalate_for_ignored(level: ReminderLevel, consecutive_ignored: int) -> ReminderLevel:
    if consecutive_ignored <= 1:
        return level
    elif consecutive_ignored <= 3:
        return escalate_level(level, 1)
    elif consecutive_ignored <= 5:
        return escalate_level(level, 2)
    return ReminderLevel.URGENT


def adjust_for_behavior(level: ReminderLevel, behavior: BehaviorProfile) -> ReminderLevel:
    """First matching rule wins"""
    # Improving and responsive: back off
    if behavior.improvement_trend > 0.2 and behavior.reminder_response_rate > 0.7:
        return deescalate_level(level, 1)

    # Mostly ignores reminders: be more assertive
    if behavior.reminder_response_rate < 0.3:
        return escalate_level(level, 1)

    # Long session with poor posture
    if behavior.session_duration > 60 and behavior.average_score < 50:
        return escalate_level(level, 1)

    return level


def adjust_for_time(level: ReminderLevel, seconds_since_last: float) -> ReminderLevel:
    """Compared in whole elapsed minutes"""
    if seconds_since_last >= (STALE_REMINDER_MINUTES + 1) * 60:
        # Context is stale, start over gently
        return ReminderLevel.GENTLE
    if seconds_since_last < RAPID_REMINDER_MINUTES * 60:
        return escalate_level(level, 1)
    return level


def determine_reminder_level(score: PostureScore, behavior: BehaviorProfile,
                             consecutive_ignored: int,
                             seconds_since_last: float) -> ReminderLevel:
    """
    Determine the reminder level for a score in context.

    Args:
        score: Current posture score
        behavior: Current behavior profile
        consecutive_ignored: Reminders ignored in a row
        seconds_since_last: Seconds since the previous reminder

    Returns:
        ReminderLevel
    """
    level = BASE_LEVELS[score.level]
    level = escalate_for_ignored(level, consecutive_ignored)
    level = adjust_for_behavior(level, behavior)
    return adjust_for_time(level, seconds_since_last)


def is_in_quiet_hours(hour: int, quiet_hours: Optional[Tuple[int, int]]) -> bool:
    """Inclusive hour range, wrapping past midnight when start > end"""
    if quiet_hours is None:
        return False
    start, end = quiet_hours
    if start <= end:
        return start <= hour <= end
    return hour >= start or hour <= end


def is_work_hours(hour: int) -> bool:
    return WORK_HOURS_START <= hour <= WORK_HOURS_END


def determine_reminder_type(level: ReminderLevel, config: ReminderConfig,
                            app_in_foreground: bool, hour: int) -> ReminderType:
    """Pick the presentation channel: quiet hours, then work mode, then defaults"""
    if is_in_quiet_hours(hour, config.quiet_hours):
        if level.priority >= 3:
            return ReminderType.VIBRATION
        return ReminderType.NOTIFICATION

    if config.work_mode_enabled and is_work_hours(hour):
        if level in (ReminderLevel.GENTLE, ReminderLevel.MODERATE):
            return ReminderType.NOTIFICATION
        elif level == ReminderLevel.STRONG:
            return ReminderType.POPUP
        return ReminderType.COMBINED

    if level == ReminderLevel.GENTLE:
        return ReminderType.NOTIFICATION
    elif level == ReminderLevel.MODERATE:
        return ReminderType.POPUP if app_in_foreground else ReminderType.NOTIFICATION
    elif level == ReminderLevel.STRONG:
        if level.can_block_ui and ReminderType.OVERLAY in config.allowed_reminder_types:
            return ReminderType.OVERLAY
        return ReminderType.COMBINED
    return ReminderType.COMBINED


def generate_reminder_message(score: PostureScore, level: ReminderLevel,
                              behavior: BehaviorProfile) -> str:
    """Base sentence, then the first recommendation, then encouragement"""
    parts = [BASE_MESSAGES[score.level]]

    if score.recommendations:
        parts.append(score.recommendations[0])

    if behavior.improvement_trend > TREND_BONUS_THRESHOLD:
        parts.append("You're improving! Keep it up!")
    elif behavior.average_score > STRICT_AVERAGE:
        parts.append("Great job maintaining good posture!")

    return "\n\n".join(parts)
