"""
Data models for the Adaptive Posture Monitor
"""

from datetime import datetime
from typing import Optional, List, Set, Tuple
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from config import (
    DEFAULT_MINIMUM_INTERVAL,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_ESCALATION_THRESHOLD,
    DEFAULT_TILT_TOLERANCE,
    DEFAULT_DISTANCE_TOLERANCE,
)


class PostureLevel(str, Enum):
    """Posture quality levels, best first"""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class ReminderLevel(str, Enum):
    """Reminder intensity levels with escalating interventions"""
    GENTLE = "gentle"
    MODERATE = "moderate"
    STRONG = "strong"
    URGENT = "urgent"

    @property
    def display_name(self) -> str:
        return _REMINDER_LEVEL_ATTRIBUTES[self.value][0]

    @property
    def vibration_pattern(self) -> Tuple[int, ...]:
        """Alternating off/on durations in milliseconds"""
        return _REMINDER_LEVEL_ATTRIBUTES[self.value][1]

    @property
    def priority(self) -> int:
        return _REMINDER_LEVEL_ATTRIBUTES[self.value][2]

    @property
    def can_block_ui(self) -> bool:
        return _REMINDER_LEVEL_ATTRIBUTES[self.value][3]


# value -> (display name, vibration pattern, priority, may block UI)
_REMINDER_LEVEL_ATTRIBUTES = {
    "gentle": ("Gentle", (0, 100), 1, False),
    "moderate": ("Moderate", (0, 200, 100, 200), 2, False),
    "strong": ("Strong", (0, 300, 150, 300, 150, 300), 3, True),
    "urgent": ("Urgent", (0, 500, 200, 500, 200, 500, 200, 500), 4, True),
}

# Total order used for escalate/de-escalate arithmetic
REMINDER_LEVEL_ORDER: List[ReminderLevel] = [
    ReminderLevel.GENTLE,
    ReminderLevel.MODERATE,
    ReminderLevel.STRONG,
    ReminderLevel.URGENT,
]


class ReminderType(str, Enum):
    """Presentation channel of a reminder"""
    NOTIFICATION = "notification"
    POPUP = "popup"
    OVERLAY = "overlay"
    VIBRATION = "vibration"
    COMBINED = "combined"


class UserAction(str, Enum):
    """Explicit user reaction to a reminder"""
    CORRECTED_POSTURE = "corrected_posture"
    DISMISSED = "dismissed"
    POSTPONED = "postponed"
    DISABLED_TEMPORARILY = "disabled_temporarily"


class HeadPosition(BaseModel):
    """Head offset relative to the device"""
    model_config = ConfigDict(frozen=True)

    x: float = 0.0         # Horizontal offset from center, %
    y: float = 0.0         # Vertical offset from center, %
    rotation: float = 0.0  # Head rotation, degrees


class PostureSample(BaseModel):
    """One fused posture measurement"""
    model_config = ConfigDict(frozen=True)

    tilt_angle: float = 0.0     # degrees, 0 = upright
    head_distance: float = 0.0  # cm, 0 = unknown
    head_position: HeadPosition = HeadPosition()
    confidence: float = 0.0     # 0.0 to 1.0
    timestamp: datetime = Field(default_factory=datetime.now)


class PostureScore(BaseModel):
    """Composite posture score with sub-scores and recommendations"""
    model_config = ConfigDict(frozen=True)

    overall: float = Field(ge=0.0, le=100.0)
    tilt_score: float
    distance_score: float
    position_score: float
    level: PostureLevel
    recommendations: List[str] = Field(min_length=1)
    timestamp: datetime = Field(default_factory=datetime.now)


class BehaviorProfile(BaseModel):
    """Rolling behavior patterns of the current session"""
    average_score: float = 0.0
    improvement_trend: float = 0.0       # positive = improving
    session_duration: int = 0            # accepted updates this session
    daily_usage: int = 0                 # accepted updates today
    reminder_response_rate: float = 0.0  # acknowledged / triggered


class AdaptiveThresholds(BaseModel):
    """Personalized scoring tolerances"""
    model_config = ConfigDict(frozen=True)

    tilt_tolerance: float = Field(default=DEFAULT_TILT_TOLERANCE, gt=0.0)         # degrees
    distance_tolerance: float = Field(default=DEFAULT_DISTANCE_TOLERANCE, gt=0.0)  # cm


class SessionStats(BaseModel):
    """Point-in-time statistics of the session score history"""
    average_score: float = 0.0
    best_score: float = 0.0
    worst_score: float = 0.0
    total_measurements: int = 0
    improvement_trend: float = 0.0


class TiltReading(BaseModel):
    """Tilt angle from motion sensing"""
    tilt_angle: float
    timestamp: Optional[datetime] = None


class VisionReading(BaseModel):
    """Face tracking output from the vision collaborator"""
    head_distance: float = 0.0
    head_position: HeadPosition = HeadPosition()
    confidence: float = 0.0
    face_detected: bool = False
    timestamp: Optional[datetime] = None


class StabilityReading(BaseModel):
    """Whether the device is held still enough to measure"""
    device_stable: bool
    timestamp: Optional[datetime] = None


class FusedReading(BaseModel):
    """Latest value of every input channel combined"""
    model_config = ConfigDict(frozen=True)

    tilt_angle: float
    head_distance: float
    head_position: HeadPosition
    confidence: float
    face_detected: bool
    device_stable: bool
    timestamp: datetime

    def to_sample(self) -> PostureSample:
        return PostureSample(
            tilt_angle=self.tilt_angle,
            head_distance=self.head_distance,
            head_position=self.head_position,
            confidence=self.confidence,
            timestamp=self.timestamp
        )


class ReminderConfig(BaseModel):
    """User-adjustable reminder behavior"""
    enabled: bool = True
    minimum_interval: float = DEFAULT_MINIMUM_INTERVAL  # seconds
    maximum_interval: float = DEFAULT_MAXIMUM_INTERVAL  # seconds
    escalation_threshold: int = DEFAULT_ESCALATION_THRESHOLD
    adapt_to_behavior: bool = True
    quiet_hours: Optional[Tuple[int, int]] = None  # e.g. (22, 6)
    work_mode_enabled: bool = False
    allowed_reminder_types: Set[ReminderType] = Field(
        default_factory=lambda: {
            ReminderType.NOTIFICATION,
            ReminderType.POPUP,
            ReminderType.VIBRATION,
        }
    )


class ReminderEvent(BaseModel):
    """A reminder issued to the user"""
    model_config = ConfigDict(frozen=True)

    level: ReminderLevel
    type: ReminderType
    message: str
    posture_score: PostureScore
    created_at: datetime
    is_user_triggered: bool = False


class ReminderResponse(BaseModel):
    """Reaction to the active reminder"""
    acknowledged: bool = False
    ignored: bool = False
    response_time: float = 0.0  # seconds
    user_action: Optional[UserAction] = None


class ReminderActionRequest(BaseModel):
    """User action posted by the presentation layer"""
    action: UserAction


class ReminderStats(BaseModel):
    """Statistics of reminders issued this session"""
    total_reminders: int = 0
    acknowledged_reminders: int = 0
    response_rate: float = 0.0
    consecutive_ignored: int = 0
    average_interval: float = 0.0  # seconds
