"""
Combine-latest merge of the tilt, vision and stability channels
"""

from datetime import datetime
from typing import Optional, Callable

from models import TiltReading, VisionReading, StabilityReading, FusedReading
from utils import now_local


class SensorFusion:
    """
    Holds the last known value of each channel and emits a fused reading
    on every update once all channels have reported at least once.
    """

    def __init__(self, clock: Callable[[], datetime] = now_local):
        self.clock = clock
        self.tilt: Optional[TiltReading] = None
        self.vision: Optional[VisionReading] = None
        self.stability: Optional[StabilityReading] = None

    @property
    def is_complete(self) -> bool:
        return self.tilt is not None and self.vision is not None and self.stability is not None

    def update_tilt(self, reading: TiltReading) -> Optional[FusedReading]:
        self.tilt = reading
        return self.fuse(reading.timestamp)

    def update_vision(self, reading: VisionReading) -> Optional[FusedReading]:
        self.vision = reading
        return self.fuse(reading.timestamp)

    def update_stability(self, reading: StabilityReading) -> Optional[FusedReading]:
        self.stability = reading
        return self.fuse(reading.timestamp)

    def fuse(self, timestamp: Optional[datetime] = None) -> Optional[FusedReading]:
        """Fused reading of the latest channel values, or None while a channel is missing"""
        if not self.is_complete:
            return None

        return FusedReading(
            tilt_angle=self.tilt.tilt_angle,
            head_distance=self.vision.head_distance,
            head_position=self.vision.head_position,
            confidence=self.vision.confidence,
            face_detected=self.vision.face_detected,
            device_stable=self.stability.device_stable,
            timestamp=timestamp or self.clock()
        )

    def reset(self):
        """Forget held values (used on calibration)"""
        self.tilt = None
        self.vision = None
        self.stability = None
