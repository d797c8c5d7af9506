"""
Adaptive posture scoring: personalized thresholds, temporal smoothing
and session behavior tracking over the fused sensor stream
"""

from collections import deque
from datetime import date
from typing import Optional, List, Tuple

import posture_model
from models import (
    FusedReading, PostureSample, PostureScore, BehaviorProfile,
    AdaptiveThresholds, SessionStats
)
from session_context import SessionContext
from utils import to_local
from config import (
    CONFIDENCE_THRESHOLD,
    SCORE_HISTORY_SIZE,
    SMOOTHING_WEIGHTS,
    TREND_WINDOW,
    TREND_MIN_POINTS,
    TREND_BONUS_THRESHOLD,
    TREND_BONUS_MULTIPLIER,
    TREND_PENALTY_MULTIPLIER,
    STRICT_AVERAGE,
    LENIENT_AVERAGE,
    STRICT_FACTOR,
    LENIENT_FACTOR,
    THRESHOLD_BANDS,
)


class PostureScorer:
    """
    Turns fused readings into stable posture scores.
    Applies personalized thresholds, trend weighting and smoothing,
    and keeps the session history and behavior profile up to date.
    """

    def __init__(self, context: SessionContext):
        self.context = context

        # Bounded session history, oldest first
        self.score_history: deque = deque(maxlen=SCORE_HISTORY_SIZE)

        self.current_score: Optional[PostureScore] = None
        self.behavior = BehaviorProfile()
        self.thresholds = AdaptiveThresholds()

        self._usage_date: Optional[date] = None

    @staticmethod
    def is_reliable(reading: FusedReading) -> bool:
        """A reading counts only with a detected face, enough confidence and a still device"""
        return (
            reading.face_detected
            and reading.confidence > CONFIDENCE_THRESHOLD
            and reading.device_stable
        )

    def process_reading(self, reading: FusedReading) -> Optional[PostureScore]:
        """
        Score one fused reading.

        Unreliable readings re-emit the last accepted score untouched
        (None until something has been accepted).
        """
        if not self.is_reliable(reading):
            return self.current_score

        sample = reading.to_sample()

        base_score = posture_model.score(sample)
        adapted_score = self.apply_adaptive_adjustments(base_score, sample)
        smoothed_score = self.apply_temporal_smoothing(adapted_score)

        self.current_score = smoothed_score
        self.score_history.append(smoothed_score)

        self.update_behavior(smoothed_score)
        self.update_adaptive_thresholds()

        self.context.log_score(smoothed_score)
        return smoothed_score

    def personalized_thresholds(self) -> AdaptiveThresholds:
        """Current thresholds tightened or loosened by the user's average performance"""
        average = self.behavior.average_score

        if average > STRICT_AVERAGE:
            factor = STRICT_FACTOR
        elif average < LENIENT_AVERAGE:
            factor = LENIENT_FACTOR
        else:
            return self.thresholds

        return AdaptiveThresholds(
            tilt_tolerance=self.thresholds.tilt_tolerance * factor,
            distance_tolerance=self.thresholds.distance_tolerance * factor
        )

    def trend_multiplier(self) -> float:
        trend = self.behavior.improvement_trend
        if trend > TREND_BONUS_THRESHOLD:
            return TREND_BONUS_MULTIPLIER
        elif trend < -TREND_BONUS_THRESHOLD:
            return TREND_PENALTY_MULTIPLIER
        return 1.0

    def apply_adaptive_adjustments(self, score: PostureScore, sample: PostureSample) -> PostureScore:
        """Re-score tilt and distance against personalized tolerances"""
        thresholds = self.personalized_thresholds()

        tilt = posture_model.tilt_score(sample.tilt_angle, thresholds.tilt_tolerance)
        distance = posture_model.distance_score(sample.head_distance, thresholds.distance_tolerance)

        overall = posture_model.weighted_overall(tilt, distance, score.position_score)
        overall = posture_model.clamp_score(overall * self.trend_multiplier())

        return score.model_copy(update={
            "overall": overall,
            "tilt_score": tilt,
            "distance_score": distance,
            "level": posture_model.quality_level(overall),
        })

    def apply_temporal_smoothing(self, score: PostureScore) -> PostureScore:
        """
        Weighted average of the new overall and the most recent history.

        weights[0] goes to the new value, the remaining weights to history
        newest first. Normalized by the weights actually used.
        """
        recent = list(self.score_history)[-(len(SMOOTHING_WEIGHTS) - 1):]

        if not recent:
            return score

        weighted_sum = score.overall * SMOOTHING_WEIGHTS[0]
        total_weight = SMOOTHING_WEIGHTS[0]

        for index, previous in enumerate(reversed(recent), start=1):
            weighted_sum += previous.overall * SMOOTHING_WEIGHTS[index]
            total_weight += SMOOTHING_WEIGHTS[index]

        smoothed = posture_model.clamp_score(weighted_sum / total_weight)

        return score.model_copy(update={
            "overall": smoothed,
            "level": posture_model.quality_level(smoothed),
        })

    @staticmethod
    def calculate_trend(values: List[float]) -> float:
        """Least-squares slope of values against their index"""
        n = len(values)
        if n < 2:
            return 0.0

        xs = range(n)
        sum_x = sum(xs)
        sum_y = sum(values)
        sum_xy = sum(x * y for x, y in zip(xs, values))
        sum_x2 = sum(x * x for x in xs)

        denominator = n * sum_x2 - sum_x * sum_x
        if denominator == 0:
            return 0.0

        return (n * sum_xy - sum_x * sum_y) / denominator

    def update_behavior(self, score: PostureScore):
        """Recompute the behavior profile from the session history"""
        overalls = [s.overall for s in self.score_history]
        average = sum(overalls) / len(overalls)

        recent = overalls[-TREND_WINDOW:]
        if len(recent) >= TREND_MIN_POINTS:
            trend = self.calculate_trend(recent)
        else:
            trend = self.behavior.improvement_trend

        # Daily usage starts over on a new local day
        today = to_local(score.timestamp).date()
        daily_usage = self.behavior.daily_usage
        if self._usage_date != today:
            self._usage_date = today
            daily_usage = 0

        self.behavior = self.behavior.model_copy(update={
            "average_score": average,
            "improvement_trend": trend,
            "session_duration": self.behavior.session_duration + 1,
            "daily_usage": daily_usage + 1,
        })

    def update_adaptive_thresholds(self):
        """Pick the tolerance band matching the current average"""
        average = self.behavior.average_score

        for lower_bound, tilt_tolerance, distance_tolerance in THRESHOLD_BANDS:
            if average > lower_bound:
                new_thresholds = AdaptiveThresholds(
                    tilt_tolerance=tilt_tolerance,
                    distance_tolerance=distance_tolerance
                )
                break
        else:
            new_thresholds = AdaptiveThresholds()

        if new_thresholds != self.thresholds:
            self.context.debug(
                "PostureScorer",
                f"Thresholds now tilt={new_thresholds.tilt_tolerance}, "
                f"distance={new_thresholds.distance_tolerance} (average {average:.1f})"
            )
        self.thresholds = new_thresholds

    def update_response_rate(self, response_rate: float):
        """Feed the reminder response rate back into the profile"""
        self.behavior = self.behavior.model_copy(update={
            "reminder_response_rate": response_rate
        })

    @property
    def session_scores(self) -> Tuple[PostureScore, ...]:
        """Read-only snapshot of the session history"""
        return tuple(self.score_history)

    def get_session_stats(self) -> SessionStats:
        """Get statistics for the current session"""
        scores = self.session_scores
        if not scores:
            return SessionStats()

        overalls = [s.overall for s in scores]
        return SessionStats(
            average_score=sum(overalls) / len(overalls),
            best_score=max(overalls),
            worst_score=min(overalls),
            total_measurements=len(overalls),
            improvement_trend=self.behavior.improvement_trend
        )

    def reset_session(self):
        """Clear history and behavior (daily usage carries over within the day)"""
        self.score_history.clear()
        self.behavior = BehaviorProfile(daily_usage=self.behavior.daily_usage)
        self.context.info("PostureScorer", "Session data reset")
