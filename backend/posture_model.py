"""
Posture score model: maps a single sample to a composite 0-100 score
"""

from typing import List

from models import PostureSample, PostureScore, PostureLevel, HeadPosition
from config import (
    IDEAL_TILT_ANGLE,
    IDEAL_DISTANCE,
    MAX_TILT_DEVIATION,
    MAX_DISTANCE_DEVIATION,
    MAX_ROTATION_DEVIATION,
    TILT_WEIGHT,
    DISTANCE_WEIGHT,
    POSITION_WEIGHT,
    EXCELLENT_THRESHOLD,
    GOOD_THRESHOLD,
    FAIR_THRESHOLD,
    POOR_THRESHOLD,
    RECOMMENDATION_THRESHOLD,
    TILT_DIRECTION_MARGIN,
    DISTANCE_DIRECTION_MARGIN,
)

AFFIRMING_MESSAGE = "Great posture! Keep it up!"


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def quality_level(overall: float) -> PostureLevel:
    """Bucket an overall score into a quality level"""
    if overall >= EXCELLENT_THRESHOLD:
        return PostureLevel.EXCELLENT
    elif overall >= GOOD_THRESHOLD:
        return PostureLevel.GOOD
    elif overall >= FAIR_THRESHOLD:
        return PostureLevel.FAIR
    elif overall >= POOR_THRESHOLD:
        return PostureLevel.POOR
    return PostureLevel.CRITICAL


def tilt_score(tilt_angle: float, tolerance: float = MAX_TILT_DEVIATION) -> float:
    deviation = abs(tilt_angle - IDEAL_TILT_ANGLE)
    return max(0.0, 100.0 - (deviation / tolerance) * 100.0)


def distance_score(head_distance: float, tolerance: float = MAX_DISTANCE_DEVIATION) -> float:
    # Zero or negative distance means the face could not be ranged
    if head_distance <= 0:
        return 0.0
    deviation = abs(head_distance - IDEAL_DISTANCE)
    return max(0.0, 100.0 - (deviation / tolerance) * 100.0)


def position_score(position: HeadPosition) -> float:
    horizontal = abs(position.x) / 100.0
    vertical = abs(position.y) / 100.0
    rotation = abs(position.rotation) / MAX_ROTATION_DEVIATION

    average_deviation = (horizontal + vertical + rotation) / 3.0
    return max(0.0, 100.0 - average_deviation * 100.0)


def weighted_overall(tilt: float, distance: float, position: float) -> float:
    return tilt * TILT_WEIGHT + distance * DISTANCE_WEIGHT + position * POSITION_WEIGHT


def generate_recommendations(sample: PostureSample, tilt: float,
                             distance: float, position: float) -> List[str]:
    """
    Independent threshold checks in the order tilt, distance, position.
    Always returns at least one message.
    """
    recommendations = []

    if tilt < RECOMMENDATION_THRESHOLD:
        if sample.tilt_angle > IDEAL_TILT_ANGLE + TILT_DIRECTION_MARGIN:
            recommendations.append("Lift your device higher to reduce neck strain")
        elif sample.tilt_angle < IDEAL_TILT_ANGLE - TILT_DIRECTION_MARGIN:
            recommendations.append("Lower your device slightly for better posture")

    if distance < RECOMMENDATION_THRESHOLD:
        if sample.head_distance < IDEAL_DISTANCE - DISTANCE_DIRECTION_MARGIN:
            recommendations.append("Move farther from your device to reduce eye strain")
        elif sample.head_distance > IDEAL_DISTANCE + DISTANCE_DIRECTION_MARGIN:
            recommendations.append("Move closer to your device for optimal viewing")

    if position < RECOMMENDATION_THRESHOLD:
        recommendations.append("Center your head with the device and keep it straight")

    if not recommendations:
        recommendations.append(AFFIRMING_MESSAGE)

    return recommendations


def score(sample: PostureSample) -> PostureScore:
    """
    Calculate the composite posture score of one sample.

    Never fails: an unknown head distance just yields a zero distance sub-score.
    """
    tilt = tilt_score(sample.tilt_angle)
    distance = distance_score(sample.head_distance)
    position = position_score(sample.head_position)

    overall = clamp_score(weighted_overall(tilt, distance, position))

    return PostureScore(
        overall=overall,
        tilt_score=tilt,
        distance_score=distance,
        position_score=position,
        level=quality_level(overall),
        recommendations=generate_recommendations(sample, tilt, distance, position),
        timestamp=sample.timestamp
    )
