import pytest

from models import BehaviorProfile, AdaptiveThresholds, PostureLevel
from posture_scorer import PostureScorer


@pytest.fixture
def scorer(context):
    return PostureScorer(context)


def test_unreliable_reading_before_any_score_gives_none(scorer, make_reading):
    assert scorer.process_reading(make_reading(face_detected=False)) is None
    assert scorer.process_reading(make_reading(confidence=0.6)) is None
    assert scorer.process_reading(make_reading(device_stable=False)) is None
    assert scorer.session_scores == ()
    assert scorer.behavior.session_duration == 0


def test_unreliable_reading_re_emits_last_score(scorer, make_reading):
    accepted = scorer.process_reading(make_reading())
    again = scorer.process_reading(make_reading(tilt=40.0, confidence=0.3))

    assert again is accepted
    assert len(scorer.session_scores) == 1
    assert scorer.behavior.session_duration == 1


def test_first_reading_is_not_smoothed(scorer, make_reading):
    result = scorer.process_reading(make_reading())

    assert result.overall == 100.0
    assert result.level == PostureLevel.EXCELLENT
    assert scorer.current_score is result
    assert scorer.behavior.average_score == 100.0
    assert scorer.behavior.session_duration == 1
    assert scorer.behavior.daily_usage == 1


def test_lenient_thresholds_apply_to_a_new_user(scorer, make_reading):
    # Average 0 loosens the default 30 degree tolerance to 36
    result = scorer.process_reading(make_reading(tilt=15.0))

    assert result.tilt_score == pytest.approx(100.0 - 15.0 / 36.0 * 100.0)
    assert result.overall == pytest.approx(0.4 * result.tilt_score + 40.0 + 20.0)
    assert result.level == PostureLevel.GOOD
    # Recommendations come from the unadjusted score
    assert result.recommendations == ["Great posture! Keep it up!"]


def test_smoothing_with_one_previous_score(scorer, make_score):
    scorer.score_history.append(make_score(overall=50.0))

    smoothed = scorer.apply_temporal_smoothing(make_score(overall=100.0, level=PostureLevel.EXCELLENT))

    assert smoothed.overall == pytest.approx((100.0 * 0.4 + 50.0 * 0.25) / 0.65)
    assert smoothed.level == PostureLevel.GOOD


def test_smoothing_uses_four_most_recent_scores(scorer, make_score):
    for overall in (10.0, 20.0, 30.0, 40.0, 50.0):
        scorer.score_history.append(make_score(overall=overall))

    smoothed = scorer.apply_temporal_smoothing(make_score(overall=100.0, level=PostureLevel.EXCELLENT))

    # 100*0.4 + 50*0.25 + 40*0.2 + 30*0.1 + 20*0.05
    assert smoothed.overall == pytest.approx(64.5)
    assert smoothed.level == PostureLevel.FAIR


def test_strong_average_tightens_thresholds(scorer):
    scorer.behavior = BehaviorProfile(average_score=90.0)

    thresholds = scorer.personalized_thresholds()

    assert thresholds.tilt_tolerance == pytest.approx(24.0)
    assert thresholds.distance_tolerance == pytest.approx(16.0)


def test_weak_average_loosens_thresholds(scorer):
    scorer.behavior = BehaviorProfile(average_score=40.0)

    thresholds = scorer.personalized_thresholds()

    assert thresholds.tilt_tolerance == pytest.approx(36.0)
    assert thresholds.distance_tolerance == pytest.approx(24.0)


def test_middle_average_keeps_thresholds(scorer):
    scorer.behavior = BehaviorProfile(average_score=65.0)
    assert scorer.personalized_thresholds() == AdaptiveThresholds()


@pytest.mark.parametrize("average, tilt, distance", [
    (90.0, 20.0, 15.0),
    (85.0, 25.0, 18.0),
    (75.0, 25.0, 18.0),
    (70.0, 30.0, 20.0),
    (20.0, 30.0, 20.0),
])
def test_threshold_bands(scorer, average, tilt, distance):
    scorer.behavior = BehaviorProfile(average_score=average)

    scorer.update_adaptive_thresholds()

    assert scorer.thresholds == AdaptiveThresholds(tilt_tolerance=tilt, distance_tolerance=distance)


@pytest.mark.parametrize("trend, multiplier", [
    (0.5, 1.1),
    (-0.5, 0.9),
    (0.05, 1.0),
    (0.0, 1.0),
])
def test_trend_multiplier(scorer, trend, multiplier):
    scorer.behavior = BehaviorProfile(improvement_trend=trend)
    assert scorer.trend_multiplier() == multiplier


def test_calculate_trend():
    assert PostureScorer.calculate_trend([1.0, 2.0, 3.0, 4.0, 5.0]) == pytest.approx(1.0)
    assert PostureScorer.calculate_trend([5.0, 4.0, 3.0, 2.0, 1.0]) == pytest.approx(-1.0)
    assert PostureScorer.calculate_trend([3.0, 3.0, 3.0]) == 0.0
    assert PostureScorer.calculate_trend([7.0]) == 0.0
    assert PostureScorer.calculate_trend([]) == 0.0


def test_trend_needs_five_points(scorer, make_reading):
    for tilt in (0.0, 5.0, 10.0, 15.0):
        scorer.process_reading(make_reading(tilt=tilt))
    assert scorer.behavior.improvement_trend == 0.0

    scorer.process_reading(make_reading(tilt=20.0))
    assert scorer.behavior.improvement_trend < 0.0


def test_history_is_bounded(scorer, make_reading):
    for _ in range(60):
        scorer.process_reading(make_reading())

    assert len(scorer.session_scores) == 50
    assert scorer.behavior.session_duration == 60


def test_session_stats(scorer, make_score):
    assert scorer.get_session_stats().total_measurements == 0

    for overall in (40.0, 80.0, 60.0):
        scorer.score_history.append(make_score(overall=overall))

    stats = scorer.get_session_stats()
    assert stats.average_score == pytest.approx(60.0)
    assert stats.best_score == 80.0
    assert stats.worst_score == 40.0
    assert stats.total_measurements == 3


def test_daily_usage_starts_over_on_a_new_day(scorer, make_reading, clock):
    scorer.process_reading(make_reading())
    scorer.process_reading(make_reading())
    assert scorer.behavior.daily_usage == 2

    clock.advance(24 * 60 * 60)
    scorer.process_reading(make_reading())

    assert scorer.behavior.daily_usage == 1
    assert scorer.behavior.session_duration == 3


def test_reset_session_keeps_daily_usage_and_current_score(scorer, make_reading):
    scorer.process_reading(make_reading())
    scorer.process_reading(make_reading())
    current = scorer.current_score

    scorer.reset_session()

    assert scorer.session_scores == ()
    assert scorer.behavior.session_duration == 0
    assert scorer.behavior.average_score == 0.0
    assert scorer.behavior.daily_usage == 2
    assert scorer.current_score is current


def test_response_rate_feeds_behavior(scorer):
    scorer.update_response_rate(0.75)
    assert scorer.behavior.reminder_response_rate == 0.75
