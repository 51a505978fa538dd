# ABOUTME: Validates study pattern analysis and the study plan optimizer.
# ABOUTME: Covers the generic fallback plan, factor scoring, and trained recommendations.

from datetime import datetime

import pytest

from builders import NOW, activity, goal, sessions
from src.common.schemas import StudySession
from src.study_plan import StudyPlanOptimizer, StudyPreferences, analyze_user_pattern, session_features
from src.study_plan.optimizer import basic_recommendation, optimization_factors, predict_productivity
from src.study_plan.patterns import SESSION_FEATURE_WIDTH, day_of_week, hourly_performance, peak_key


def _split_day_sessions(user_id="u1"):
    morning = sessions(user_id, 10, hour=9, ratings=[4.0] * 10)
    evening = sessions(user_id, 10, hour=20, ratings=[2.0] * 10)
    return morning + evening


def _preferences():
    return StudyPreferences(weekly_hours=10, subject_priorities={"math": 1.5, "physics": 1.0})


def test_session_features_width_and_scaling():
    session = sessions("u1", 1, hour=12)[0]
    vector = session_features(session)
    assert vector.shape == (SESSION_FEATURE_WIDTH,)
    assert vector[0] == pytest.approx(0.5)
    assert vector[6] == pytest.approx(0.8)
    assert vector[8] == pytest.approx(0.75)


def test_day_of_week_starts_on_sunday():
    sunday = sessions("u1", 1, days=4)[0]
    assert sunday.started_at.strftime("%A") == "Sunday"
    assert day_of_week(sunday) == 0


def test_peak_key_requires_positive_value():
    assert peak_key({}) == -1
    assert peak_key({9: 0.0}) == -1
    assert peak_key({9: 2.0, 14: 4.0}) == 14


def test_analyze_user_pattern_finds_best_hours():
    pattern = analyze_user_pattern(_split_day_sessions())

    assert pattern.optimal_hours[0] == 9
    assert pattern.optimal_hours[1] == 20
    assert pattern.total_sessions == 20
    assert pattern.avg_rating == pytest.approx(3.0)
    assert pattern.consistency_score == pytest.approx(1 - 30.25 / 50)
    assert pattern.duration_performance == {90: pytest.approx(3.0)}
    assert len(pattern.productivity_trend) == 10


def test_analyze_user_pattern_rejects_empty_history():
    with pytest.raises(ValueError):
        analyze_user_pattern([])


def test_optimization_factors_come_from_session_fields():
    factors = optimization_factors(sessions("u1", 5, ratings=[5.0] * 5))
    assert factors.time_of_day == pytest.approx(1.0)
    assert factors.duration == pytest.approx(1.0)
    assert factors.break_pattern == pytest.approx(0.5)
    assert factors.subject_difficulty == pytest.approx(0.1)
    assert factors.energy_level == pytest.approx(0.8)
    assert factors.environment == pytest.approx(0.8)
    assert 0.0 <= predict_productivity(factors) <= 1.0


def test_basic_recommendation_for_unknown_user():
    optimizer = StudyPlanOptimizer(epochs=5)
    plan = optimizer.optimize_study_plan(activity("u1"), _preferences(), now=NOW)

    assert plan.source == "fallback"
    assert [d.day for d in plan.weekly_schedule][0] == "Monday"
    assert len(plan.weekly_schedule) == 7
    monday = plan.weekly_schedule[0].sessions
    assert [s.start_time for s in monday] == ["09:00", "11:00"]
    assert [s.subject for s in monday] == ["math", "physics"]
    assert plan.optimization.optimal_duration == 45


def test_basic_schedule_defaults_subject():
    plan = basic_recommendation(StudyPreferences(weekly_hours=3))
    assert plan.weekly_schedule[0].sessions[0].subject == "General"


def test_too_few_sessions_keeps_optimizer_untrained():
    optimizer = StudyPlanOptimizer(epochs=5)
    optimizer.train_models(sessions("u1", 10))
    assert optimizer.is_trained is False


def test_known_pattern_without_models_uses_pattern_analysis():
    history = _split_day_sessions()
    optimizer = StudyPlanOptimizer(epochs=5)
    optimizer.extract_user_patterns(history)

    plan = optimizer.optimize_study_plan(activity("u1", study_sessions=history), _preferences(), now=NOW)

    assert plan.source == "fallback"
    assert plan.optimization.optimal_time_of_day == 9
    assert plan.insights.best_study_times[0] == "9:00"
    assert "Consider more consistent study timing" in plan.insights.warnings


def test_trained_optimizer_builds_personal_plan():
    history = _split_day_sessions()
    optimizer = StudyPlanOptimizer(seed=1, epochs=5)
    optimizer.train_models(history)
    assert optimizer.is_trained

    user = activity("u1", study_sessions=history, goals=[goal("u1", "COMPLETED"), goal("u1")])
    plan = optimizer.optimize_study_plan(user, _preferences(), now=NOW)

    assert plan.source == "ml"
    assert plan.optimization.optimal_time_of_day == 9
    assert plan.optimization.confidence_level == pytest.approx(1.0)
    assert 15 <= plan.optimization.optimal_duration <= 120
    assert 15 <= plan.optimization.recommended_break_interval <= 45
    assert plan.performance_metrics.goal_progress_rate == pytest.approx(0.5)
    assert plan.performance_metrics.expected_efficiency == pytest.approx(0.6)

    first_day = plan.weekly_schedule[0].sessions
    assert first_day[0].start_time == "08:00"
    assert first_day[0].session_type == "focus"
    assert first_day[0].priority == pytest.approx(1.5 * 1.2)


def test_improving_trend_is_reported():
    history = sessions("u1", 10, ratings=[1.0, 1.0, 2.0, 2.0, 3.0, 3.0, 4.0, 4.0, 5.0, 5.0])
    optimizer = StudyPlanOptimizer(epochs=5)
    optimizer.extract_user_patterns(history)
    insights = optimizer.insights(optimizer.user_patterns["u1"])
    assert insights.productivity_trends == ["Productivity improving over recent sessions"]


def test_sparse_recent_history_gets_default_parameters():
    optimizer = StudyPlanOptimizer(epochs=5)
    optimization = optimizer.optimize_session_parameters(activity("u1", study_sessions=sessions("u1", 3)), NOW)
    assert optimization.optimal_time_of_day == 14
    assert optimization.confidence_level == pytest.approx(0.3)


def test_unreadable_session_history_degrades_to_basic_plan():
    optimizer = StudyPlanOptimizer(epochs=5)
    optimizer.extract_user_patterns(_split_day_sessions())
    naive = StudySession("s1", "u1", datetime(2024, 5, 14, 12, 0), 60.0)

    plan = optimizer.optimize_study_plan(activity("u1", study_sessions=[naive]), _preferences(), now=NOW)

    assert plan.source == "fallback"
    assert plan.optimization.optimal_time_of_day == 14
    assert plan.insights.warnings == ["More study history needed for personalized recommendations"]


def test_hour_features_follow_learner_timezone():
    evening = sessions("u1", 3, hour=20)
    assert set(hourly_performance(evening)) == {20}
    assert set(hourly_performance(evening, utc_offset=-5)) == {15}
    assert session_features(evening[0], utc_offset=-5)[0] == pytest.approx(15 / 24)


def test_plan_hours_are_local_to_the_learner():
    history = _split_day_sessions()
    optimizer = StudyPlanOptimizer(epochs=5)
    optimizer.extract_user_patterns(history, {"u1": 2.0})

    learner = activity("u1", timezone_offset=2.0, study_sessions=history)
    plan = optimizer.optimize_study_plan(learner, _preferences(), now=NOW)

    assert plan.optimization.optimal_time_of_day == 11
    assert plan.insights.best_study_times[0] == "11:00"
