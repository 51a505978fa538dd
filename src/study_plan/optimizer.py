# ABOUTME: Learns productivity, duration, and timing models from study sessions.
# ABOUTME: Produces weekly study plans, insights, and performance metrics per user.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from src.common.errors import MLError
from src.common.numeric import train_test_split
from src.common.schemas import PredictionSource, StudySession, UserActivity
from src.models import DecisionTreeRegressor, LinearRegressionModel, MultiLayerPerceptron

from .patterns import (
    SESSION_FEATURE_WIDTH,
    StudyPattern,
    analyze_user_pattern,
    average_features,
    duration_performance,
    encode_environment,
    encode_subject_difficulty,
    hourly_performance,
    peak_key,
    session_features,
)

logger = logging.getLogger(__name__)

DAYS_OF_WEEK = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
FACTOR_WEIGHTS = np.array([0.2, 0.2, 0.15, 0.15, 0.15, 0.15])


class PlanDefaults:
    MIN_TRAINING_SESSIONS = 20
    MIN_RECENT_SESSIONS = 5
    RECENT_WINDOW_DAYS = 30
    MAX_RECENT_SESSIONS = 50
    DURATION = 45
    TIME_OF_DAY = 14
    BREAK_INTERVAL = 25
    PRODUCTIVITY = 0.7
    CONFIDENCE = 0.3
    SEARCH_HOURS = range(6, 23)


@dataclass
class StudyPreferences:
    weekly_hours: float
    preferred_times: List[str] = field(default_factory=list)
    subject_priorities: Dict[str, float] = field(default_factory=dict)
    break_preference: float = 10.0


@dataclass
class OptimizationFactors:
    time_of_day: float = 0.7
    duration: float = 0.6
    break_pattern: float = 0.5
    subject_difficulty: float = 0.6
    energy_level: float = 0.7
    environment: float = 0.5

    def as_vector(self) -> np.ndarray:
        return np.array(
            [
                self.time_of_day,
                self.duration,
                self.break_pattern,
                self.subject_difficulty,
                self.energy_level,
                self.environment,
            ]
        )


@dataclass
class SessionOptimization:
    optimal_duration: float
    optimal_time_of_day: int
    recommended_break_interval: float
    expected_productivity: float
    confidence_level: float
    factors: OptimizationFactors


@dataclass
class ScheduledSession:
    start_time: str
    duration: float
    subject: str
    session_type: str
    priority: float


@dataclass
class DaySchedule:
    day: str
    sessions: List[ScheduledSession]


@dataclass
class StudyInsights:
    best_study_times: List[str]
    productivity_trends: List[str]
    recommendations: List[str]
    warnings: List[str]


@dataclass
class PerformanceMetrics:
    expected_efficiency: float
    burnout_risk: float
    goal_progress_rate: float


@dataclass
class StudyPlanRecommendation:
    weekly_schedule: List[DaySchedule]
    optimization: SessionOptimization
    insights: StudyInsights
    performance_metrics: PerformanceMetrics
    source: PredictionSource


def default_optimization() -> SessionOptimization:
    return SessionOptimization(
        optimal_duration=PlanDefaults.DURATION,
        optimal_time_of_day=PlanDefaults.TIME_OF_DAY,
        recommended_break_interval=PlanDefaults.BREAK_INTERVAL,
        expected_productivity=PlanDefaults.PRODUCTIVITY,
        confidence_level=PlanDefaults.CONFIDENCE,
        factors=OptimizationFactors(),
    )


def optimization_factors(sessions: Sequence[StudySession], utc_offset: Optional[float] = None) -> OptimizationFactors:
    """Factor scores in [0, 1] computed from the sessions' recorded fields."""
    by_hour = hourly_performance(sessions, utc_offset)
    by_duration = duration_performance(sessions)

    with_pomodoros = [s for s in sessions if s.pomodoros > 0]
    if with_pomodoros:
        break_pattern = float(np.mean([min(1.0, s.breaks_taken / s.pomodoros) for s in with_pomodoros]))
    else:
        break_pattern = 0.5

    return OptimizationFactors(
        time_of_day=max(by_hour.values()) / 5,
        duration=max(by_duration.values()) / 5,
        break_pattern=break_pattern,
        subject_difficulty=1 - float(np.mean([encode_subject_difficulty(s.subject) for s in sessions])),
        energy_level=float(np.mean([s.energy_before for s in sessions])) / 5,
        environment=float(np.mean([encode_environment(s.environment) for s in sessions])),
    )


def predict_productivity(factors: OptimizationFactors) -> float:
    return float(np.dot(factors.as_vector(), FACTOR_WEIGHTS))


def session_type_for(index: int) -> str:
    if index == 0:
        return "focus"
    if index % 3 == 1:
        return "review"
    if index % 3 == 2:
        return "practice"
    return "break"


def session_priority(subject: str, session_type: str, priorities: Dict[str, float]) -> float:
    multiplier = {"focus": 1.2, "practice": 1.1}.get(session_type, 1.0)
    return priorities.get(subject, 1.0) * multiplier


def _subject_for(priorities: Dict[str, float], index: int) -> str:
    subjects = list(priorities)
    return subjects[index % len(subjects)] if subjects else "General"


def basic_schedule(preferences: StudyPreferences) -> List[DaySchedule]:
    sessions_per_day = math.ceil(preferences.weekly_hours / 7)
    schedule = []
    for day in DAYS_OF_WEEK:
        sessions = [
            ScheduledSession(
                start_time=f"{min(23, 9 + i * 2):02d}:00",
                duration=PlanDefaults.DURATION,
                subject=_subject_for(preferences.subject_priorities, i),
                session_type=("focus", "review", "practice")[i % 3],
                priority=1.0,
            )
            for i in range(sessions_per_day)
        ]
        schedule.append(DaySchedule(day=day, sessions=sessions))
    return schedule


def basic_recommendation(preferences: StudyPreferences) -> StudyPlanRecommendation:
    """Plan built from general study principles when nothing is known about the user."""
    return StudyPlanRecommendation(
        weekly_schedule=basic_schedule(preferences),
        optimization=default_optimization(),
        insights=StudyInsights(
            best_study_times=["9:00 AM - 11:00 AM", "2:00 PM - 4:00 PM"],
            productivity_trends=["Insufficient data for trend analysis"],
            recommendations=[
                "Start with 45-minute study sessions",
                "Take 5-10 minute breaks between sessions",
                "Study during your naturally alert hours",
            ],
            warnings=["More study history needed for personalized recommendations"],
        ),
        performance_metrics=PerformanceMetrics(expected_efficiency=0.7, burnout_risk=0.3, goal_progress_rate=0.6),
        source="fallback",
    )


class StudyPlanOptimizer:
    """
    Learns from study sessions to recommend session timing, length and structure.

    Models (all over the 10-wide session vector):
      - productivity: ridge linear regression on completion_status / 5
      - duration: MLP 10→16→8→1 (linear) on duration / 120
      - time: regression tree (depth 6, min split 3) on completion_status / 5
    """

    def __init__(self, seed: Optional[int] = 42, epochs: int = 100):
        self.seed = seed
        self.productivity_model = LinearRegressionModel(ridge=1e-3)
        self.duration_model = MultiLayerPerceptron(
            [(SESSION_FEATURE_WIDTH, "relu"), (16, "relu"), (8, "relu"), (1, "linear")],
            epochs=epochs,
            seed=seed,
        )
        self.time_model = DecisionTreeRegressor(max_depth=6, min_samples_split=3)
        self.is_trained = False
        self.user_patterns: Dict[str, StudyPattern] = {}

    def train_models(
        self, sessions: Sequence[StudySession], utc_offsets: Optional[Mapping[str, float]] = None
    ) -> None:
        """Fit the plan models; ``utc_offsets`` maps user ids to hours east of UTC for local-time features."""
        if len(sessions) < PlanDefaults.MIN_TRAINING_SESSIONS:
            logger.warning(
                "Insufficient data for study plan optimization (%d sessions, need %d)",
                len(sessions),
                PlanDefaults.MIN_TRAINING_SESSIONS,
            )
            return

        logger.info("Training study plan models on %d sessions", len(sessions))
        try:
            train, test = train_test_split(list(sessions), test_size=0.2, seed=self.seed)
            offsets = utc_offsets or {}
            features = np.array([session_features(s, offsets.get(s.user_id)) for s in train])
            productivity = np.array([s.completion_status / 5 for s in train])
            durations = np.array([[s.duration_minutes / 120] for s in train])

            self.productivity_model.fit(features, productivity)
            self.duration_model.fit(features, durations)
            self.time_model.fit(features, productivity)

            self.extract_user_patterns(sessions, utc_offsets)

            if test:
                metrics = self.productivity_model.evaluate(
                    [session_features(s, offsets.get(s.user_id)) for s in test], [s.completion_status / 5 for s in test]
                )
                logger.info("Productivity model metrics: r2=%.3f rmse=%.3f", metrics.r2, metrics.rmse)

            self.is_trained = True
        except (MLError, ValueError, TypeError, AttributeError) as exc:
            logger.error("Error training study plan models: %s", exc, exc_info=True)
            self.is_trained = False

    def extract_user_patterns(
        self, sessions: Sequence[StudySession], utc_offsets: Optional[Mapping[str, float]] = None
    ) -> None:
        grouped: Dict[str, List[StudySession]] = {}
        for session in sessions:
            grouped.setdefault(session.user_id, []).append(session)
        for user_id, user_sessions in grouped.items():
            self.user_patterns[user_id] = analyze_user_pattern(user_sessions, (utc_offsets or {}).get(user_id))

    def optimize_study_plan(
        self,
        activity: UserActivity,
        preferences: StudyPreferences,
        now: Optional[datetime] = None,
    ) -> StudyPlanRecommendation:
        pattern = self.user_patterns.get(activity.user_id)
        if not self.is_trained and pattern is None:
            return basic_recommendation(preferences)

        try:
            optimization = self.optimize_session_parameters(activity, now)
            return StudyPlanRecommendation(
                weekly_schedule=self.weekly_schedule(preferences, optimization),
                optimization=optimization,
                insights=self.insights(pattern),
                performance_metrics=self.performance_metrics(activity, pattern),
                source="ml" if self.is_trained else "fallback",
            )
        except (MLError, ValueError, TypeError, AttributeError, ZeroDivisionError) as exc:
            logger.error(
                "Error optimizing study plan for user %s (%d sessions): %s",
                activity.user_id,
                len(activity.sessions),
                exc,
                exc_info=True,
            )
            return basic_recommendation(preferences)

    def optimize_session_parameters(
        self, activity: UserActivity, now: Optional[datetime] = None
    ) -> SessionOptimization:
        now = now or datetime.now(timezone.utc)
        utc_offset = activity.user.timezone_offset
        window_start = now - timedelta(days=PlanDefaults.RECENT_WINDOW_DAYS)
        recent = sorted(
            (s for s in activity.sessions if s.started_at >= window_start),
            key=lambda s: s.started_at,
            reverse=True,
        )[: PlanDefaults.MAX_RECENT_SESSIONS]

        if len(recent) < PlanDefaults.MIN_RECENT_SESSIONS:
            return default_optimization()

        optimal_duration = float(PlanDefaults.DURATION)
        optimal_hour = PlanDefaults.TIME_OF_DAY
        model_productivity: Optional[float] = None

        if self.is_trained:
            try:
                avg = average_features(recent, utc_offset)
                optimal_duration = float(np.clip(self.duration_model.predict(avg) * 120, 15, 120))
                optimal_hour = self.find_optimal_time_of_day(avg)
                tuned = avg.copy()
                tuned[0] = optimal_hour / 24
                model_productivity = float(np.clip(self.time_model.predict(tuned), 0.0, 1.0))
            except MLError as exc:
                logger.error("ML optimization failed for user %s, using pattern analysis: %s", activity.user_id, exc)

        pattern_hour = peak_key(hourly_performance(recent, utc_offset))
        pattern_duration = peak_key(duration_performance(recent))
        if pattern_hour != -1:
            optimal_hour = pattern_hour
        if pattern_duration > 0:
            optimal_duration = float(round((optimal_duration + pattern_duration) / 2))

        factors = optimization_factors(recent, utc_offset)
        expected = predict_productivity(factors)
        if model_productivity is not None:
            expected = (expected + model_productivity) / 2

        return SessionOptimization(
            optimal_duration=optimal_duration,
            optimal_time_of_day=optimal_hour,
            recommended_break_interval=float(np.clip(optimal_duration / 2, 15, 45)),
            expected_productivity=expected,
            confidence_level=min(len(recent) / 20, 1.0),
            factors=factors,
        )

    def find_optimal_time_of_day(self, avg_features: np.ndarray) -> int:
        best_hour, best_score = PlanDefaults.TIME_OF_DAY, 0.0
        for hour in PlanDefaults.SEARCH_HOURS:
            candidate = avg_features.copy()
            candidate[0] = hour / 24
            score = self.productivity_model.predict(candidate)
            if score > best_score:
                best_hour, best_score = hour, score
        return best_hour

    def weekly_schedule(self, preferences: StudyPreferences, optimization: SessionOptimization) -> List[DaySchedule]:
        sessions_per_week = math.ceil(preferences.weekly_hours * 60 / optimization.optimal_duration)
        sessions_per_day = math.ceil(sessions_per_week / 7)

        schedule = []
        for day in DAYS_OF_WEEK:
            sessions = []
            for i in range(sessions_per_day):
                hour = min(23, max(8, optimization.optimal_time_of_day - 2 + i))
                subject = _subject_for(preferences.subject_priorities, i)
                session_type = session_type_for(i)
                sessions.append(
                    ScheduledSession(
                        start_time=f"{hour:02d}:00",
                        duration=optimization.optimal_duration,
                        subject=subject,
                        session_type=session_type,
                        priority=session_priority(subject, session_type, preferences.subject_priorities),
                    )
                )
            schedule.append(DaySchedule(day=day, sessions=sessions))
        return schedule

    def insights(self, pattern: Optional[StudyPattern]) -> StudyInsights:
        if pattern is None:
            return StudyInsights(
                best_study_times=["9:00 AM", "2:00 PM"],
                productivity_trends=["Insufficient data for trend analysis"],
                recommendations=[
                    "Maintain consistent study schedule",
                    "Use active recall techniques",
                    "Take regular breaks to maintain focus",
                ],
                warnings=[],
            )

        trend = pattern.productivity_trend
        change = trend[-1] - trend[0] if len(trend) > 1 else 0.0
        if change > 0.2:
            trend_message = "Productivity improving over recent sessions"
        elif change < -0.2:
            trend_message = "Productivity declining over recent sessions"
        else:
            trend_message = "Stable performance over recent sessions"

        warnings = []
        if pattern.consistency_score < 0.5:
            warnings.append("Consider more consistent study timing")
        if change < -0.2:
            warnings.append("Recent sessions are less productive; consider shorter sessions or more breaks")

        return StudyInsights(
            best_study_times=[f"{hour}:00" for hour in pattern.optimal_hours],
            productivity_trends=[trend_message],
            recommendations=[
                "Maintain consistent study schedule",
                "Use active recall techniques",
                "Take regular breaks to maintain focus",
            ],
            warnings=warnings,
        )

    def performance_metrics(self, activity: UserActivity, pattern: Optional[StudyPattern]) -> PerformanceMetrics:
        if activity.goals:
            completed = sum(1 for g in activity.goals if g.status == "COMPLETED")
            goal_progress = completed / len(activity.goals)
        else:
            goal_progress = 0.7

        return PerformanceMetrics(
            expected_efficiency=pattern.avg_rating / 5 if pattern else 0.7,
            burnout_risk=0.6 if pattern and pattern.consistency_score < 0.4 else 0.3,
            goal_progress_rate=goal_progress,
        )
