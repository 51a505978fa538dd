# ABOUTME: Extracts per-user and pairwise features for partner compatibility.
# ABOUTME: Produces the fixed 28-wide vector consumed by the matching models.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import FrozenSet, Optional

import numpy as np

from src.common.schemas import Goal, UserActivity

LEVEL_SCORES = {"BEGINNER": 0.2, "INTERMEDIATE": 0.4, "ADVANCED": 0.7, "EXPERT": 1.0}
LEARNING_STYLE_SCORES = {"visual": 0.2, "auditory": 0.4, "kinesthetic": 0.6, "reading": 0.8}
COMMUNICATION_SCORES = {"formal": 0.2, "casual": 0.8, "mixed": 0.5}
INTENSITY_SCORES = {"relaxed": 0.3, "moderate": 0.6, "intensive": 0.9}

PAIRWISE_FEATURE_NAMES = [
    "subjectOverlap",
    "levelDifference",
    "learningStyleDifference",
    "timeOverlap",
    "locationCompatibility",
    "activityDifference",
    "goalSimilarityDifference",
    "averageSuccessRate",
    "communicationDifference",
    "intensityDifference",
    "personalityMatch",
    "scheduleFlexibilityDifference",
]
COMBINED_WIDTH = 28

ACTIVE_WINDOW_DAYS = 30
SESSIONS_FOR_FULL_ACTIVITY = 20
DEFAULT_SUCCESS_RATE = 0.6


@dataclass(frozen=True)
class UserMatchFeatures:
    """Individual features of one user, plus the raw sets pairwise features need."""

    level: float
    learning_style: float
    activity: float
    goal_complexity: float
    past_success_rate: float
    communication: float
    intensity: float
    schedule_flexibility: float
    subjects: FrozenSet[str] = frozenset()
    availability: FrozenSet[str] = frozenset()
    timezone_offset: Optional[float] = None

    def as_vector(self) -> np.ndarray:
        return np.array(
            [
                self.level,
                self.learning_style,
                self.activity,
                self.goal_complexity,
                self.past_success_rate,
                self.communication,
                self.intensity,
                self.schedule_flexibility,
            ]
        )


def goal_complexity(goal: Goal, now: datetime) -> float:
    """Target value per remaining week, capped at 1."""
    if goal.target_date is not None:
        days_left = max(0.0, (goal.target_date - now).total_seconds() / 86400)
    else:
        days_left = 30.0
    weeks_left = days_left / 7
    if weeks_left == 0:
        return 1.0
    return min(1.0, (goal.target_value or 1.0) / weeks_left)


def extract_user_features(activity: UserActivity, now: Optional[datetime] = None) -> UserMatchFeatures:
    now = now or datetime.now(timezone.utc)
    user = activity.user

    completed = [p for p in activity.partnerships if p.status == "COMPLETED"]
    if completed:
        past_success = sum(p.rating if p.rating is not None else 3 for p in completed) / (len(completed) * 5)
    else:
        past_success = DEFAULT_SUCCESS_RATE

    window_start = now - timedelta(days=ACTIVE_WINDOW_DAYS)
    recent_sessions = [s for s in activity.sessions if s.started_at >= window_start]
    activity_level = min(len(recent_sessions) / SESSIONS_FOR_FULL_ACTIVITY, 1.0)

    active_goals = [g for g in activity.goals if g.status == "IN_PROGRESS"]
    complexity = float(np.mean([goal_complexity(g, now) for g in active_goals])) if active_goals else 0.5

    flexibility = min(1.0, len(user.availability) / 10) if user.availability else 0.5

    return UserMatchFeatures(
        level=LEVEL_SCORES.get(user.academic_level, 0.2),
        learning_style=LEARNING_STYLE_SCORES.get(user.learning_style, 0.5),
        activity=activity_level,
        goal_complexity=complexity,
        past_success_rate=past_success,
        communication=COMMUNICATION_SCORES.get(user.communication_preference, 0.5),
        intensity=INTENSITY_SCORES.get(user.study_intensity, 0.6),
        schedule_flexibility=flexibility,
        subjects=frozenset(user.subjects),
        availability=frozenset(user.availability),
        timezone_offset=user.timezone_offset,
    )


def _jaccard(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def subject_overlap(a: UserMatchFeatures, b: UserMatchFeatures) -> float:
    return _jaccard(a.subjects, b.subjects)


def time_overlap(a: UserMatchFeatures, b: UserMatchFeatures) -> float:
    return _jaccard(a.availability, b.availability)


def location_compatibility(a: UserMatchFeatures, b: UserMatchFeatures) -> float:
    if a.timezone_offset is None or b.timezone_offset is None:
        return 0.5
    return max(0.0, 1 - abs(a.timezone_offset - b.timezone_offset) / 12)


def personality_match(a: UserMatchFeatures, b: UserMatchFeatures) -> float:
    communication_diff = abs(a.communication - b.communication)
    intensity_diff = abs(a.intensity - b.intensity)
    return 1 - (communication_diff + intensity_diff) / 2


def pairwise_features(a: UserMatchFeatures, b: UserMatchFeatures) -> np.ndarray:
    """The 12 comparative features, ordered as PAIRWISE_FEATURE_NAMES."""
    return np.array(
        [
            subject_overlap(a, b),
            abs(a.level - b.level),
            abs(a.learning_style - b.learning_style),
            time_overlap(a, b),
            location_compatibility(a, b),
            abs(a.activity - b.activity),
            abs(a.goal_complexity - b.goal_complexity),
            (a.past_success_rate + b.past_success_rate) / 2,
            abs(a.communication - b.communication),
            abs(a.intensity - b.intensity),
            personality_match(a, b),
            abs(a.schedule_flexibility - b.schedule_flexibility),
        ]
    )


def combine_features(a: UserMatchFeatures, b: UserMatchFeatures) -> np.ndarray:
    """Pairwise block followed by each user's individual features."""
    return np.concatenate([pairwise_features(a, b), a.as_vector(), b.as_vector()])
