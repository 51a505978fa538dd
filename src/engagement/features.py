# ABOUTME: Derives the 18 engagement features from a user's study activity.
# ABOUTME: Shared by the engagement predictor and the training harness.

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

import numpy as np

from src.common.activity import local_start, study_streak, total_study_minutes, whole_days_between
from src.common.schemas import UserActivity

SKILL_LEVELS = {"BEGINNER": 1, "INTERMEDIATE": 2, "ADVANCED": 3, "EXPERT": 4}


@dataclass(frozen=True)
class EngagementFeatures:
    total_study_hours: float
    average_session_length: float
    session_frequency: float
    streak_length: int
    completion_rate: float
    partner_count: int
    group_participation: float
    message_frequency: float
    review_count: int
    active_goals: int
    goal_completion_rate: float
    days_since_last_goal: int
    days_since_registration: int
    last_activity_days: int
    weekend_activity: int
    average_rating: float
    skill_level: int
    subject_count: int

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


FEATURE_NAMES = list(EngagementFeatures.__dataclass_fields__)


def extract_features(activity: UserActivity, now: Optional[datetime] = None) -> EngagementFeatures:
    """
    Summarise a user's activity as of ``now``.

    ``average_session_length`` is in minutes and ``session_frequency`` is
    sessions per day since registration. ``completion_rate`` is the goal
    completion rate when the user has goals, otherwise the mean session
    completion status scaled to [0, 1]. Group and message activity are not
    part of the store export and stay at 0.
    """
    now = now or datetime.now(timezone.utc)
    user = activity.user
    sessions = sorted(activity.sessions, key=lambda s: s.started_at, reverse=True)
    goals = activity.goals

    days_since_registration = max(0, whole_days_between(user.created_at, now))
    minutes = total_study_minutes(sessions)

    completed_goals = sum(1 for g in goals if g.status == "COMPLETED")
    goal_completion_rate = completed_goals / len(goals) if goals else 0.0
    if goals:
        completion_rate = goal_completion_rate
    elif sessions:
        completion_rate = float(np.mean([s.completion_status for s in sessions])) / 5
    else:
        completion_rate = 0.0

    if goals:
        latest_goal = max(g.created_at for g in goals)
        days_since_last_goal = whole_days_between(latest_goal, now)
    else:
        days_since_last_goal = days_since_registration

    last_activity_days = whole_days_between(sessions[0].started_at, now) if sessions else days_since_registration

    reviews = activity.reviews
    average_rating = float(np.mean([r.rating for r in reviews])) if reviews else 0.0

    return EngagementFeatures(
        total_study_hours=minutes / 60,
        average_session_length=minutes / len(sessions) if sessions else 0.0,
        session_frequency=len(sessions) / max(days_since_registration, 1),
        streak_length=study_streak(sessions, now),
        completion_rate=completion_rate,
        partner_count=len(activity.partnerships),
        group_participation=0.0,
        message_frequency=0.0,
        review_count=len(reviews),
        active_goals=len(goals) - completed_goals,
        goal_completion_rate=goal_completion_rate,
        days_since_last_goal=days_since_last_goal,
        days_since_registration=days_since_registration,
        last_activity_days=max(0, last_activity_days),
        # isoweekday: 6 = Saturday, 7 = Sunday, in the learner's local time
        weekend_activity=sum(1 for s in sessions if local_start(s, user.timezone_offset).isoweekday() >= 6),
        average_rating=average_rating,
        skill_level=SKILL_LEVELS.get(user.academic_level, 1),
        subject_count=len(user.subjects),
    )
