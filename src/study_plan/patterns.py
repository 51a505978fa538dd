# ABOUTME: Session feature encoding and per-user study pattern analysis.
# ABOUTME: Pure functions over StudySession records; no model state lives here.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from src.common.activity import local_start
from src.common.numeric import exponential_moving_average
from src.common.schemas import StudySession

ENVIRONMENT_SCORES = {"home": 0.3, "library": 0.8, "cafe": 0.5, "office": 0.7, "outdoors": 0.4}
SUBJECT_DIFFICULTY = {
    "math": 0.9,
    "science": 0.8,
    "programming": 0.8,
    "language": 0.6,
    "history": 0.5,
    "literature": 0.6,
    "art": 0.4,
}
SESSION_FEATURE_WIDTH = 10
DURATION_BUCKET_MINUTES = 15


def encode_environment(environment: str) -> float:
    return ENVIRONMENT_SCORES.get(environment.lower(), 0.5)


def encode_subject_difficulty(subject: str) -> float:
    return SUBJECT_DIFFICULTY.get(subject.lower(), 0.6)


def day_of_week(session: StudySession, utc_offset: Optional[float] = None) -> int:
    """0 = Sunday ... 6 = Saturday, in the learner's local time."""
    return local_start(session, utc_offset).isoweekday() % 7


def session_features(session: StudySession, utc_offset: Optional[float] = None) -> np.ndarray:
    return np.array(
        [
            local_start(session, utc_offset).hour / 24,
            day_of_week(session, utc_offset) / 7,
            session.pomodoros / 8,
            session.breaks_taken / 10,
            session.energy_before / 5,
            session.distractions / 20,
            encode_environment(session.environment),
            encode_subject_difficulty(session.subject),
            session.duration_minutes / 120,
            session.focus_score / 5,
        ]
    )


def average_features(sessions: Sequence[StudySession], utc_offset: Optional[float] = None) -> np.ndarray:
    return np.mean([session_features(s, utc_offset) for s in sessions], axis=0)


def hourly_performance(sessions: Sequence[StudySession], utc_offset: Optional[float] = None) -> Dict[int, float]:
    """Mean completion status per local start hour."""
    buckets: Dict[int, List[float]] = defaultdict(list)
    for session in sessions:
        buckets[local_start(session, utc_offset).hour].append(session.completion_status)
    return {hour: float(np.mean(ratings)) for hour, ratings in buckets.items()}


def duration_performance(sessions: Sequence[StudySession]) -> Dict[int, float]:
    """Mean completion status per 15-minute duration bucket."""
    buckets: Dict[int, List[float]] = defaultdict(list)
    for session in sessions:
        bucket = int(session.duration_minutes // DURATION_BUCKET_MINUTES) * DURATION_BUCKET_MINUTES
        buckets[bucket].append(session.completion_status)
    return {bucket: float(np.mean(ratings)) for bucket, ratings in buckets.items()}


def peak_key(performance: Dict[int, float]) -> int:
    """Key with the highest positive average, or -1 when nothing qualifies."""
    best_key, best_value = -1, 0.0
    for key, value in performance.items():
        if value > best_value:
            best_key, best_value = key, value
    return best_key


def consistency_score(sessions: Sequence[StudySession], utc_offset: Optional[float] = None) -> float:
    """1 minus the variance of start hours scaled by 50, floored at 0."""
    if len(sessions) < 2:
        return 0.5
    hours = np.array([local_start(s, utc_offset).hour for s in sessions], dtype=float)
    return max(0.0, 1 - float(hours.var()) / 50)


@dataclass
class StudyPattern:
    user_id: str
    hourly_performance: List[float]
    optimal_hours: List[int]
    duration_performance: Dict[int, float]
    productivity_trend: List[float]
    total_sessions: int
    avg_rating: float
    consistency_score: float
    subjects: List[str] = field(default_factory=list)


def analyze_user_pattern(sessions: Sequence[StudySession], utc_offset: Optional[float] = None) -> StudyPattern:
    """Hours in the pattern are local when ``utc_offset`` is given, otherwise UTC."""
    if not sessions:
        raise ValueError("analyze_user_pattern needs at least one session")

    by_hour = hourly_performance(sessions, utc_offset)
    hourly = [by_hour.get(hour, 0.0) for hour in range(24)]
    # stable sort keeps earlier hours first on ties
    optimal_hours = sorted(range(24), key=lambda hour: -hourly[hour])[:3]

    chronological = sorted(sessions, key=lambda s: s.started_at)
    trend = exponential_moving_average([s.completion_status for s in chronological], alpha=0.3)

    return StudyPattern(
        user_id=sessions[0].user_id,
        hourly_performance=hourly,
        optimal_hours=optimal_hours,
        duration_performance=duration_performance(sessions),
        productivity_trend=trend[-10:],
        total_sessions=len(sessions),
        avg_rating=float(np.mean([s.completion_status for s in sessions])),
        consistency_score=consistency_score(sessions, utc_offset),
        subjects=sorted({s.subject for s in sessions}),
    )
