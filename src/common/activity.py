# ABOUTME: Aggregates raw study activity into reusable per-user signals.
# ABOUTME: Shared by the engagement, content, and trainer feature builders.

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from .schemas import StudySession

STREAK_LOOKBACK_DAYS = 30


def whole_days_between(earlier: datetime, later: datetime) -> int:
    return int((later - earlier).total_seconds() // 86400)


def study_streak(sessions: Sequence[StudySession], now: datetime, max_days: int = STREAK_LOOKBACK_DAYS) -> int:
    """Consecutive calendar days with at least one session, counting back from today."""
    if not sessions:
        return 0

    active_days = {s.started_at.astimezone(now.tzinfo).date() for s in sessions}
    today = now.date()
    streak = 0
    for offset in range(max_days):
        if today - timedelta(days=offset) not in active_days:
            break
        streak += 1
    return streak


def local_start(session: StudySession, utc_offset: Optional[float] = None) -> datetime:
    """Session start in the learner's local time; stays UTC when the offset is unknown."""
    if utc_offset is None:
        return session.started_at
    return session.started_at.astimezone(timezone(timedelta(hours=utc_offset)))


def total_study_minutes(sessions: Sequence[StudySession]) -> float:
    return float(sum(s.duration_minutes for s in sessions))
