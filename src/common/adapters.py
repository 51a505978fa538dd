# ABOUTME: Converts exported store rows (ORM-shaped JSON) into canonical records.
# ABOUTME: Resolves legacy dual-named fields once so predictors only see typed schemas.

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd

from .schemas import (
    ContentContext,
    ContentInteraction,
    Goal,
    Partnership,
    Review,
    StudySession,
    UserActivity,
    UserRecord,
)


def _first(payload: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return default


def to_utc_datetime(value: Any) -> datetime:
    """Parse ISO strings, epoch seconds, or datetimes into tz-aware UTC datetimes."""
    if isinstance(value, (int, float)):
        ts = pd.Timestamp(value, unit="s", tz="UTC")
    else:
        ts = pd.Timestamp(value)
        ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return ts.to_pydatetime()


def _optional_datetime(value: Any) -> Optional[datetime]:
    return None if value in (None, "") else to_utc_datetime(value)


def _parse_availability(value: Any) -> Tuple[str, ...]:
    # availabilityHours is stored as a JSON string in the ORM export.
    if value is None:
        return ()
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return ()
    if isinstance(value, Mapping):
        return tuple(f"{day}-{hour}" for day, hours in value.items() for hour in hours)
    return tuple(str(slot) for slot in value)


def _parse_subjects(value: Any) -> Tuple[str, ...]:
    subjects = []
    for entry in value or []:
        if isinstance(entry, Mapping):
            subject = _first(entry, "subjectId", "subject_id", "name")
        else:
            subject = entry
        if subject:
            subjects.append(str(subject).lower())
    return tuple(subjects)


def session_from_dict(payload: Mapping[str, Any], user_id: Optional[str] = None) -> StudySession:
    started_at = to_utc_datetime(_first(payload, "startedAt", "startTime", "scheduledAt", "createdAt"))
    duration = _first(payload, "durationMinutes", "duration")
    if duration is None:
        ended = _first(payload, "endTime", "endedAt")
        duration = (to_utc_datetime(ended) - started_at).total_seconds() / 60 if ended else 0.0

    return StudySession(
        session_id=str(_first(payload, "id", "sessionId", default="")),
        user_id=str(_first(payload, "userId", "user1Id", default=user_id or "")),
        started_at=started_at,
        duration_minutes=max(0.0, float(duration)),
        subject=str(_first(payload, "subject", "subjectId", default="general")).lower(),
        completion_status=float(_first(payload, "completionStatus", "rating", default=3)),
        title=str(_first(payload, "title", default="")),
        session_type=str(_first(payload, "sessionType", "type", default="study")),
        pomodoros=int(_first(payload, "pomodoros", default=0)),
        breaks_taken=int(_first(payload, "breaksTaken", default=0)),
        energy_before=float(_first(payload, "energyBefore", default=3)),
        energy_after=float(_first(payload, "energyAfter", default=3)),
        environment=str(_first(payload, "environment", default="home")),
        distractions=int(_first(payload, "distractions", default=0)),
        focus_score=float(_first(payload, "focusScore", default=3)),
    )


def goal_from_dict(payload: Mapping[str, Any], user_id: Optional[str] = None) -> Goal:
    return Goal(
        goal_id=str(_first(payload, "id", "goalId", default="")),
        user_id=str(_first(payload, "userId", default=user_id or "")),
        status=str(_first(payload, "status", default="IN_PROGRESS")).upper(),
        created_at=to_utc_datetime(_first(payload, "createdAt")),
        target_date=_optional_datetime(payload.get("targetDate")),
        target_value=float(_first(payload, "targetValue", default=1)),
    )


def partnership_from_dict(payload: Mapping[str, Any], user_id: Optional[str] = None) -> Partnership:
    return Partnership(
        partnership_id=str(_first(payload, "id", "partnershipId", default="")),
        user_id=str(_first(payload, "userId", "user1Id", default=user_id or "")),
        partner_id=str(_first(payload, "partnerId", "user2Id", default="")),
        status=str(_first(payload, "status", default="ACTIVE")).upper(),
        created_at=to_utc_datetime(_first(payload, "createdAt")),
        rating=_first(payload, "rating", "completionStatus"),
    )


def review_from_dict(payload: Mapping[str, Any], user_id: Optional[str] = None) -> Review:
    return Review(
        review_id=str(_first(payload, "id", "reviewId", default="")),
        user_id=str(_first(payload, "userId", "targetId", default=user_id or "")),
        author_id=_first(payload, "authorId"),
        rating=float(_first(payload, "rating", default=3)),
        created_at=to_utc_datetime(_first(payload, "createdAt")),
    )


def user_activity_from_dict(payload: Mapping[str, Any]) -> UserActivity:
    """Build a UserActivity from a user row with its included relations."""

    user_id = str(payload["id"])
    user = UserRecord(
        user_id=user_id,
        created_at=to_utc_datetime(payload["createdAt"]),
        academic_level=str(_first(payload, "academicLevel", "studyLevel", default="BEGINNER")).upper(),
        learning_style=str(_first(payload, "learningStyle", default="")).lower(),
        communication_preference=str(_first(payload, "communicationPreference", default="mixed")).lower(),
        study_intensity=str(_first(payload, "studyIntensity", default="moderate")).lower(),
        availability=_parse_availability(_first(payload, "availability", "availabilityHours")),
        subjects=_parse_subjects(payload.get("subjects")),
        timezone_offset=_first(payload, "timezoneOffset"),
    )

    return UserActivity(
        user=user,
        sessions=tuple(
            session_from_dict(row, user_id) for row in _first(payload, "personalStudySessions", "sessions", default=[])
        ),
        goals=tuple(goal_from_dict(row, user_id) for row in payload.get("goals") or []),
        partnerships=tuple(
            partnership_from_dict(row, user_id) for row in _first(payload, "partnerships1", "partnerships", default=[])
        ),
        # Only reviews written by someone else count toward a user's reputation.
        reviews=tuple(review_from_dict(row, user_id) for row in payload.get("reviews") or [] if row.get("authorId")),
    )


def interaction_from_dict(payload: Mapping[str, Any]) -> ContentInteraction:
    raw_context: Dict[str, Any] = dict(payload.get("context") or {})
    context = ContentContext(
        session_type=str(_first(raw_context, "sessionType", "title", default="study")),
        time_available=float(_first(raw_context, "timeAvailable", default=payload.get("timeSpent", 60))),
        difficulty_preference=str(_first(raw_context, "difficultyPreference", default="adaptive")),
        time_of_day=int(_first(raw_context, "timeOfDay", default=12)),
        energy_level=float(_first(raw_context, "energyLevel", default=3)),
        distractions=int(_first(raw_context, "distractions", default=0)),
        previous_success=float(_first(raw_context, "previousSuccess", default=0.5)),
        current_subject=raw_context.get("currentSubject"),
        learning_objective=_first(raw_context, "studyGoal", "learningObjective"),
    )
    return ContentInteraction(
        user_id=str(_first(payload, "userId", "user1Id")),
        content_id=str(payload["contentId"]),
        content_type=str(payload.get("contentType", "material")),
        subject=str(payload.get("subject", "general")).lower(),
        difficulty=str(payload.get("difficulty", "intermediate")).lower(),
        time_spent=float(payload.get("timeSpent", 0)),
        completed=bool(payload.get("completed", False)),
        rating=float(_first(payload, "rating", "completionStatus", default=3)),
        learning_outcome=float(payload.get("learningOutcome", 0)),
        timestamp=to_utc_datetime(_first(payload, "timestamp", default=datetime.now(timezone.utc))),
        context=context,
    )


class JsonSnapshotStore:
    """ActivityStore over a JSON export shaped as {"users": [...], "interactions": [...]}."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._payload: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._payload is None:
            with open(self.path) as f:
                self._payload = json.load(f)
        return self._payload

    def load_user_activity(self) -> List[UserActivity]:
        return [user_activity_from_dict(row) for row in self._load().get("users", [])]

    def load_interactions(self) -> List[ContentInteraction]:
        return [interaction_from_dict(row) for row in self._load().get("interactions", [])]
