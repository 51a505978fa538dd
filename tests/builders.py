# ABOUTME: Builders for users and study activity shared by the test modules.
# ABOUTME: Every timestamp is tz-aware UTC and anchored to a fixed reference time.

from datetime import datetime, timedelta, timezone

from src.common.schemas import (
    ContentContext,
    ContentInteraction,
    Goal,
    Partnership,
    Review,
    StudySession,
    UserActivity,
    UserRecord,
)

NOW = datetime(2024, 5, 15, 18, 0, tzinfo=timezone.utc)


def sessions(user_id, count, days=14, duration=90.0, subject="math", ratings=None, hour=12):
    """``count`` sessions spread over the last ``days`` calendar days, oldest first."""
    rows = []
    for i in range(count):
        day = days - 1 - (i * days) // count
        started = NOW.replace(hour=hour, minute=0) - timedelta(days=day) + timedelta(minutes=i)
        rows.append(
            StudySession(
                session_id=f"{user_id}-s{i}",
                user_id=user_id,
                started_at=started,
                duration_minutes=duration,
                subject=subject,
                completion_status=ratings[i] if ratings else 3.0,
                breaks_taken=1,
                energy_before=4.0,
                environment="library",
            )
        )
    return tuple(rows)


def activity(
    user_id="u1",
    registered_days_ago=14,
    study_sessions=(),
    goals=(),
    partnerships=(),
    reviews=(),
    **user_fields,
):
    user_fields.setdefault("subjects", ("math", "physics"))
    user_fields.setdefault("academic_level", "INTERMEDIATE")
    user = UserRecord(user_id=user_id, created_at=NOW - timedelta(days=registered_days_ago), **user_fields)
    return UserActivity(
        user=user,
        sessions=tuple(study_sessions),
        goals=tuple(goals),
        partnerships=tuple(partnerships),
        reviews=tuple(reviews),
    )


def goal(user_id, status="IN_PROGRESS", days_ago=5, target_in_days=None):
    return Goal(
        goal_id=f"{user_id}-g{days_ago}-{status}",
        user_id=user_id,
        status=status,
        created_at=NOW - timedelta(days=days_ago),
        target_date=NOW + timedelta(days=target_in_days) if target_in_days is not None else None,
    )


def partnership(user_id, partner_id, rating=None):
    return Partnership(
        partnership_id=f"{user_id}-{partner_id}",
        user_id=user_id,
        partner_id=partner_id,
        status="ACTIVE",
        created_at=NOW - timedelta(days=10),
        rating=rating,
    )


def review(user_id, rating=4.0, author_id="someone"):
    return Review(
        review_id=f"{user_id}-r{rating}",
        user_id=user_id,
        author_id=author_id,
        rating=rating,
        created_at=NOW - timedelta(days=2),
    )


def interaction(user_id, content_id, subject="math", difficulty="intermediate", rating=4.0, completed=True, **extra):
    return ContentInteraction(
        user_id=user_id,
        content_id=content_id,
        content_type=extra.pop("content_type", "practice"),
        subject=subject,
        difficulty=difficulty,
        time_spent=extra.pop("time_spent", 30.0),
        completed=completed,
        rating=rating,
        learning_outcome=extra.pop("learning_outcome", 0.7),
        timestamp=extra.pop("timestamp", NOW - timedelta(days=1)),
        context=extra.pop("context", ContentContext()),
    )
