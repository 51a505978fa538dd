# ABOUTME: Encodes users, catalog items, and study context for content scoring.
# ABOUTME: Builds the 18-wide user+content+context vector and collaborative taste vectors.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Sequence

import numpy as np

from src.common.activity import study_streak, total_study_minutes
from src.common.schemas import ContentContext, ContentInteraction, ContentItem, UserActivity

LEVEL_SCORES = {"BEGINNER": 0.25, "INTERMEDIATE": 0.5, "ADVANCED": 0.75, "EXPERT": 1.0}
DIFFICULTY_SCORES = {"beginner": 0.25, "intermediate": 0.5, "advanced": 0.75, "expert": 1.0}
CONTENT_TYPE_SCORES = {
    "material": 0.2,
    "practice": 0.4,
    "video": 0.6,
    "article": 0.8,
    "quiz": 1.0,
    "exercise": 0.3,
}
SESSION_TYPE_SCORES = {"study": 0.25, "review": 0.5, "practice": 0.75, "exploration": 1.0}
PREFERENCE_SCORES = {"challenge": 1.0, "comfort": 0.0}

CONTENT_TYPES = ["material", "practice", "video", "article", "quiz", "exercise"]
DIFFICULTIES = ["beginner", "intermediate", "advanced", "expert"]
TASTE_WIDTH = len(CONTENT_TYPES) + len(DIFFICULTIES)
CONTENT_MODEL_WIDTH = 18

# content type each learning style gravitates toward
STYLE_CONTENT_TYPES = {"visual": "video", "auditory": "audio", "kinesthetic": "practice", "reading": "article"}


def difficulty_score(difficulty: str) -> float:
    return DIFFICULTY_SCORES.get(difficulty.lower(), 0.5)


def difficulty_name(value: float) -> str:
    if value < 0.3:
        return "beginner"
    if value < 0.6:
        return "intermediate"
    if value < 0.8:
        return "advanced"
    return "expert"


def interaction_success(interaction: ContentInteraction) -> float:
    """0.3 completion + 0.4 normalized rating + 0.3 learning outcome."""
    return (
        (1.0 if interaction.completed else 0.0) * 0.3
        + (interaction.rating / 5) * 0.4
        + interaction.learning_outcome * 0.3
    )


@dataclass(frozen=True)
class LearnerProfile:
    """The four user inputs to the content model, each in [0, 1]."""

    level: float
    engagement: float
    streak: float
    subject_breadth: float

    def as_vector(self) -> np.ndarray:
        return np.array([self.level, self.engagement, self.streak, self.subject_breadth])


def learner_from_activity(activity: UserActivity, now: datetime) -> LearnerProfile:
    return LearnerProfile(
        level=LEVEL_SCORES.get(activity.user.academic_level, 0.25),
        engagement=min(1.0, total_study_minutes(activity.sessions) / 1000),
        streak=min(1.0, study_streak(activity.sessions, now) / 30),
        subject_breadth=min(1.0, len(activity.user.subjects) / 10),
    )


def learner_from_interactions(interactions: Sequence[ContentInteraction]) -> LearnerProfile:
    """Approximate the learner profile of a user known only through interaction logs."""
    active_days = {i.timestamp.date() for i in interactions}
    return LearnerProfile(
        level=float(np.mean([difficulty_score(i.difficulty) for i in interactions])),
        engagement=min(1.0, sum(i.time_spent for i in interactions) / 1000),
        streak=min(1.0, len(active_days) / 30),
        subject_breadth=min(1.0, len({i.subject for i in interactions}) / 10),
    )


def content_features(item: ContentItem) -> np.ndarray:
    return np.array(
        [
            difficulty_score(item.difficulty),
            CONTENT_TYPE_SCORES.get(item.content_type, 0.5),
            min(1.0, item.estimated_time / 120),
            item.user_rating,
            item.completion_rate,
            item.content_quality,
        ]
    )


def context_features(context: ContentContext) -> np.ndarray:
    return np.array(
        [
            SESSION_TYPE_SCORES.get(context.session_type, 0.5),
            min(1.0, context.time_available / 120),
            PREFERENCE_SCORES.get(context.difficulty_preference, 0.5),
            context.time_of_day / 24,
            context.energy_level / 5,
            min(1.0, context.distractions / 20),
            context.previous_success,
            1.0 if context.learning_objective else 0.0,
        ]
    )


def combined_features(learner: LearnerProfile, item: ContentItem, context: ContentContext) -> np.ndarray:
    return np.concatenate([learner.as_vector(), content_features(item), context_features(context)])


def difficulty_features(
    difficulty: float,
    energy: float,
    time_spent_hours: float,
    rating: float,
    completed: float,
    outcome: float,
) -> np.ndarray:
    return np.array([difficulty, energy, time_spent_hours, rating, completed, outcome])


def interaction_difficulty_features(interaction: ContentInteraction) -> np.ndarray:
    return difficulty_features(
        difficulty_score(interaction.difficulty),
        interaction.context.energy_level / 5,
        interaction.time_spent / 60,
        interaction.rating / 5,
        1.0 if interaction.completed else 0.0,
        interaction.learning_outcome,
    )


def taste_vector(interactions: Sequence[ContentInteraction]) -> np.ndarray:
    """Mean success per content type then per difficulty; 0.5 where the user has no history."""
    by_type: Dict[str, List[float]] = defaultdict(list)
    by_difficulty: Dict[str, List[float]] = defaultdict(list)
    for interaction in interactions:
        success = interaction_success(interaction)
        by_type[interaction.content_type].append(success)
        by_difficulty[interaction.difficulty].append(success)

    values = [float(np.mean(by_type[t])) if by_type.get(t) else 0.5 for t in CONTENT_TYPES]
    values += [float(np.mean(by_difficulty[d])) if by_difficulty.get(d) else 0.5 for d in DIFFICULTIES]
    return np.array(values)


def learning_style_profile(interactions: Sequence[ContentInteraction]) -> Dict[str, float]:
    """Share of success mass landing on each style's preferred content type."""
    totals: Dict[str, float] = defaultdict(float)
    for interaction in interactions:
        totals[interaction.content_type] += interaction_success(interaction)

    count = max(len(interactions), 1)
    profile = {style: totals.get(content_type, 0.0) / count for style, content_type in STYLE_CONTENT_TYPES.items()}
    profile["social"] = 0.5
    profile["solitary"] = 0.5
    return profile


def build_catalog(interactions: Sequence[ContentInteraction]) -> Dict[str, ContentItem]:
    """Aggregate interactions into catalog entries with mean rating and completion rate."""
    grouped: Dict[str, List[ContentInteraction]] = defaultdict(list)
    for interaction in interactions:
        grouped[interaction.content_id].append(interaction)

    catalog = {}
    for content_id, rows in grouped.items():
        first = rows[0]
        catalog[content_id] = ContentItem(
            content_id=content_id,
            content_type=first.content_type,
            subject=first.subject,
            difficulty=first.difficulty,
            title=f"Content {content_id}",
            description=f"{first.subject} content",
            estimated_time=30.0,
            content_quality=0.8,
            user_rating=float(np.mean([r.rating / 5 for r in rows])),
            completion_rate=float(np.mean([1.0 if r.completed else 0.0 for r in rows])),
            tags=(first.subject,),
        )
    return catalog
