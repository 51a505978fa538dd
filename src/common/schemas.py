# ABOUTME: Defines canonical records shared by every predictor in the toolkit.
# ABOUTME: Centralizes user, session, goal, partnership, review, and content schemas.

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional, Protocol, Sequence, Tuple

PredictionSource = Literal["ml", "fallback"]


@dataclass(frozen=True)
class UserRecord:
    """Canonical user row with the profile fields feature extraction reads."""

    user_id: str
    created_at: datetime
    academic_level: str = "BEGINNER"
    learning_style: str = ""
    communication_preference: str = "mixed"
    study_intensity: str = "moderate"
    availability: Tuple[str, ...] = ()
    subjects: Tuple[str, ...] = ()
    timezone_offset: Optional[float] = None


@dataclass(frozen=True)
class StudySession:
    """One personal study session; completion_status is a 1-5 productivity rating."""

    session_id: str
    user_id: str
    started_at: datetime
    duration_minutes: float
    subject: str = "general"
    completion_status: float = 3.0
    title: str = ""
    session_type: str = "study"
    pomodoros: int = 0
    breaks_taken: int = 0
    energy_before: float = 3.0
    energy_after: float = 3.0
    environment: str = "home"
    distractions: int = 0
    focus_score: float = 3.0


@dataclass(frozen=True)
class Goal:
    goal_id: str
    user_id: str
    status: str
    created_at: datetime
    target_date: Optional[datetime] = None
    target_value: float = 1.0


@dataclass(frozen=True)
class Partnership:
    partnership_id: str
    user_id: str
    partner_id: str
    status: str
    created_at: datetime
    rating: Optional[float] = None


@dataclass(frozen=True)
class Review:
    review_id: str
    user_id: str
    author_id: Optional[str]
    rating: float
    created_at: datetime


@dataclass(frozen=True)
class UserActivity:
    """A user together with the related rows loaded from the store."""

    user: UserRecord
    sessions: Tuple[StudySession, ...] = ()
    goals: Tuple[Goal, ...] = ()
    partnerships: Tuple[Partnership, ...] = ()
    reviews: Tuple[Review, ...] = ()

    @property
    def user_id(self) -> str:
        return self.user.user_id


@dataclass(frozen=True)
class ContentContext:
    """Situation a piece of content is consumed (or recommended) in."""

    session_type: str = "study"
    time_available: float = 60.0
    difficulty_preference: str = "adaptive"
    time_of_day: int = 12
    energy_level: float = 3.0
    distractions: int = 0
    previous_success: float = 0.5
    current_subject: Optional[str] = None
    learning_objective: Optional[str] = None


@dataclass(frozen=True)
class ContentInteraction:
    user_id: str
    content_id: str
    content_type: str
    subject: str
    difficulty: str
    time_spent: float
    completed: bool
    rating: float
    learning_outcome: float
    timestamp: datetime
    context: ContentContext = field(default_factory=ContentContext)


@dataclass(frozen=True)
class ContentItem:
    """Catalog entry; statistics are aggregated from interactions."""

    content_id: str
    content_type: str
    subject: str
    difficulty: str
    title: str = ""
    description: str = ""
    estimated_time: float = 30.0
    content_quality: float = 0.8
    user_rating: float = 0.0
    completion_rate: float = 0.0
    tags: Tuple[str, ...] = ()


class ActivityStore(Protocol):
    """Read-only view of the external data store."""

    def load_user_activity(self) -> Sequence[UserActivity]:
        ...

    def load_interactions(self) -> Sequence[ContentInteraction]:
        ...
