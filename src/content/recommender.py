# ABOUTME: Recommends study content, practice problems, and focus topics per user.
# ABOUTME: Blends an MLP content model with per-item k-NN collaborative filtering.

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from src.common.errors import MLError
from src.common.numeric import train_test_split
from src.common.schemas import (
    ContentContext,
    ContentInteraction,
    ContentItem,
    PredictionSource,
    StudySession,
    UserActivity,
)
from src.models import DecisionTreeRegressor, KNearestNeighbors, MultiLayerPerceptron

from .features import (
    CONTENT_MODEL_WIDTH,
    STYLE_CONTENT_TYPES,
    LearnerProfile,
    build_catalog,
    combined_features,
    difficulty_features,
    difficulty_name,
    difficulty_score,
    interaction_difficulty_features,
    interaction_success,
    learner_from_activity,
    learner_from_interactions,
    learning_style_profile,
    taste_vector,
)

logger = logging.getLogger(__name__)


class ContentThresholds:
    MIN_INTERACTIONS = 50
    CONTENT_WEIGHT = 0.6
    COLLABORATIVE_WEIGHT = 0.4
    ML_CONFIDENCE = 0.8
    RULE_CONFIDENCE = 0.6
    ERROR_CONFIDENCE = 0.4
    FOCUS_URGENCY = 0.3
    DIFFICULTY_WINDOW = 0.2


@dataclass
class ContentRecommendation:
    content_id: str
    content_type: str
    title: str
    description: str
    subject: str
    difficulty: str
    estimated_time: float
    relevance_score: float
    confidence_score: float
    reason: str
    tags: List[str]
    content_quality: float
    user_rating: float
    completion_rate: float
    concepts_covered: List[str] = field(default_factory=list)
    prerequisites: List[str] = field(default_factory=list)
    source: PredictionSource = "fallback"

    @classmethod
    def from_item(
        cls, item: ContentItem, relevance: float, confidence: float, source: PredictionSource
    ) -> "ContentRecommendation":
        return cls(
            content_id=item.content_id,
            content_type=item.content_type,
            title=item.title,
            description=item.description,
            subject=item.subject,
            difficulty=item.difficulty,
            estimated_time=item.estimated_time,
            relevance_score=relevance,
            confidence_score=confidence,
            reason="",
            tags=list(item.tags),
            content_quality=item.content_quality,
            user_rating=item.user_rating,
            completion_rate=item.completion_rate,
            source=source,
        )


@dataclass
class FocusTopic:
    topic: str
    subject: str
    urgency: float
    reason: str
    recommended_content: List[ContentRecommendation]


def rule_based_score(level: float, item: ContentItem, time_available: Optional[float] = None) -> float:
    """Heuristic relevance from level fit, quality, popularity, and time fit, clamped to [0, 1]."""
    level_diff = abs(level - difficulty_score(item.difficulty))
    if time_available is None or item.estimated_time <= 0 or item.estimated_time <= time_available:
        time_fit = 1.0
    else:
        time_fit = time_available / item.estimated_time

    score = 0.5
    score += (1 - level_diff) * 0.3
    score += item.content_quality * 0.2
    score += item.user_rating * 0.2
    score += item.completion_rate * 0.2
    score += time_fit * 0.1
    return float(np.clip(score, 0.0, 1.0))


def apply_diversity_filter(
    recommendations: Sequence[ContentRecommendation], limit: int
) -> List[ContentRecommendation]:
    """Highest scores first, preferring items that add an unseen type or subject; then backfill."""
    ranked = sorted(recommendations, key=lambda r: r.relevance_score, reverse=True)
    selected: List[ContentRecommendation] = []
    used_types, used_subjects = set(), set()

    for item in ranked:
        if len(selected) >= limit:
            break
        if item.content_type not in used_types or item.subject not in used_subjects:
            selected.append(item)
            used_types.add(item.content_type)
            used_subjects.add(item.subject)

    for item in ranked:
        if len(selected) >= limit:
            break
        if not any(item is chosen for chosen in selected):
            selected.append(item)

    return selected


def recommendation_reason(rec: ContentRecommendation, context: ContentContext, preferred_type: Optional[str]) -> str:
    reasons = []
    if rec.relevance_score > 0.8:
        reasons.append("High relevance to your learning goals")
    if rec.user_rating > 0.8:
        reasons.append("Highly rated by other users")
    if context.session_type == "practice" and rec.content_type == "practice":
        reasons.append("Perfect for practice session")
    if rec.completion_rate > 0.8:
        reasons.append("High completion rate indicates engaging content")
    if preferred_type is not None and rec.content_type == preferred_type:
        reasons.append("Matches your preferred learning style")
    return reasons[0] if reasons else "Recommended based on your preferences"


def prerequisites_for(rec: ContentRecommendation) -> List[str]:
    if rec.difficulty in ("advanced", "expert"):
        return [f"Basic {rec.subject}"]
    return []


def fallback_recommendations(subjects: Sequence[str], limit: int) -> List[ContentRecommendation]:
    subjects = list(subjects) or ["General"]
    return [
        ContentRecommendation(
            content_id=f"fallback-{index}",
            content_type="material",
            title=f"{subject} Study Materials",
            description=f"Recommended study materials for {subject}",
            subject=subject,
            difficulty="intermediate",
            estimated_time=30.0,
            relevance_score=0.6,
            confidence_score=ContentThresholds.ERROR_CONFIDENCE,
            reason="Basic recommendation based on your subjects",
            tags=[subject],
            content_quality=0.7,
            user_rating=0.7,
            completion_rate=0.6,
            concepts_covered=[subject],
        )
        for index, subject in enumerate(subjects[: max(limit, 1)])
    ]


def fallback_practice_problems(subject: str, difficulty: float, count: int) -> List[ContentRecommendation]:
    level = difficulty_name(difficulty)
    return [
        ContentRecommendation(
            content_id=f"fallback-practice-{index}",
            content_type="practice",
            title=f"{subject} Practice Problem {index + 1}",
            description=f"{level} level practice problem for {subject}",
            subject=subject,
            difficulty=level,
            estimated_time=15.0,
            relevance_score=0.6,
            confidence_score=ContentThresholds.ERROR_CONFIDENCE,
            reason="Basic practice problem",
            tags=[subject, "practice"],
            content_quality=0.7,
            user_rating=0.6,
            completion_rate=0.7,
            concepts_covered=[subject],
        )
        for index in range(count)
    ]


def _sessions_for_subject(sessions: Iterable[StudySession], subject: str) -> List[StudySession]:
    subject = subject.lower()
    return [s for s in sessions if s.subject.lower() == subject or subject in s.title.lower()]


def adaptive_difficulty(sessions: Sequence[StudySession], current: float) -> float:
    """Step difficulty by 0.1 toward the learner's recent performance."""
    if not sessions:
        return current
    recent = sorted(sessions, key=lambda s: s.started_at)[-10:]
    performance = float(np.mean([s.completion_status for s in recent])) / 5
    if performance > 0.8:
        return min(1.0, current + 0.1)
    if performance < 0.6:
        return max(0.0, current - 0.1)
    return current


def performance_trend(sessions: Sequence[StudySession]) -> float:
    """Second-half minus first-half mean rating, scaled by 5; 0 for fewer than 3 sessions."""
    if len(sessions) < 3:
        return 0.0
    ratings = [s.completion_status for s in sessions]
    middle = len(ratings) // 2
    return (float(np.mean(ratings[middle:])) - float(np.mean(ratings[:middle]))) / 5


def difficulty_spots(sessions: Sequence[StudySession]) -> List[str]:
    spots: List[str] = []
    for session in sessions:
        label = session.title or session.subject
        if session.completion_status < 3 and label not in spots:
            spots.append(label)
    return spots


def topic_urgency(trend: float, spots: Sequence[str]) -> float:
    urgency = 0.0
    if trend < -0.2:
        urgency += 0.4
    urgency += min(0.4, len(spots) * 0.1)
    if spots:
        urgency += 0.2
    return min(1.0, urgency)


def focus_reason(trend: float, spots: Sequence[str], urgency: float) -> str:
    if trend < -0.2:
        return "Recent performance decline detected"
    if len(spots) > 2:
        return "Multiple areas showing difficulty"
    if urgency > 0.7:
        return "High priority based on learning goals"
    return "Recommended for continued progress"


class ContentRecommendationEngine:
    """
    Content recommendations from three learned pieces:

    - content model: MLP 18→32→16→8→1 (sigmoid) over learner(4) + content(6) + context(8)
      predicting interaction success
    - collaborative filter: one k-NN (k=10) per catalog item over the 10-wide taste
      vectors of the users who interacted with it
    - difficulty model: regression tree (depth 8, min split 3) predicting whether an
      interaction at a given difficulty succeeds

    Untrained, items are scored by ``rule_based_score``; an empty catalog yields
    generic fallback recommendations.
    """

    def __init__(self, seed: Optional[int] = 42, epochs: int = 100):
        self.seed = seed
        self.content_model = MultiLayerPerceptron(
            [(CONTENT_MODEL_WIDTH, "relu"), (32, "relu"), (16, "relu"), (8, "relu"), (1, "sigmoid")],
            epochs=epochs,
            seed=seed,
        )
        self.difficulty_model = DecisionTreeRegressor(max_depth=8, min_samples_split=3)
        self.collaborative_models: Dict[str, KNearestNeighbors] = {}
        self.catalog: Dict[str, ContentItem] = {}
        self.user_tastes: Dict[str, np.ndarray] = {}
        self.user_profiles: Dict[str, Dict[str, float]] = {}
        self.user_content_matrix: Dict[str, Dict[str, float]] = {}
        self.is_trained = False

    def register_content(self, items: Iterable[ContentItem]) -> None:
        for item in items:
            self.catalog[item.content_id] = item

    def train_models(self, interactions: Sequence[ContentInteraction]) -> None:
        if len(interactions) < ContentThresholds.MIN_INTERACTIONS:
            logger.warning(
                "Insufficient content interaction data (%d < %d)",
                len(interactions),
                ContentThresholds.MIN_INTERACTIONS,
            )
            return

        logger.info("Training content recommendation models on %d interactions", len(interactions))
        try:
            by_user: Dict[str, List[ContentInteraction]] = defaultdict(list)
            for interaction in interactions:
                by_user[interaction.user_id].append(interaction)

            self.catalog.update(build_catalog(interactions))
            learners = {user_id: learner_from_interactions(rows) for user_id, rows in by_user.items()}
            self.user_tastes = {user_id: taste_vector(rows) for user_id, rows in by_user.items()}
            self.user_profiles = {user_id: learning_style_profile(rows) for user_id, rows in by_user.items()}
            self.user_content_matrix = defaultdict(dict)
            for interaction in interactions:
                self.user_content_matrix[interaction.user_id][interaction.content_id] = interaction_success(interaction)
            self.user_content_matrix = dict(self.user_content_matrix)

            train, test = train_test_split(list(interactions), test_size=0.2, seed=self.seed)

            def _rows(batch: Sequence[ContentInteraction]) -> Tuple[np.ndarray, np.ndarray]:
                X = np.array(
                    [
                        combined_features(learners[i.user_id], self.catalog[i.content_id], i.context)
                        for i in batch
                    ]
                )
                y = np.array([[interaction_success(i)] for i in batch])
                return X, y

            train_X, train_y = _rows(train)
            self.content_model.fit(train_X, train_y)

            self.collaborative_models = {}
            raters: Dict[str, List[str]] = defaultdict(list)
            for user_id, ratings in self.user_content_matrix.items():
                for content_id in ratings:
                    raters[content_id].append(user_id)
            for content_id, user_ids in raters.items():
                model = KNearestNeighbors(k=10)
                model.fit(
                    [self.user_tastes[u] for u in user_ids],
                    [self.user_content_matrix[u][content_id] for u in user_ids],
                )
                self.collaborative_models[content_id] = model

            self.difficulty_model.fit(
                [interaction_difficulty_features(i) for i in interactions],
                [1.0 if i.rating >= 4 and i.completed else 0.0 for i in interactions],
            )

            if test:
                test_X, test_y = _rows(test)
                metrics = self.content_model.evaluate(test_X, test_y)
                logger.info("Content model metrics: r2=%.3f rmse=%.3f", metrics.r2, metrics.rmse)

            self.is_trained = True
        except (MLError, ValueError, KeyError) as exc:
            logger.error("Error training content recommendation models: %s", exc, exc_info=True)
            self.is_trained = False

    # -- scoring ----------------------------------------------------------

    def _candidates(self, activity: UserActivity, context: ContentContext) -> List[ContentItem]:
        if context.current_subject:
            subject = context.current_subject.lower()
            return [item for item in self.catalog.values() if item.subject.lower() == subject]
        subjects = {s.lower() for s in activity.user.subjects}
        return [item for item in self.catalog.values() if item.subject.lower() in subjects]

    def _collaborative_score(self, user_id: str, content_id: str) -> Optional[float]:
        model = self.collaborative_models.get(content_id)
        if model is None:
            return None
        taste = self.user_tastes.get(user_id)
        if taste is None:
            taste = taste_vector([])
        return float(model.predict(taste))

    def score_content(
        self,
        user_id: str,
        learner: LearnerProfile,
        item: ContentItem,
        context: ContentContext,
    ) -> Tuple[float, float, PredictionSource]:
        """Return (relevance, confidence, source) for one catalog item."""
        if not self.is_trained:
            return (
                rule_based_score(learner.level, item, context.time_available),
                ContentThresholds.RULE_CONFIDENCE,
                "fallback",
            )
        try:
            relevance = float(self.content_model.predict(combined_features(learner, item, context)))
            collaborative = self._collaborative_score(user_id, item.content_id)
            if collaborative is not None:
                relevance = (
                    ContentThresholds.CONTENT_WEIGHT * relevance
                    + ContentThresholds.COLLABORATIVE_WEIGHT * collaborative
                )
            return float(np.clip(relevance, 0.0, 1.0)), ContentThresholds.ML_CONFIDENCE, "ml"
        except MLError as exc:
            logger.warning("Content model failed for %s, using rules: %s", item.content_id, exc)
            return (
                rule_based_score(learner.level, item, context.time_available),
                ContentThresholds.ERROR_CONFIDENCE,
                "fallback",
            )

    def _preferred_type(self, user_id: str) -> Optional[str]:
        profile = self.user_profiles.get(user_id)
        if not profile:
            return None
        style = max(STYLE_CONTENT_TYPES, key=lambda s: profile.get(s, 0.0))
        return STYLE_CONTENT_TYPES[style] if profile.get(style, 0.0) > 0 else None

    # -- public operations -----------------------------------------------

    def recommend_content(
        self,
        activity: UserActivity,
        context: Optional[ContentContext] = None,
        limit: int = 10,
        now: Optional[datetime] = None,
    ) -> List[ContentRecommendation]:
        context = context or ContentContext()
        now = now or datetime.now(timezone.utc)
        subjects = [context.current_subject] if context.current_subject else list(activity.user.subjects)

        try:
            learner = learner_from_activity(activity, now)
            scored = []
            for item in self._candidates(activity, context):
                relevance, confidence, source = self.score_content(activity.user_id, learner, item, context)
                scored.append(ContentRecommendation.from_item(item, relevance, confidence, source))

            if not scored:
                logger.info("No catalog content for user %s; returning fallback recommendations", activity.user_id)
                return fallback_recommendations(subjects, limit)

            preferred = self._preferred_type(activity.user_id)
            diverse = apply_diversity_filter(scored, limit)
            diverse.sort(key=lambda r: r.relevance_score, reverse=True)
            return [
                replace(
                    rec,
                    reason=recommendation_reason(rec, context, preferred),
                    concepts_covered=[c for c in (rec.subject, rec.content_type) if c],
                    prerequisites=prerequisites_for(rec),
                )
                for rec in diverse[:limit]
            ]
        except (MLError, ValueError, KeyError, TypeError) as exc:
            logger.error(
                "Error generating content recommendations for user %s (%d catalog items): %s",
                activity.user_id,
                len(self.catalog),
                exc,
                exc_info=True,
            )
            return fallback_recommendations(subjects, limit)

    def recommend_practice_problems(
        self,
        activity: UserActivity,
        subject: str,
        current_difficulty: float,
        count: int = 5,
        now: Optional[datetime] = None,
    ) -> List[ContentRecommendation]:
        now = now or datetime.now(timezone.utc)
        try:
            sessions = _sessions_for_subject(activity.sessions, subject)
            target = adaptive_difficulty(sessions, current_difficulty)
            learner = learner_from_activity(activity, now)
            context = ContentContext(session_type="practice", current_subject=subject)

            if sessions:
                energy = float(np.mean([s.energy_before for s in sessions])) / 5
                recent_rating = float(np.mean([s.completion_status for s in sessions])) / 5
            else:
                energy, recent_rating = 0.6, 0.6

            problems = []
            for item in self.catalog.values():
                if item.subject.lower() != subject.lower() or item.content_type != "practice":
                    continue
                if abs(difficulty_score(item.difficulty) - target) >= ContentThresholds.DIFFICULTY_WINDOW:
                    continue

                relevance, confidence, source = self.score_content(activity.user_id, learner, item, context)
                if self.difficulty_model.is_trained:
                    success = self.difficulty_model.predict(
                        difficulty_features(
                            difficulty_score(item.difficulty),
                            energy,
                            item.estimated_time / 60,
                            recent_rating,
                            item.completion_rate,
                            item.user_rating,
                        )
                    )
                    relevance = (relevance + float(np.clip(success, 0.0, 1.0))) / 2
                rec = ContentRecommendation.from_item(item, relevance, confidence, source)
                problems.append(replace(rec, reason="Matched to your current difficulty level"))

            if not problems:
                return fallback_practice_problems(subject, target, count)

            problems.sort(key=lambda r: r.relevance_score, reverse=True)
            return problems[:count]
        except (MLError, ValueError, KeyError, TypeError) as exc:
            logger.error("Error recommending practice problems for user %s: %s", activity.user_id, exc, exc_info=True)
            return fallback_practice_problems(subject, current_difficulty, count)

    def predict_focus_topics(
        self,
        activity: UserActivity,
        time_horizon: int = 7,
        now: Optional[datetime] = None,
    ) -> List[FocusTopic]:
        now = now or datetime.now(timezone.utc)
        horizon_start = now - timedelta(days=time_horizon)
        try:
            focus_areas = []
            for subject in activity.user.subjects:
                recent = sorted(
                    (s for s in _sessions_for_subject(activity.sessions, subject) if s.started_at >= horizon_start),
                    key=lambda s: s.started_at,
                )
                if len(recent) < 2:
                    continue

                trend = performance_trend(recent)
                spots = difficulty_spots(recent)
                urgency = topic_urgency(trend, spots)
                if urgency <= ContentThresholds.FOCUS_URGENCY:
                    continue

                context = ContentContext(
                    session_type="study",
                    current_subject=subject,
                    difficulty_preference="comfort" if urgency > 0.7 else "adaptive",
                    time_available=60,
                )
                focus_areas.append(
                    FocusTopic(
                        topic=spots[0] if spots else "General Review",
                        subject=subject,
                        urgency=urgency,
                        reason=focus_reason(trend, spots, urgency),
                        recommended_content=self.recommend_content(activity, context, limit=3, now=now),
                    )
                )

            focus_areas.sort(key=lambda f: f.urgency, reverse=True)
            return focus_areas
        except (MLError, ValueError, TypeError) as exc:
            logger.error("Error predicting focus topics for user %s: %s", activity.user_id, exc, exc_info=True)
            return []
