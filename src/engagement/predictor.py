# ABOUTME: Scores user engagement, dropout risk, and interventions from activity features.
# ABOUTME: Rule-based scoring with optional population averages for peer comparison.

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from src.common.errors import InsufficientDataError, MLError, ModelStateError
from src.common.schemas import PredictionSource, UserActivity
from src.models.base import FORMAT_VERSION

from .features import FEATURE_NAMES, EngagementFeatures, extract_features

logger = logging.getLogger(__name__)


class EngagementThresholds:
    LOW_RISK = 70
    MEDIUM_RISK = 40
    INACTIVE_DAYS = 7
    LONG_SESSION_MINUTES = 120
    BASE_CONFIDENCE = 0.8
    MIN_CONFIDENCE = 0.3
    MAX_CONFIDENCE = 0.95


@dataclass
class EngagementPrediction:
    engagement_score: int
    risk_level: str
    predicted_dropout_days: int
    confidence: float
    recommendations: List[str] = field(default_factory=list)
    interventions: List[str] = field(default_factory=list)
    source: PredictionSource = "fallback"


@dataclass(frozen=True)
class TrainingExample:
    """Features paired with a ground-truth engagement score in [0, 100]."""

    features: EngagementFeatures
    engagement_score: float
    user_id: Optional[str] = None


def engagement_score(features: EngagementFeatures) -> float:
    """Weighted activity score clamped to [0, 100]."""
    score = 0.0
    score += min(40.0, features.session_frequency * 8)
    score += min(20.0, features.streak_length * 2)
    score += min(20.0, features.total_study_hours / 2)
    score += features.completion_rate * 25
    score += min(10.0, features.partner_count * 2)
    score += min(10.0, features.review_count * 1)
    score += max(0.0, 15 - features.last_activity_days * 0.5)
    return min(100.0, max(0.0, score))


def risk_level(score: float) -> str:
    if score >= EngagementThresholds.LOW_RISK:
        return "low"
    if score >= EngagementThresholds.MEDIUM_RISK:
        return "medium"
    return "high"


def predicted_dropout_days(score: float, features: EngagementFeatures) -> int:
    base_days = max(1, math.floor((100 - score) / 10))
    activity_multiplier = 0.5 if features.last_activity_days > EngagementThresholds.INACTIVE_DAYS else 1.0
    streak_multiplier = 1.5 if features.streak_length > 0 else 0.8
    return int(round(base_days * activity_multiplier * streak_multiplier))


def prediction_confidence(features: EngagementFeatures) -> float:
    confidence = EngagementThresholds.BASE_CONFIDENCE
    if features.days_since_registration < 7:
        confidence *= 0.7
    if features.days_since_registration < 3:
        confidence *= 0.5
    if features.total_study_hours < 5:
        confidence *= 0.8
    if features.session_frequency < 0.1:
        confidence *= 0.7
    return min(EngagementThresholds.MAX_CONFIDENCE, max(EngagementThresholds.MIN_CONFIDENCE, confidence))


def recommendations_for(features: EngagementFeatures, score: float) -> Tuple[List[str], List[str]]:
    recommendations: List[str] = []
    interventions: List[str] = []

    if score < EngagementThresholds.MEDIUM_RISK:
        interventions.append("Send motivational notification with study tips")
        interventions.append("Recommend study partners with similar interests")
        interventions.append("Offer personalized study plan")
        if features.streak_length == 0:
            interventions.append("Start a 3-day study challenge")
    elif score < EngagementThresholds.LOW_RISK:
        recommendations.append("Try studying at your most productive time")
        recommendations.append("Join a study group to stay motivated")
        recommendations.append("Set smaller, achievable daily goals")
    else:
        recommendations.append("Maintain your excellent study habits")
        recommendations.append("Consider mentoring other students")
        recommendations.append("Explore advanced study techniques")

    if features.average_session_length > EngagementThresholds.LONG_SESSION_MINUTES:
        recommendations.append("Consider shorter, more frequent study sessions")
    if features.weekend_activity < features.session_frequency * 0.3:
        recommendations.append("Try studying on weekends to maintain consistency")
    if features.partner_count == 0:
        recommendations.append("Find a study partner to increase motivation")

    return recommendations, interventions


def fallback_prediction() -> EngagementPrediction:
    return EngagementPrediction(
        engagement_score=50,
        risk_level="medium",
        predicted_dropout_days=7,
        confidence=EngagementThresholds.MIN_CONFIDENCE,
        recommendations=["Continue regular study sessions"],
        interventions=[],
        source="fallback",
    )


class EngagementPredictor:
    """
    Engagement scoring for a single user.

    ``predict_engagement`` is deterministic and needs no training. ``fit``
    only records population feature averages, which add peer-comparison
    advice to predictions. Every prediction reports ``source="fallback"``
    because no learned model takes part in the score.
    """

    model_type = "engagement_predictor"

    def __init__(self) -> None:
        self.population_averages: Dict[str, float] = {}
        self.training_size = 0

    @property
    def is_trained(self) -> bool:
        return bool(self.population_averages)

    def fit(self, training_data: Sequence[TrainingExample]) -> "EngagementPredictor":
        if not training_data:
            raise InsufficientDataError("EngagementPredictor.fit needs at least one example")
        matrix = np.array([[getattr(ex.features, name) for name in FEATURE_NAMES] for ex in training_data], dtype=float)
        self.population_averages = {name: float(v) for name, v in zip(FEATURE_NAMES, matrix.mean(axis=0))}
        self.training_size = len(training_data)
        logger.info("Engagement predictor fitted on %d users", self.training_size)
        return self

    def _peer_recommendations(self, features: EngagementFeatures) -> List[str]:
        if not self.population_averages:
            return []
        advice = []
        if features.session_frequency < self.population_averages["session_frequency"] * 0.5:
            advice.append("Your study frequency is below the community average")
        if features.streak_length < self.population_averages["streak_length"]:
            advice.append("Build a longer study streak like other active learners")
        return advice

    def predict_engagement(self, features: EngagementFeatures) -> EngagementPrediction:
        score = engagement_score(features)
        recommendations, interventions = recommendations_for(features, score)
        recommendations.extend(self._peer_recommendations(features))
        return EngagementPrediction(
            engagement_score=int(round(score)),
            risk_level=risk_level(score),
            predicted_dropout_days=predicted_dropout_days(score, features),
            confidence=prediction_confidence(features),
            recommendations=recommendations,
            interventions=interventions,
            source="fallback",
        )

    def predict_for_user(self, activity: UserActivity, now: Optional[datetime] = None) -> EngagementPrediction:
        """Extract features and predict; any failure yields the canned fallback prediction."""
        try:
            return self.predict_engagement(extract_features(activity, now))
        except (MLError, ValueError, TypeError, AttributeError) as exc:
            logger.error(
                "Error predicting engagement for user %s (%d sessions): %s",
                activity.user_id,
                len(activity.sessions),
                exc,
                exc_info=True,
            )
            return fallback_prediction()

    def save(self) -> str:
        return json.dumps(
            {
                "format_version": FORMAT_VERSION,
                "model_type": self.model_type,
                "state": {
                    "population_averages": self.population_averages,
                    "training_size": self.training_size,
                },
            }
        )

    def load(self, blob: str) -> "EngagementPredictor":
        try:
            envelope = json.loads(blob)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ModelStateError(f"{self.model_type} blob is not valid JSON") from exc
        if not isinstance(envelope, dict) or envelope.get("format_version") != FORMAT_VERSION:
            raise ModelStateError(f"{self.model_type} blob is not format version {FORMAT_VERSION}")
        if envelope.get("model_type") != self.model_type:
            raise ModelStateError(f"blob holds {envelope.get('model_type')!r}, expected {self.model_type!r}")

        try:
            state = envelope["state"]
            averages = {name: float(value) for name, value in state["population_averages"].items()}
            training_size = int(state["training_size"])
        except (TypeError, KeyError, ValueError, AttributeError) as exc:
            raise ModelStateError(f"{self.model_type} state is malformed: {exc}") from exc

        unknown = set(averages) - set(FEATURE_NAMES)
        if unknown:
            raise ModelStateError(f"unknown features in blob: {sorted(unknown)}")
        self.population_averages = averages
        self.training_size = training_size
        return self
