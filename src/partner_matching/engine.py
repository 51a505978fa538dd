# ABOUTME: Ranks study-partner candidates by blending learned and rule-based compatibility.
# ABOUTME: Trains an MLP, k-NN and regression tree on historical partnership outcomes.

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np

from src.common.errors import MLError
from src.common.numeric import feature_importance, train_test_split
from src.common.schemas import PredictionSource, UserActivity
from src.models import DecisionTreeRegressor, KNearestNeighbors, MultiLayerPerceptron

from .features import (
    COMBINED_WIDTH,
    PAIRWISE_FEATURE_NAMES,
    UserMatchFeatures,
    combine_features,
    extract_user_features,
    pairwise_features,
)

logger = logging.getLogger(__name__)


class MatchingThresholds:
    MIN_OUTCOMES = 10
    SUCCESS_RATING = 4.0
    TRAINED_ML_WEIGHT = 0.7
    UNTRAINED_ML_WEIGHT = 0.3
    RULE_CONFIDENCE = 0.6
    DEFAULT_LIMIT = 10


@dataclass(frozen=True)
class PartnershipOutcome:
    """A finished partnership used as a training example."""

    user: UserActivity
    partner: UserActivity
    rating: float
    session_count: int = 0
    duration_days: float = 0.0


@dataclass
class MatchPrediction:
    success_probability: float
    expected_rating: float
    confidence: float
    risk_factors: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)


@dataclass
class MatchResult:
    user_id: str
    compatibility_score: float
    confidence_score: float
    match_reasons: List[str]
    prediction: MatchPrediction
    feature_importance: Dict[str, float]
    source: PredictionSource


def rule_based_prediction(a: UserMatchFeatures, b: UserMatchFeatures) -> MatchPrediction:
    level_diff = abs(a.level - b.level)
    activity_diff = abs(a.activity - b.activity)
    success = max(0.0, 0.8 - level_diff * 0.2 - activity_diff * 0.1)
    return MatchPrediction(
        success_probability=success,
        expected_rating=3.5 + success,
        confidence=MatchingThresholds.RULE_CONFIDENCE,
        risk_factors=["Significant study level difference"] if level_diff > 0.3 else [],
        strengths=["Similar activity levels"] if activity_diff < 0.2 else [],
    )


def traditional_score(a: UserMatchFeatures, b: UserMatchFeatures) -> float:
    pair = pairwise_features(a, b)
    return (
        pair[0] * 0.25
        + (1 - pair[1]) * 0.20
        + pair[3] * 0.15
        + pair[4] * 0.15
        + pair[7] * 0.15
        + (1 - pair[5]) * 0.10
    )


def identify_risk_factors(vector: np.ndarray) -> List[str]:
    risks = []
    if vector[1] > 0.5:
        risks.append("Significant study level difference")
    if vector[3] < 0.3:
        risks.append("Limited schedule overlap")
    if vector[7] < 0.5:
        risks.append("Below average partnership success history")
    return risks


def identify_strengths(vector: np.ndarray) -> List[str]:
    strengths = []
    if vector[0] > 0.7:
        strengths.append("Excellent subject match")
    if vector[3] > 0.7:
        strengths.append("Great schedule compatibility")
    if vector[7] > 0.8:
        strengths.append("Strong partnership track record")
    return strengths


def match_reasons(a: UserMatchFeatures, b: UserMatchFeatures) -> List[str]:
    pair = pairwise_features(a, b)
    reasons = []
    if pair[0] > 0.6:
        reasons.append("Strong subject overlap")
    if pair[1] < 0.2:
        reasons.append("Similar study levels")
    if pair[3] > 0.4:
        reasons.append("Good schedule compatibility")
    if pair[7] > 0.7:
        reasons.append("Both users have positive partnership history")
    if not reasons:
        reasons.append("Potential for complementary learning styles")
    return reasons


class MLPartnerMatchingEngine:
    """
    Partner matching backed by three models over the 28-wide pair vector:

    - MLP (28→32→16→8→1, sigmoid) predicting P(rating >= 4)
    - k-NN (k=7) and a regression tree (depth 8, min split 5) predicting rating / 5

    Until ``train_models`` succeeds, predictions are rule-based and the
    blended compatibility leans on the traditional score.
    """

    def __init__(self, seed: Optional[int] = 42, epochs: int = 100):
        self.seed = seed
        self.neural_network = MultiLayerPerceptron(
            [(COMBINED_WIDTH, "relu"), (32, "relu"), (16, "relu"), (8, "relu"), (1, "sigmoid")],
            epochs=epochs,
            seed=seed,
        )
        self.knn = KNearestNeighbors(k=7)
        self.tree = DecisionTreeRegressor(max_depth=8, min_samples_split=5)
        self.is_trained = False
        self.feature_weights: Dict[str, float] = {}
        self.last_training_date: Optional[datetime] = None

    def train_models(self, outcomes: Sequence[PartnershipOutcome], now: Optional[datetime] = None) -> None:
        if len(outcomes) < MatchingThresholds.MIN_OUTCOMES:
            logger.warning(
                "Insufficient partnership outcomes (%d < %d); using rule-based matching",
                len(outcomes),
                MatchingThresholds.MIN_OUTCOMES,
            )
            return

        logger.info("Training partner matching models on %d partnerships", len(outcomes))
        now = now or datetime.now(timezone.utc)

        try:
            rows = []
            for outcome in outcomes:
                vector = combine_features(
                    extract_user_features(outcome.user, now), extract_user_features(outcome.partner, now)
                )
                rows.append((vector, outcome.rating / 5.0, 1.0 if outcome.rating >= MatchingThresholds.SUCCESS_RATING else 0.0))

            # one split keeps features and both label sets aligned
            train, test = train_test_split(rows, test_size=0.2, seed=self.seed)
            train_X = np.array([r[0] for r in train])
            train_ratings = np.array([r[1] for r in train])
            train_success = np.array([[r[2]] for r in train])

            self.neural_network.fit(train_X, train_success)
            self.knn.fit(train_X, train_ratings)
            self.tree.fit(train_X, train_ratings)

            importance = feature_importance(train_X[:, : len(PAIRWISE_FEATURE_NAMES)], train_ratings)
            self.feature_weights = {name: float(w) for name, w in zip(PAIRWISE_FEATURE_NAMES, importance)}

            if test:
                test_X = np.array([r[0] for r in test])
                nn_metrics = self.neural_network.evaluate(test_X, [r[2] for r in test])
                knn_metrics = self.knn.evaluate(test_X, [r[1] for r in test])
                tree_metrics = self.tree.evaluate(test_X, [r[1] for r in test])
                logger.info(
                    "Partner matching training complete: nn r2=%.3f mse=%.3f, knn r2=%.3f mse=%.3f, tree r2=%.3f mse=%.3f",
                    nn_metrics.r2,
                    nn_metrics.mse,
                    knn_metrics.r2,
                    knn_metrics.mse,
                    tree_metrics.r2,
                    tree_metrics.mse,
                )

            self.is_trained = True
            self.last_training_date = now
        except (MLError, ValueError, TypeError, AttributeError) as exc:
            logger.error("Error training partner matching models: %s", exc, exc_info=True)
            self.is_trained = False

    def _ml_prediction(self, vector: np.ndarray) -> MatchPrediction:
        success = float(np.clip(self.neural_network.predict(vector), 0.0, 1.0))
        knn_rating = self.knn.predict(vector)
        tree_rating = self.tree.predict(vector)
        return MatchPrediction(
            success_probability=success,
            # models predict rating / 5; report on the 1-5 rating scale
            expected_rating=(knn_rating + tree_rating) / 2 * 5,
            confidence=max(0.0, 1 - abs(knn_rating - tree_rating)),
            risk_factors=identify_risk_factors(vector),
            strengths=identify_strengths(vector),
        )

    def predict_pair(self, a: UserMatchFeatures, b: UserMatchFeatures):
        """Return (prediction, source) for one pair, falling back to rules on model errors."""
        if self.is_trained:
            try:
                return self._ml_prediction(combine_features(a, b)), "ml"
            except (MLError, ValueError, TypeError) as exc:
                logger.error("Error getting partner matching predictions: %s", exc)
        return rule_based_prediction(a, b), "fallback"

    def compatibility_score(self, a: UserMatchFeatures, b: UserMatchFeatures, prediction: MatchPrediction) -> float:
        ml_weight = MatchingThresholds.TRAINED_ML_WEIGHT if self.is_trained else MatchingThresholds.UNTRAINED_ML_WEIGHT
        return ml_weight * prediction.success_probability + (1 - ml_weight) * traditional_score(a, b)

    def find_matches(
        self,
        target: UserActivity,
        candidates: Sequence[UserActivity],
        limit: int = MatchingThresholds.DEFAULT_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[MatchResult]:
        now = now or datetime.now(timezone.utc)
        degraded = False
        try:
            target_features = extract_user_features(target, now)
        except (TypeError, ValueError, AttributeError) as exc:
            # profile fields only; activity rows are unusable
            logger.error(
                "Error extracting match features for user %s (%d sessions), ranking on profile only: %s",
                target.user_id,
                len(target.sessions),
                exc,
                exc_info=True,
            )
            target_features = extract_user_features(UserActivity(user=target.user), now)
            degraded = True

        results: List[MatchResult] = []
        for candidate in candidates:
            if candidate.user_id == target.user_id:
                continue
            try:
                candidate_features = extract_user_features(candidate, now)
            except (TypeError, ValueError, AttributeError) as exc:
                logger.warning("Skipping candidate %s: %s", candidate.user_id, exc)
                continue

            if degraded:
                prediction, source = rule_based_prediction(target_features, candidate_features), "fallback"
            else:
                prediction, source = self.predict_pair(target_features, candidate_features)
            results.append(
                MatchResult(
                    user_id=candidate.user_id,
                    compatibility_score=self.compatibility_score(target_features, candidate_features, prediction),
                    confidence_score=prediction.confidence,
                    match_reasons=match_reasons(target_features, candidate_features),
                    prediction=prediction,
                    feature_importance=dict(self.feature_weights),
                    source=source,
                )
            )

        results.sort(key=lambda r: r.compatibility_score, reverse=True)
        return results[:limit]

    def get_model_status(self) -> Dict[str, object]:
        return {
            "is_trained": self.is_trained,
            "feature_importance": dict(self.feature_weights),
            "last_training_date": self.last_training_date,
        }

    def save_models(self) -> str:
        return json.dumps(
            {
                "neural_network": self.neural_network.save() if self.neural_network.is_trained else None,
                "knn": self.knn.save() if self.knn.is_trained else None,
                "tree": self.tree.save() if self.tree.is_trained else None,
                "feature_weights": self.feature_weights,
                "is_trained": self.is_trained,
            }
        )

    def load_models(self, blob: str) -> None:
        """Restore models from ``save_models`` output; failures leave the engine untrained."""
        try:
            data = json.loads(blob)
            if data["is_trained"]:
                self.neural_network.load(data["neural_network"])
                self.knn.load(data["knn"])
                self.tree.load(data["tree"])
            self.feature_weights = dict(data["feature_weights"])
            self.is_trained = bool(data["is_trained"])
        except (MLError, ValueError, KeyError, TypeError) as exc:
            logger.error("Error loading partner matching models: %s", exc)
            self.is_trained = False
