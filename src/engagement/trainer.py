# ABOUTME: Prepares labelled engagement data from the store and evaluates the predictor.
# ABOUTME: Provides train/evaluate, k-fold cross-validation, and grid-search tuning.

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import yaml
from sklearn.model_selection import KFold, ParameterGrid

from src.common.errors import InsufficientDataError, MLError
from src.common.evaluation import HIGH_ENGAGEMENT_THRESHOLD, classification_metrics, confusion_matrix
from src.common.numeric import train_test_split
from src.common.schemas import ActivityStore

from .features import FEATURE_NAMES, EngagementFeatures, extract_features
from .predictor import EngagementPredictor, TrainingExample

logger = logging.getLogger(__name__)

MIN_TENURE_DAYS = 7
TUNING_GRID = {
    "learning_rate": [0.0001, 0.001, 0.01],
    "batch_size": [16, 32, 64],
    "epochs": [50, 100, 150],
}
TUNING_SUBSET = 20


@dataclass
class TrainingConfig:
    # epochs, batch_size, learning_rate, validation_split and early_stopping_patience
    # are recorded with each run but not consumed by the rule-based predictor.
    min_data_points: int = 100
    test_split: float = 0.2
    validation_split: float = 0.2
    epochs: int = 100
    batch_size: int = 32
    learning_rate: float = 0.001
    early_stopping_patience: int = 10
    seed: Optional[int] = 42
    models_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.models_dir is not None:
            self.models_dir = Path(self.models_dir)

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["models_dir"] = str(self.models_dir) if self.models_dir else None
        return payload


def load_training_config(path: Path) -> TrainingConfig:
    """Read the ``trainer`` section of a YAML config."""
    with open(path) as f:
        cfg = yaml.safe_load(f) or {}
    return TrainingConfig(**cfg.get("trainer", {}))


@dataclass
class ModelEvaluation:
    accuracy: float
    precision: float
    recall: float
    f1_score: float
    mse: float
    mae: float
    confusion_matrix: List[List[int]]
    feature_importance: List[Tuple[str, float]]
    recommendations: List[str]


@dataclass
class TrainingResult:
    evaluation: ModelEvaluation
    config: TrainingConfig
    data_points: int
    training_time: float
    model_path: Optional[Path]
    timestamp: datetime


@dataclass
class CrossValidationResult:
    mean_accuracy: float
    mean_precision: float
    mean_recall: float
    mean_f1_score: float
    std_accuracy: float
    fold_results: List[ModelEvaluation] = field(default_factory=list)


@dataclass
class TuningResult:
    best_config: TrainingConfig
    best_score: float
    all_results: List[Tuple[TrainingConfig, float]]


def ground_truth_score(features: EngagementFeatures) -> float:
    """
    Training label, deliberately independent of the predictor's own formula.

    Frequency and social activity are weighted differently from
    ``engagement_score`` so evaluation measures agreement between two views
    of engagement rather than a tautology.
    """
    score = 0.0
    score += min(25.0, features.session_frequency * 10)
    score += min(20.0, features.streak_length * 2)
    score += features.goal_completion_rate * 20
    score += min(15.0, features.partner_count * 3 + features.review_count * 2)
    score += min(20.0, features.total_study_hours / 10)
    return min(100.0, max(0.0, score))


def has_sufficient_data(features: EngagementFeatures) -> bool:
    return (
        features.days_since_registration >= MIN_TENURE_DAYS
        and features.total_study_hours > 0
        and features.session_frequency > 0
    )


def feature_importance(examples: Sequence[TrainingExample], predictions: Sequence[float]) -> List[Tuple[str, float]]:
    """Absolute correlation of each feature with the predictions, strongest first."""
    frame = pd.DataFrame([ex.features.as_dict() for ex in examples], columns=FEATURE_NAMES, dtype=float)
    target = pd.Series(list(predictions), dtype=float)
    if target.nunique() < 2:
        return [(name, 0.0) for name in FEATURE_NAMES]
    # constant columns have no defined correlation
    varying = [name for name in FEATURE_NAMES if frame[name].nunique() > 1]
    correlations = frame[varying].corrwith(target).reindex(FEATURE_NAMES).fillna(0.0).abs()
    ranked = correlations.sort_values(ascending=False, kind="stable")
    return [(name, float(value)) for name, value in ranked.items()]


def evaluation_advice(evaluation: ModelEvaluation) -> List[str]:
    advice = []
    if evaluation.accuracy < 0.7:
        advice.append("Consider collecting more training data")
        advice.append("Review feature engineering process")
    if evaluation.precision < 0.6:
        advice.append("Model has high false positive rate - consider threshold adjustment")
    if evaluation.recall < 0.6:
        advice.append("Model misses many positive cases - consider feature selection")
    if evaluation.f1_score < 0.65:
        advice.append("Balance between precision and recall needs improvement")
    if evaluation.mse > 500:
        advice.append("High prediction error - consider model architecture changes")
    return advice


class ModelTrainer:
    """Builds labelled engagement data from an ActivityStore and scores the predictor on it."""

    def __init__(self, store: ActivityStore, config: Optional[TrainingConfig] = None):
        self.store = store
        self.config = config or TrainingConfig()

    def prepare_training_data(self, now: Optional[datetime] = None) -> List[TrainingExample]:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=MIN_TENURE_DAYS)
        activities = [a for a in self.store.load_user_activity() if a.user.created_at < cutoff]
        logger.info("Preparing engagement training data from %d users", len(activities))

        examples = []
        for activity in activities:
            try:
                features = extract_features(activity, now)
            except (ValueError, TypeError, AttributeError) as exc:
                logger.warning("Skipping user %s while preparing training data: %s", activity.user_id, exc)
                continue
            if has_sufficient_data(features):
                examples.append(TrainingExample(features, ground_truth_score(features), activity.user_id))

        logger.info(
            "Training data preparation completed: %d users, %d valid data points", len(activities), len(examples)
        )
        return examples

    def train_model(
        self,
        config: Optional[TrainingConfig] = None,
        now: Optional[datetime] = None,
    ) -> TrainingResult:
        config = config or self.config
        started = time.perf_counter()
        logger.info("Starting engagement model training with %s", config.as_dict())

        data = self.prepare_training_data(now)
        if len(data) < config.min_data_points:
            raise InsufficientDataError(
                f"Insufficient data: {len(data)} points, need at least {config.min_data_points}"
            )

        train, test = train_test_split(data, test_size=config.test_split, seed=config.seed)
        predictor = EngagementPredictor().fit(train)
        evaluation = self.evaluate_model(predictor, test)

        model_path = None
        timestamp = datetime.now(timezone.utc)
        if config.models_dir is not None:
            config.models_dir.mkdir(parents=True, exist_ok=True)
            model_path = config.models_dir / f"engagement-predictor-{timestamp:%Y%m%dT%H%M%S}.json"
            model_path.write_text(predictor.save())

        result = TrainingResult(
            evaluation=evaluation,
            config=config,
            data_points=len(data),
            training_time=time.perf_counter() - started,
            model_path=model_path,
            timestamp=timestamp,
        )
        logger.info(
            "Model training completed: %d data points, accuracy=%.3f f1=%.3f",
            result.data_points,
            evaluation.accuracy,
            evaluation.f1_score,
        )
        return result

    def evaluate_model(self, predictor: EngagementPredictor, test: Sequence[TrainingExample]) -> ModelEvaluation:
        predictions: List[float] = []
        actuals: List[float] = []
        evaluated: List[TrainingExample] = []
        for example in test:
            try:
                prediction = predictor.predict_engagement(example.features)
            except (MLError, ValueError) as exc:
                logger.warning("Prediction failed during evaluation for %s: %s", example.user_id, exc)
                continue
            predictions.append(float(prediction.engagement_score))
            actuals.append(float(example.engagement_score))
            evaluated.append(example)

        if not predictions:
            raise InsufficientDataError("No valid predictions for evaluation")

        metrics = classification_metrics(actuals, predictions, HIGH_ENGAGEMENT_THRESHOLD)
        evaluation = ModelEvaluation(
            accuracy=metrics.accuracy,
            precision=metrics.precision,
            recall=metrics.recall,
            f1_score=metrics.f1_score,
            mse=metrics.mse,
            mae=metrics.mae,
            confusion_matrix=confusion_matrix(actuals, predictions, HIGH_ENGAGEMENT_THRESHOLD).tolist(),
            feature_importance=feature_importance(evaluated, predictions),
            recommendations=[],
        )
        evaluation.recommendations = evaluation_advice(evaluation)
        return evaluation

    def cross_validate(self, data: Sequence[TrainingExample], folds: int = 5) -> CrossValidationResult:
        if folds < 2 or len(data) < folds:
            raise InsufficientDataError(f"cross-validation needs at least {max(folds, 2)} examples and 2 folds")
        logger.info("Starting %d-fold cross-validation on %d examples", folds, len(data))

        fold_results = []
        for index, (train_idx, test_idx) in enumerate(KFold(n_splits=folds, shuffle=False).split(data), start=1):
            predictor = EngagementPredictor().fit([data[i] for i in train_idx])
            evaluation = self.evaluate_model(predictor, [data[i] for i in test_idx])
            fold_results.append(evaluation)
            logger.info(
                "Fold %d/%d completed: accuracy=%.3f precision=%.3f recall=%.3f",
                index,
                folds,
                evaluation.accuracy,
                evaluation.precision,
                evaluation.recall,
            )

        accuracies = np.array([r.accuracy for r in fold_results])
        result = CrossValidationResult(
            mean_accuracy=float(accuracies.mean()),
            mean_precision=float(np.mean([r.precision for r in fold_results])),
            mean_recall=float(np.mean([r.recall for r in fold_results])),
            mean_f1_score=float(np.mean([r.f1_score for r in fold_results])),
            std_accuracy=float(accuracies.std()),
            fold_results=fold_results,
        )
        logger.info("Cross-validation completed: mean accuracy=%.3f", result.mean_accuracy)
        return result

    def hyperparameter_tuning(self, data: Sequence[TrainingExample]) -> TuningResult:
        """
        Grid search over learning rate, batch size, and epochs, scored by F1 on a fixed subset.

        The engagement predictor is rule-based and ignores these settings, so every
        combination currently yields the same predictor and the same score.
        """
        if not data:
            raise InsufficientDataError("hyperparameter tuning needs training data")
        logger.info("Starting hyperparameter tuning over %d combinations", len(ParameterGrid(TUNING_GRID)))
        logger.warning("Engagement predictor is rule-based; tuned hyperparameters do not change its predictions")

        all_results: List[Tuple[TrainingConfig, float]] = []
        best_config, best_score = self.config, 0.0
        for params in ParameterGrid(TUNING_GRID):
            config = replace(self.config, **params)
            try:
                predictor = EngagementPredictor().fit(data)
                score = self.evaluate_model(predictor, data[:TUNING_SUBSET]).f1_score
            except MLError as exc:
                logger.warning("Hyperparameter combination %s failed: %s", params, exc)
                continue

            all_results.append((config, score))
            logger.info("Hyperparameter combination %s scored f1=%.3f", params, score)
            if score > best_score:
                best_config, best_score = config, score

        logger.info("Hyperparameter tuning completed: best f1=%.3f", best_score)
        return TuningResult(best_config=best_config, best_score=best_score, all_results=all_results)
