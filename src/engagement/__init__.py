# ABOUTME: Engagement features, the rule-based predictor, and its training harness.
# ABOUTME: Re-exports the types most callers need.

from .features import FEATURE_NAMES, EngagementFeatures, extract_features
from .predictor import EngagementPrediction, EngagementPredictor, TrainingExample, engagement_score
from .trainer import ModelEvaluation, ModelTrainer, TrainingConfig, TrainingResult, ground_truth_score

__all__ = [
    "FEATURE_NAMES",
    "EngagementFeatures",
    "EngagementPrediction",
    "EngagementPredictor",
    "ModelEvaluation",
    "ModelTrainer",
    "TrainingConfig",
    "TrainingExample",
    "TrainingResult",
    "engagement_score",
    "extract_features",
    "ground_truth_score",
]
