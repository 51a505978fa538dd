# ABOUTME: Makes the shared common package importable across predictors.
# ABOUTME: Re-exports schemas, errors, numeric helpers, and evaluation metrics.

from .errors import (
    DimensionMismatchError,
    IllConditionedInputError,
    InsufficientDataError,
    MLError,
    ModelNotTrainedError,
    ModelStateError,
)
from .schemas import (
    ActivityStore,
    ContentContext,
    ContentInteraction,
    ContentItem,
    Goal,
    Partnership,
    Review,
    StudySession,
    UserActivity,
    UserRecord,
)
from .evaluation import RegressionMetrics, calculate_metrics, classification_metrics

__all__ = [
    "ActivityStore",
    "ContentContext",
    "ContentInteraction",
    "ContentItem",
    "DimensionMismatchError",
    "Goal",
    "IllConditionedInputError",
    "InsufficientDataError",
    "MLError",
    "ModelNotTrainedError",
    "ModelStateError",
    "Partnership",
    "RegressionMetrics",
    "Review",
    "StudySession",
    "UserActivity",
    "UserRecord",
    "calculate_metrics",
    "classification_metrics",
]
