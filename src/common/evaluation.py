# ABOUTME: Defines evaluation helpers shared by model primitives and the trainer.
# ABOUTME: Computes regression errors and thresholded classification metrics.

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix as _sk_confusion_matrix,
    f1_score,
    mean_absolute_error,
    mean_squared_error,
    precision_score,
    recall_score,
)

from .errors import DimensionMismatchError

HIGH_ENGAGEMENT_THRESHOLD = 50.0


@dataclass(frozen=True)
class RegressionMetrics:
    mse: float
    rmse: float
    mae: float
    r2: float


@dataclass(frozen=True)
class ClassificationMetrics:
    accuracy: float
    precision: float
    recall: float
    f1_score: float
    mse: float
    mae: float


def calculate_metrics(actual: Sequence[float], predicted: Sequence[float]) -> RegressionMetrics:
    """
    MSE, RMSE, MAE and R² for paired sequences.

    R² is 1.0 when the actual values have zero variance; empty input yields zeros.
    """
    y_true = np.asarray(actual, dtype=float)
    y_pred = np.asarray(predicted, dtype=float)
    if y_true.shape != y_pred.shape:
        raise DimensionMismatchError("actual and predicted must have the same length")
    if y_true.size == 0:
        return RegressionMetrics(mse=0.0, rmse=0.0, mae=0.0, r2=0.0)

    mse = float(mean_squared_error(y_true, y_pred))
    mae = float(mean_absolute_error(y_true, y_pred))

    total = float(np.sum((y_true - y_true.mean()) ** 2))
    residual = float(np.sum((y_true - y_pred) ** 2))
    r2 = 1.0 if total == 0 else 1.0 - residual / total

    return RegressionMetrics(mse=mse, rmse=float(np.sqrt(mse)), mae=mae, r2=r2)


def _binarize(values: Sequence[float], threshold: float) -> np.ndarray:
    return (np.asarray(values, dtype=float) > threshold).astype(int)


def classification_metrics(
    actual: Sequence[float],
    predicted: Sequence[float],
    threshold: float = HIGH_ENGAGEMENT_THRESHOLD,
) -> ClassificationMetrics:
    """Accuracy/precision/recall/F1 after thresholding scores at ``> threshold``."""
    if len(actual) != len(predicted):
        raise DimensionMismatchError("actual and predicted must have the same length")
    if len(actual) == 0:
        return ClassificationMetrics(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    y_true = _binarize(actual, threshold)
    y_pred = _binarize(predicted, threshold)
    regression = calculate_metrics(actual, predicted)

    return ClassificationMetrics(
        accuracy=float(accuracy_score(y_true, y_pred)),
        precision=float(precision_score(y_true, y_pred, zero_division=0)),
        recall=float(recall_score(y_true, y_pred, zero_division=0)),
        f1_score=float(f1_score(y_true, y_pred, zero_division=0)),
        mse=regression.mse,
        mae=regression.mae,
    )


def confusion_matrix(
    actual: Sequence[float],
    predicted: Sequence[float],
    threshold: float = HIGH_ENGAGEMENT_THRESHOLD,
) -> np.ndarray:
    """2x2 matrix laid out as [[TN, FP], [FN, TP]]."""
    return _sk_confusion_matrix(_binarize(actual, threshold), _binarize(predicted, threshold), labels=[0, 1])
