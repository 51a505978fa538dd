# ABOUTME: Stateless numeric helpers shared by model primitives and predictors.
# ABOUTME: Covers scaling, similarity, correlation, clustering, smoothing, and splits.

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, TypeVar

import numpy as np

from .errors import DimensionMismatchError, IllConditionedInputError, InsufficientDataError

T = TypeVar("T")


def normalize(values: Sequence[float]) -> np.ndarray:
    """Rescale to [0, 1]; a constant input maps every value to 0.5."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return arr
    lo, hi = arr.min(), arr.max()
    if hi == lo:
        return np.full_like(arr, 0.5)
    return (arr - lo) / (hi - lo)


def standardize(values: Sequence[float]) -> np.ndarray:
    """Z-score using the population standard deviation."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return arr
    std = arr.std()
    if std == 0:
        return np.zeros_like(arr)
    return (arr - arr.mean()) / std


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity; returns 0.0 for mismatched lengths or zero vectors."""
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    if a.shape != b.shape:
        return 0.0
    denominator = np.linalg.norm(a) * np.linalg.norm(b)
    if denominator == 0:
        return 0.0
    return float(np.dot(a, b) / denominator)


def euclidean_distance(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Euclidean distance; returns inf for mismatched lengths."""
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    if a.shape != b.shape:
        return float("inf")
    return float(np.sqrt(np.sum((a - b) ** 2)))


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    x_arr = np.asarray(x, dtype=float)
    y_arr = np.asarray(y, dtype=float)
    n = x_arr.size
    if n == 0 or n != y_arr.size:
        return 0.0
    numerator = n * np.dot(x_arr, y_arr) - x_arr.sum() * y_arr.sum()
    denominator_sq = (n * np.dot(x_arr, x_arr) - x_arr.sum() ** 2) * (n * np.dot(y_arr, y_arr) - y_arr.sum() ** 2)
    if denominator_sq <= 0:
        return 0.0
    return float(numerator / np.sqrt(denominator_sq))


def feature_importance(features: Sequence[Sequence[float]], target: Sequence[float]) -> np.ndarray:
    """Absolute Pearson correlation of every feature column with the target."""
    matrix = np.asarray(features, dtype=float)
    if matrix.size == 0:
        return np.array([])
    return np.array([abs(pearson_correlation(matrix[:, i], target)) for i in range(matrix.shape[1])])


@dataclass(frozen=True)
class LinearFit:
    slope: float
    intercept: float
    r_squared: float

    def predict(self, value: float) -> float:
        return self.slope * value + self.intercept


def linear_regression(x: Sequence[float], y: Sequence[float]) -> LinearFit:
    """Closed-form simple least squares for paired 1-D arrays."""
    x_arr = np.asarray(x, dtype=float)
    y_arr = np.asarray(y, dtype=float)
    if x_arr.size == 0:
        raise InsufficientDataError("linear_regression needs at least one point")
    if x_arr.size != y_arr.size:
        raise DimensionMismatchError(f"x has {x_arr.size} values but y has {y_arr.size}")

    n = x_arr.size
    sum_x, sum_y = x_arr.sum(), y_arr.sum()
    denominator = n * np.dot(x_arr, x_arr) - sum_x**2
    if denominator == 0:
        raise IllConditionedInputError("x has zero variance; slope is undefined")

    slope = (n * np.dot(x_arr, y_arr) - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    residuals = y_arr - (slope * x_arr + intercept)
    ss_res = float(np.sum(residuals**2))
    ss_tot = float(np.sum((y_arr - y_arr.mean()) ** 2))
    r_squared = 1.0 if ss_tot == 0 else 1.0 - ss_res / ss_tot

    return LinearFit(slope=float(slope), intercept=float(intercept), r_squared=r_squared)


@dataclass
class KMeansResult:
    centroids: np.ndarray
    clusters: List[List[int]]
    labels: np.ndarray


def k_means_cluster(
    data: Sequence[Sequence[float]],
    k: int,
    max_iterations: int = 100,
    seed: Optional[int] = None,
) -> KMeansResult:
    """
    Lloyd's algorithm with centroids drawn uniformly inside the data's bounding box.

    Stops early once labels no longer change. Pass ``seed`` for reproducible runs.
    """
    points = np.asarray(data, dtype=float)
    if points.size == 0 or k <= 0:
        raise InsufficientDataError("k_means_cluster needs non-empty data and k > 0")

    rng = np.random.default_rng(seed)
    lo = points.min(axis=0)
    hi = points.max(axis=0)
    centroids = lo + rng.random((k, points.shape[1])) * (hi - lo)

    labels = np.zeros(len(points), dtype=int)
    for _ in range(max_iterations):
        previous = labels.copy()
        distances = np.linalg.norm(points[:, None, :] - centroids[None, :, :], axis=2)
        labels = distances.argmin(axis=1)

        for cluster in range(k):
            members = points[labels == cluster]
            if len(members):
                centroids[cluster] = members.mean(axis=0)

        if np.array_equal(labels, previous):
            break

    clusters = [np.flatnonzero(labels == cluster).tolist() for cluster in range(k)]
    return KMeansResult(centroids=centroids, clusters=clusters, labels=labels)


def exponential_moving_average(values: Sequence[float], alpha: float = 0.3) -> List[float]:
    if len(values) == 0:
        return []
    ema = [float(values[0])]
    for value in values[1:]:
        ema.append(alpha * float(value) + (1 - alpha) * ema[-1])
    return ema


def train_test_split(
    data: Sequence[T],
    test_size: float = 0.2,
    seed: Optional[int] = None,
) -> Tuple[List[T], List[T]]:
    """Shuffle then split at floor(n * (1 - test_size))."""
    rng = np.random.default_rng(seed)
    order = rng.permutation(len(data))
    shuffled = [data[i] for i in order]
    split_index = int(np.floor(len(data) * (1 - test_size)))
    return shuffled[:split_index], shuffled[split_index:]


def sigmoid(x):
    return 1.0 / (1.0 + np.exp(-np.asarray(x, dtype=float)))


def relu(x):
    return np.maximum(0.0, np.asarray(x, dtype=float))


def softmax(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    exp_values = np.exp(arr - arr.max())
    return exp_values / exp_values.sum()


def polynomial_features(features: Sequence[Sequence[float]], degree: int = 2) -> np.ndarray:
    """Append per-column powers up to ``degree`` and pairwise interaction terms."""
    matrix = np.asarray(features, dtype=float)
    columns = [matrix]
    for power in range(2, degree + 1):
        columns.append(matrix**power)
    if degree >= 2:
        n_cols = matrix.shape[1]
        interactions = [matrix[:, i] * matrix[:, j] for i in range(n_cols) for j in range(i + 1, n_cols)]
        if interactions:
            columns.append(np.column_stack(interactions))
    return np.hstack(columns)
