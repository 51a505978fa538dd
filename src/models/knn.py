# ABOUTME: Lazy k-nearest-neighbours regressor over stored training points.
# ABOUTME: Predicts the plain mean target of the k closest points by Euclidean distance.

from typing import Any, Dict

import numpy as np

from .base import BaseModel


class KNearestNeighbors(BaseModel):
    model_type = "knn"

    def __init__(self, k: int = 5):
        super().__init__()
        if k <= 0:
            raise ValueError("k must be positive")
        self.k = k
        self.points = np.zeros((0, 0))
        self.targets = np.zeros(0)

    def _fit(self, X: np.ndarray, y: np.ndarray) -> None:
        self.points = X.copy()
        self.targets = y.copy()

    def _predict_one(self, x: np.ndarray):
        distances = np.sqrt(np.sum((self.points - x) ** 2, axis=1))
        # stable sort so ties resolve to insertion order
        nearest = np.argsort(distances, kind="stable")[: min(self.k, len(self.points))]
        mean = self.targets[nearest].mean(axis=0)
        return float(mean) if np.ndim(mean) == 0 else mean

    def _get_state(self) -> Dict[str, Any]:
        return {"k": self.k, "points": self.points.tolist(), "targets": self.targets.tolist()}

    def _set_state(self, state: Dict[str, Any]) -> None:
        points = np.asarray(state["points"], dtype=float)
        targets = np.asarray(state["targets"], dtype=float)
        if points.ndim != 2 or points.shape[1] != self.n_features or len(points) != len(targets):
            raise ValueError("stored points and targets are inconsistent")
        self.k = int(state["k"])
        self.points = points
        self.targets = targets
