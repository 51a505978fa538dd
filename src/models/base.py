# ABOUTME: Shared contract for the trainable model primitives.
# ABOUTME: Handles input validation, batch prediction, evaluation, and versioned JSON blobs.

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Sequence

import numpy as np

from src.common.errors import (
    DimensionMismatchError,
    InsufficientDataError,
    ModelNotTrainedError,
    ModelStateError,
)
from src.common.evaluation import RegressionMetrics, calculate_metrics

FORMAT_VERSION = 1


class BaseModel(ABC):
    """
    Common behaviour for LinearRegressionModel, KNearestNeighbors,
    DecisionTreeRegressor and MultiLayerPerceptron.

    Subclasses implement ``_fit``, ``_predict_one``, ``_get_state`` and
    ``_set_state``; everything else (validation, batching, the JSON envelope)
    lives here.
    """

    model_type: str = "base"

    def __init__(self) -> None:
        self.is_trained = False
        self.n_features: int = 0

    # -- training -------------------------------------------------------

    def fit(self, features: Sequence[Sequence[float]], targets: Sequence[Any]) -> "BaseModel":
        X = np.asarray(features, dtype=float)
        y = np.asarray(targets, dtype=float)
        if X.size == 0 or len(X) == 0:
            raise InsufficientDataError(f"{self.__class__.__name__} needs at least one training row")
        if X.ndim != 2:
            raise DimensionMismatchError("features must be a 2-D matrix")
        if len(X) != len(y):
            raise DimensionMismatchError(f"{len(X)} feature rows but {len(y)} targets")

        self.n_features = X.shape[1]
        self._fit(X, y)
        self.is_trained = True
        return self

    @abstractmethod
    def _fit(self, X: np.ndarray, y: np.ndarray) -> None:
        ...

    # -- inference ------------------------------------------------------

    def _check_input(self, x: Sequence[float]) -> np.ndarray:
        if not self.is_trained:
            raise ModelNotTrainedError(self.__class__.__name__)
        arr = np.asarray(x, dtype=float)
        if arr.ndim != 1 or arr.shape[0] != self.n_features:
            raise DimensionMismatchError(
                f"{self.__class__.__name__} expects {self.n_features} features, got {arr.shape}"
            )
        return arr

    def predict(self, x: Sequence[float]):
        """Predict one feature vector. Returns a float, or an array for multi-output models."""
        return self._predict_one(self._check_input(x))

    def predict_batch(self, features: Sequence[Sequence[float]]) -> np.ndarray:
        return np.asarray([self.predict(row) for row in features], dtype=float)

    @abstractmethod
    def _predict_one(self, x: np.ndarray):
        ...

    def evaluate(self, features: Sequence[Sequence[float]], targets: Sequence[float]) -> RegressionMetrics:
        predictions = self.predict_batch(features)
        return calculate_metrics(np.asarray(targets, dtype=float).ravel(), predictions.ravel())

    # -- persistence ----------------------------------------------------

    def save(self) -> str:
        if not self.is_trained:
            raise ModelNotTrainedError(self.__class__.__name__)
        envelope = {
            "format_version": FORMAT_VERSION,
            "model_type": self.model_type,
            "state": {"n_features": self.n_features, **self._get_state()},
        }
        return json.dumps(envelope)

    def load(self, blob: str) -> "BaseModel":
        try:
            envelope = json.loads(blob)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ModelStateError(f"{self.model_type} blob is not valid JSON") from exc

        if not isinstance(envelope, dict):
            raise ModelStateError(f"{self.model_type} blob must be a JSON object")
        if envelope.get("format_version") != FORMAT_VERSION:
            raise ModelStateError(f"unsupported format_version {envelope.get('format_version')!r}")
        if envelope.get("model_type") != self.model_type:
            raise ModelStateError(f"blob holds {envelope.get('model_type')!r}, expected {self.model_type!r}")

        state = envelope.get("state")
        try:
            self.n_features = int(state["n_features"])
            self._set_state(state)
        except (KeyError, TypeError, ValueError) as exc:
            raise ModelStateError(f"{self.model_type} state is malformed: {exc}") from exc

        self.is_trained = True
        return self

    @abstractmethod
    def _get_state(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    def _set_state(self, state: Dict[str, Any]) -> None:
        ...
