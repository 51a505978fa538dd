# ABOUTME: Multivariate linear regression solved with the normal equation.
# ABOUTME: Optional ridge term and a condition-number guard for near-singular inputs.

from typing import Any, Dict

import numpy as np

from src.common.errors import IllConditionedInputError

from .base import BaseModel


class LinearRegressionModel(BaseModel):
    """
    Ordinary (or ridge) least squares: w = (XᵀX + λI)⁻¹ Xᵀy.

    The intercept is fitted as an extra constant column and is never
    regularised. ``max_condition`` bounds the condition number of the Gram
    matrix; collinear or constant features raise IllConditionedInputError
    instead of producing garbage weights.
    """

    model_type = "linear_regression"

    def __init__(self, ridge: float = 0.0, max_condition: float = 1e12):
        super().__init__()
        self.ridge = ridge
        self.max_condition = max_condition
        self.weights = np.zeros(0)
        self.bias = 0.0

    def _fit(self, X: np.ndarray, y: np.ndarray) -> None:
        design = np.hstack([X, np.ones((len(X), 1))])
        gram = design.T @ design
        penalty = np.eye(gram.shape[0]) * self.ridge
        penalty[-1, -1] = 0.0
        gram = gram + penalty

        condition = np.linalg.cond(gram)
        if not np.isfinite(condition) or condition > self.max_condition:
            raise IllConditionedInputError(
                f"Gram matrix condition number {condition:.3g} exceeds {self.max_condition:.3g}"
            )

        solution = np.linalg.solve(gram, design.T @ y.ravel())
        self.weights = solution[:-1]
        self.bias = float(solution[-1])

    def _predict_one(self, x: np.ndarray) -> float:
        return float(np.dot(self.weights, x) + self.bias)

    def _get_state(self) -> Dict[str, Any]:
        return {
            "weights": self.weights.tolist(),
            "bias": self.bias,
            "ridge": self.ridge,
        }

    def _set_state(self, state: Dict[str, Any]) -> None:
        weights = np.asarray(state["weights"], dtype=float)
        if weights.shape != (self.n_features,):
            raise ValueError(f"expected {self.n_features} weights, got {weights.shape}")
        self.weights = weights
        self.bias = float(state["bias"])
        self.ridge = float(state.get("ridge", 0.0))
