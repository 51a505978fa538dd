# ABOUTME: Greedy variance-reduction regression tree built with numpy.
# ABOUTME: Nodes are plain dicts so the fitted tree serializes directly to JSON.

from typing import Any, Dict, Optional, Tuple

import numpy as np

from .base import BaseModel


class DecisionTreeRegressor(BaseModel):
    """
    CART-style regressor. Candidate thresholds are midpoints between adjacent
    sorted unique values of each feature; the split with the lowest weighted
    child variance wins. Leaves store the mean target of their samples.
    """

    model_type = "decision_tree"

    def __init__(self, max_depth: int = 10, min_samples_split: int = 2):
        super().__init__()
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.root: Optional[Dict[str, Any]] = None

    def _fit(self, X: np.ndarray, y: np.ndarray) -> None:
        self.root = self._build(X, y.ravel(), depth=0)

    def _leaf(self, y: np.ndarray) -> Dict[str, Any]:
        return {"leaf": True, "value": float(y.mean())}

    def _build(self, X: np.ndarray, y: np.ndarray, depth: int) -> Dict[str, Any]:
        if depth >= self.max_depth or len(y) < self.min_samples_split or np.all(y == y[0]):
            return self._leaf(y)

        split = self._best_split(X, y)
        if split is None:
            return self._leaf(y)

        feature, threshold = split
        mask = X[:, feature] <= threshold
        return {
            "leaf": False,
            "feature": int(feature),
            "threshold": float(threshold),
            "left": self._build(X[mask], y[mask], depth + 1),
            "right": self._build(X[~mask], y[~mask], depth + 1),
        }

    def _best_split(self, X: np.ndarray, y: np.ndarray) -> Optional[Tuple[int, float]]:
        best: Optional[Tuple[int, float]] = None
        best_score = y.var() * len(y)

        for feature in range(X.shape[1]):
            values = np.unique(X[:, feature])
            if len(values) < 2:
                continue
            for threshold in (values[:-1] + values[1:]) / 2:
                mask = X[:, feature] <= threshold
                # midpoints of near-equal floats can round onto a neighbour
                if mask.all() or not mask.any():
                    continue
                left, right = y[mask], y[~mask]
                score = left.var() * len(left) + right.var() * len(right)
                if score < best_score:
                    best_score = score
                    best = (feature, float(threshold))

        return best

    def _predict_one(self, x: np.ndarray) -> float:
        node = self.root
        while not node["leaf"]:
            node = node["left"] if x[node["feature"]] <= node["threshold"] else node["right"]
        return node["value"]

    def depth(self) -> int:
        def _depth(node: Dict[str, Any]) -> int:
            if node["leaf"]:
                return 0
            return 1 + max(_depth(node["left"]), _depth(node["right"]))

        return _depth(self.root) if self.root else 0

    def _get_state(self) -> Dict[str, Any]:
        return {
            "max_depth": self.max_depth,
            "min_samples_split": self.min_samples_split,
            "root": self.root,
        }

    def _set_state(self, state: Dict[str, Any]) -> None:
        root = state["root"]
        if not isinstance(root, dict) or "leaf" not in root:
            raise ValueError("tree root is missing")
        self.max_depth = int(state["max_depth"])
        self.min_samples_split = int(state["min_samples_split"])
        self.root = root
