# ABOUTME: Exposes the trainable model primitives used by every predictor.
# ABOUTME: Linear regression, k-NN, regression tree, and a PyTorch MLP.

from .base import FORMAT_VERSION, BaseModel
from .knn import KNearestNeighbors
from .linear import LinearRegressionModel
from .mlp import LayerSpec, MultiLayerPerceptron
from .tree import DecisionTreeRegressor

__all__ = [
    "FORMAT_VERSION",
    "BaseModel",
    "DecisionTreeRegressor",
    "KNearestNeighbors",
    "LayerSpec",
    "LinearRegressionModel",
    "MultiLayerPerceptron",
]
