# ABOUTME: Validates the trainable model primitives and their JSON persistence.
# ABOUTME: Covers linear regression, k-NN, regression trees, and the MLP.

import json
import unittest
import warnings

import numpy as np
import pytest
import torch

from src.common.errors import (
    DimensionMismatchError,
    IllConditionedInputError,
    InsufficientDataError,
    ModelNotTrainedError,
    ModelStateError,
)
from src.models import (
    DecisionTreeRegressor,
    KNearestNeighbors,
    LayerSpec,
    LinearRegressionModel,
    MultiLayerPerceptron,
)


def _line_data():
    xs = [[float(x)] for x in range(10)]
    ys = [2 * x[0] + 3 for x in xs]
    return xs, ys


def test_linear_regression_recovers_slope_and_intercept():
    xs, ys = _line_data()
    model = LinearRegressionModel().fit(xs, ys)

    assert model.weights[0] == pytest.approx(2.0)
    assert model.bias == pytest.approx(3.0)
    assert model.evaluate(xs, ys).r2 == pytest.approx(1.0)
    assert model.predict([20.0]) == pytest.approx(43.0)


def test_linear_regression_rejects_collinear_features():
    features = [[x, 2 * x] for x in range(6)]
    with pytest.raises(IllConditionedInputError):
        LinearRegressionModel().fit(features, list(range(6)))


def test_linear_regression_ridge_resolves_collinear_features():
    features = [[x, 2 * x] for x in range(6)]
    model = LinearRegressionModel(ridge=1e-3).fit(features, [3 * x for x in range(6)])
    assert model.predict([2.0, 4.0]) == pytest.approx(6.0, abs=1e-2)


def test_knn_with_k1_returns_training_target():
    features = [[0.0, 0.0], [1.0, 1.0], [5.0, 5.0]]
    targets = [10.0, 20.0, 30.0]
    model = KNearestNeighbors(k=1).fit(features, targets)

    for row, target in zip(features, targets):
        assert model.predict(row) == target


def test_knn_averages_and_caps_k_at_training_size():
    model = KNearestNeighbors(k=10).fit([[0.0], [1.0]], [2.0, 4.0])
    assert model.predict([0.2]) == pytest.approx(3.0)


def test_knn_supports_multi_output_targets():
    model = KNearestNeighbors(k=2).fit([[0.0], [1.0], [9.0]], [[1.0, 0.0], [3.0, 2.0], [9.0, 9.0]])
    assert model.predict([0.5]).tolist() == pytest.approx([2.0, 1.0])


def test_knn_rejects_non_positive_k():
    with pytest.raises(ValueError):
        KNearestNeighbors(k=0)


def test_tree_with_zero_depth_returns_training_mean():
    model = DecisionTreeRegressor(max_depth=0).fit([[1.0], [2.0], [3.0], [4.0]], [1.0, 2.0, 3.0, 10.0])
    assert model.predict([100.0]) == pytest.approx(4.0)
    assert model.depth() == 0


def test_tree_splits_step_function():
    features = [[x] for x in range(10)]
    targets = [0.0 if x < 5 else 1.0 for x in range(10)]
    model = DecisionTreeRegressor(max_depth=3).fit(features, targets)

    assert model.predict([2.0]) == pytest.approx(0.0)
    assert model.predict([8.0]) == pytest.approx(1.0)
    assert model.depth() == 1


def test_tree_skips_thresholds_that_leave_a_child_empty():
    low = np.nextafter(1.0, 2.0)
    high = np.nextafter(low, 2.0)

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        model = DecisionTreeRegressor(max_depth=3).fit([[low], [high]], [0.0, 1.0])

    assert model.depth() == 0
    assert model.predict([low]) == pytest.approx(0.5)


@pytest.mark.parametrize(
    "model",
    [
        LinearRegressionModel(),
        KNearestNeighbors(k=3),
        DecisionTreeRegressor(),
        MultiLayerPerceptron([(2, "relu"), (1, "linear")]),
    ],
    ids=["linear", "knn", "tree", "mlp"],
)
def test_predict_before_fit_raises_not_trained(model):
    with pytest.raises(ModelNotTrainedError):
        model.predict([0.0, 0.0])
    with pytest.raises(ModelNotTrainedError):
        model.save()


def test_fit_validates_shapes():
    with pytest.raises(InsufficientDataError):
        KNearestNeighbors().fit([], [])
    with pytest.raises(DimensionMismatchError):
        KNearestNeighbors().fit([[1.0], [2.0]], [1.0])

    model = KNearestNeighbors(k=1).fit([[1.0, 2.0]], [1.0])
    with pytest.raises(DimensionMismatchError):
        model.predict([1.0])


class TestPersistence(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(0)
        self.features = rng.random((20, 3)).tolist()
        self.targets = [a + 2 * b - c for a, b, c in self.features]
        self.samples = rng.random((5, 3)).tolist()

    def _assert_round_trip(self, fitted, fresh):
        restored = fresh.load(fitted.save())
        np.testing.assert_allclose(restored.predict_batch(self.samples), fitted.predict_batch(self.samples))
        self.assertTrue(restored.is_trained)

    def test_linear_regression_round_trip(self):
        fitted = LinearRegressionModel().fit(self.features, self.targets)
        self._assert_round_trip(fitted, LinearRegressionModel())

    def test_knn_round_trip(self):
        fitted = KNearestNeighbors(k=3).fit(self.features, self.targets)
        self._assert_round_trip(fitted, KNearestNeighbors())

    def test_tree_round_trip(self):
        fitted = DecisionTreeRegressor(max_depth=4).fit(self.features, self.targets)
        self._assert_round_trip(fitted, DecisionTreeRegressor())

    def test_mlp_round_trip(self):
        fitted = MultiLayerPerceptron([(3, "relu"), (4, "relu"), (1, "linear")], epochs=5, seed=1)
        fitted.fit(self.features, self.targets)
        self._assert_round_trip(fitted, MultiLayerPerceptron([(1, "relu"), (1, "linear")]))

    def test_envelope_is_versioned(self):
        blob = json.loads(KNearestNeighbors(k=1).fit([[1.0]], [2.0]).save())
        self.assertEqual(blob["format_version"], 1)
        self.assertEqual(blob["model_type"], "knn")
        self.assertEqual(blob["state"]["n_features"], 1)

    def test_load_rejects_bad_blobs(self):
        knn_blob = KNearestNeighbors(k=1).fit([[1.0]], [2.0]).save()
        with self.assertRaises(ModelStateError):
            LinearRegressionModel().load(knn_blob)
        with self.assertRaises(ModelStateError):
            KNearestNeighbors().load("not json")
        with self.assertRaises(ModelStateError):
            KNearestNeighbors().load(json.dumps({"format_version": 99, "model_type": "knn", "state": {}}))
        with self.assertRaises(ModelStateError):
            KNearestNeighbors().load(json.dumps({"format_version": 1, "model_type": "knn", "state": {}}))


def test_mlp_learns_simple_mapping_and_records_loss():
    features = [[x / 10] for x in range(10)]
    targets = [0.5 * x[0] + 0.1 for x in features]
    model = MultiLayerPerceptron([LayerSpec(1), LayerSpec(8), LayerSpec(1, "linear")], epochs=200, seed=0)
    model.fit(features, targets)

    assert len(model.loss_history) == 200
    assert model.loss_history[-1] < model.loss_history[0]
    assert isinstance(model.predict([0.5]), float)


def test_mlp_sigmoid_output_stays_in_unit_interval():
    model = MultiLayerPerceptron([(2, "relu"), (4, "relu"), (1, "sigmoid")], epochs=3, seed=0)
    model.fit([[0.0, 1.0], [1.0, 0.0]], [1.0, 0.0])
    preds = model.predict_batch([[5.0, -5.0], [-5.0, 5.0]])
    assert np.all((preds >= 0) & (preds <= 1))


def test_mlp_multi_output_and_width_checks():
    model = MultiLayerPerceptron([(2, "relu"), (2, "linear")], epochs=2, seed=0)
    model.fit([[0.0, 1.0], [1.0, 0.0]], [[1.0, 0.0], [0.0, 1.0]])
    assert model.predict([0.5, 0.5]).shape == (2,)

    with pytest.raises(DimensionMismatchError):
        MultiLayerPerceptron([(3, "relu"), (1, "linear")]).fit([[0.0, 1.0]], [1.0])
    with pytest.raises(ValueError):
        MultiLayerPerceptron([(2, "tanh"), (1, "linear")])


def test_seeded_mlp_is_reproducible_without_touching_global_rng():
    torch.manual_seed(123)
    before = torch.get_rng_state()

    first = MultiLayerPerceptron([(3, "relu"), (4, "relu"), (1, "linear")], epochs=2, seed=7)
    second = MultiLayerPerceptron([(3, "relu"), (4, "relu"), (1, "linear")], epochs=2, seed=7)
    first.fit([[0.0, 1.0, 0.5], [1.0, 0.0, 0.5]], [1.0, 0.0])

    assert torch.equal(torch.get_rng_state(), before)
    second.fit([[0.0, 1.0, 0.5], [1.0, 0.0, 0.5]], [1.0, 0.0])
    assert first.predict([0.3, 0.3, 0.3]) == second.predict([0.3, 0.3, 0.3])
