# ABOUTME: Validates engagement training data preparation, evaluation, and tuning.
# ABOUTME: Uses an in-memory activity store so no snapshot files are needed.

import json
import logging
import warnings
from dataclasses import replace

import pytest

from builders import NOW, activity, partnership, review, sessions
from src.common.errors import InsufficientDataError
from src.engagement import (
    EngagementPredictor,
    ModelTrainer,
    TrainingConfig,
    TrainingExample,
    extract_features,
    ground_truth_score,
)
from src.engagement.trainer import TUNING_GRID, feature_importance, has_sufficient_data, load_training_config


class InMemoryStore:
    def __init__(self, users):
        self.users = users

    def load_user_activity(self):
        return list(self.users)

    def load_interactions(self):
        return []


def _population(n=12):
    users = []
    for i in range(n):
        count = 2 + 2 * i
        users.append(
            activity(
                f"u{i}",
                registered_days_ago=20,
                study_sessions=sessions(f"u{i}", count, days=min(14, count), ratings=[1.0 + (i % 5)] * count),
                partnerships=[partnership(f"u{i}", "p")] * (i % 3),
                reviews=[review(f"u{i}")] * (i % 4),
            )
        )
    users.append(activity("idle", registered_days_ago=20))
    users.append(activity("newcomer", registered_days_ago=3, study_sessions=sessions("newcomer", 3, days=3)))
    return users


def test_ground_truth_differs_from_predictor_formula():
    features = extract_features(_population()[5], NOW)
    label = ground_truth_score(features)
    assert 0.0 <= label <= 100.0
    assert label != EngagementPredictor().predict_engagement(features).engagement_score


def test_prepare_training_data_filters_users():
    trainer = ModelTrainer(InMemoryStore(_population()))
    data = trainer.prepare_training_data(NOW)

    user_ids = {example.user_id for example in data}
    assert len(data) == 12
    assert "idle" not in user_ids
    assert "newcomer" not in user_ids
    assert all(has_sufficient_data(example.features) for example in data)


def test_train_model_requires_minimum_data():
    trainer = ModelTrainer(InMemoryStore(_population()))
    with pytest.raises(InsufficientDataError):
        trainer.train_model(TrainingConfig(min_data_points=100), now=NOW)


def test_train_model_evaluates_and_saves_blob(tmp_path):
    config = TrainingConfig(min_data_points=5, models_dir=tmp_path / "models")
    result = ModelTrainer(InMemoryStore(_population()), config).train_model(now=NOW)

    assert result.data_points == 12
    assert 0.0 <= result.evaluation.accuracy <= 1.0
    assert len(result.evaluation.confusion_matrix) == 2
    assert len(result.evaluation.feature_importance) == 18
    assert result.model_path is not None and result.model_path.exists()

    blob = json.loads(result.model_path.read_text())
    assert blob["model_type"] == "engagement_predictor"
    restored = EngagementPredictor().load(result.model_path.read_text())
    assert restored.training_size == 9


def test_evaluate_model_requires_predictions():
    trainer = ModelTrainer(InMemoryStore([]))
    with pytest.raises(InsufficientDataError):
        trainer.evaluate_model(EngagementPredictor(), [])


def test_cross_validation_runs_each_fold():
    trainer = ModelTrainer(InMemoryStore(_population()))
    data = trainer.prepare_training_data(NOW)

    result = trainer.cross_validate(data, folds=3)

    assert len(result.fold_results) == 3
    assert 0.0 <= result.mean_accuracy <= 1.0
    assert result.std_accuracy >= 0.0
    with pytest.raises(InsufficientDataError):
        trainer.cross_validate(data[:2], folds=3)


def test_hyperparameter_tuning_covers_full_grid():
    trainer = ModelTrainer(InMemoryStore(_population()))
    data = trainer.prepare_training_data(NOW)

    result = trainer.hyperparameter_tuning(data)

    assert len(result.all_results) == 27
    combos = {(c.learning_rate, c.batch_size, c.epochs) for c, _ in result.all_results}
    assert len(combos) == 27
    assert result.best_config.learning_rate in TUNING_GRID["learning_rate"]
    assert result.best_score == max(score for _, score in result.all_results)


def test_hyperparameter_tuning_reports_rule_based_predictor(caplog):
    trainer = ModelTrainer(InMemoryStore(_population()))
    data = trainer.prepare_training_data(NOW)

    with caplog.at_level(logging.WARNING, logger="src.engagement.trainer"):
        result = trainer.hyperparameter_tuning(data)

    assert len({score for _, score in result.all_results}) == 1
    warnings = [r for r in caplog.records if "rule-based" in r.getMessage()]
    assert len(warnings) == 1


def test_load_training_config_from_yaml(tmp_path):
    path = tmp_path / "trainer.yaml"
    path.write_text("trainer:\n  min_data_points: 25\n  models_dir: out/models\n")

    config = load_training_config(path)

    assert config.min_data_points == 25
    assert config.test_split == 0.2
    assert str(config.models_dir) == "out/models"
    assert config.as_dict()["models_dir"] == "out/models"


def test_feature_importance_ignores_constant_columns():
    base = extract_features(_population()[5], NOW)
    examples = [TrainingExample(replace(base, session_frequency=f), 0.0) for f in (0.5, 1.0, 1.5, 2.0)]

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        ranked = feature_importance(examples, [10.0, 20.0, 30.0, 40.0])
        flat = feature_importance(examples, [50.0] * 4)

    assert ranked[0] == ("session_frequency", pytest.approx(1.0))
    assert all(value == 0.0 for _, value in ranked[1:])
    assert all(value == 0.0 for _, value in flat)
