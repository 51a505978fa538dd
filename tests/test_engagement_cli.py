# ABOUTME: Verifies the engagement training CLI exposes its commands and writes metrics.
# ABOUTME: Runs train, cross-validate, and tune end to end against a small JSON snapshot.

import json
from datetime import datetime, timedelta, timezone

import yaml

from src.engagement import train as train_cli


def _snapshot_rows(n=8):
    now = datetime.now(timezone.utc)
    users = []
    for i in range(n):
        users.append(
            {
                "id": f"u{i}",
                "createdAt": (now - timedelta(days=30)).isoformat(),
                "studyLevel": "intermediate",
                "subjects": [{"subjectId": "math"}],
                "personalStudySessions": [
                    {
                        "id": f"u{i}-s{d}",
                        "startTime": (now - timedelta(days=d, hours=1)).isoformat(),
                        "durationMinutes": 30 + 10 * i,
                        "completionStatus": 1 + (i % 5),
                    }
                    for d in range(i + 1)
                ],
            }
        )
    return {"users": users, "interactions": []}


def _write_config(tmp_path, min_data_points=3):
    snapshot = tmp_path / "snapshot.json"
    snapshot.write_text(json.dumps(_snapshot_rows()))
    config = tmp_path / "engagement.yaml"
    config.write_text(
        yaml.safe_dump(
            {
                "run_name": "test_run",
                "data": {"snapshot_path": str(snapshot)},
                "trainer": {"min_data_points": min_data_points, "models_dir": str(tmp_path / "models")},
                "outputs": {"metrics_dir": str(tmp_path / "metrics")},
            }
        )
    )
    return config


def test_cli_has_train_cross_validate_and_tune_commands():
    command_names = {cmd.name or cmd.callback.__name__ for cmd in train_cli.app.registered_commands}
    assert "train" in command_names
    assert "cross-validate" in command_names
    assert "tune" in command_names


def test_train_command_writes_metrics_and_model(tmp_path):
    config = _write_config(tmp_path)

    train_cli.train(config=config, verbose=False)

    metrics = json.loads((tmp_path / "metrics" / "test_run_metrics.json").read_text())
    assert metrics["data_points"] == 8
    assert set(metrics["config"]) >= {"min_data_points", "learning_rate", "models_dir"}
    assert list((tmp_path / "models").glob("engagement-predictor-*.json"))


def test_cross_validate_command_writes_fold_metrics(tmp_path):
    config = _write_config(tmp_path)

    train_cli.cross_validate(config=config, folds=4, verbose=False)

    metrics = json.loads((tmp_path / "metrics" / "test_run_cv.json").read_text())
    assert metrics["folds"] == 4
    assert len(metrics["fold_results"]) == 4


def test_tune_command_writes_grid_results(tmp_path):
    config = _write_config(tmp_path)

    train_cli.tune(config=config, verbose=False)

    metrics = json.loads((tmp_path / "metrics" / "test_run_tuning.json").read_text())
    assert len(metrics["all_results"]) == 27
    assert {"learning_rate", "batch_size", "epochs"} <= set(metrics["best_config"])
    assert metrics["best_score"] == max(row["score"] for row in metrics["all_results"])
