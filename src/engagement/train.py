# ABOUTME: Provides the Typer CLI for training and evaluating the engagement predictor.
# ABOUTME: Loads YAML configs, reads a JSON store snapshot, and writes metrics JSON.

import json
import logging
from pathlib import Path
from typing import Any, Dict, Tuple

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from src.common.adapters import JsonSnapshotStore

from .trainer import ModelEvaluation, ModelTrainer, load_training_config

console = Console()
app = typer.Typer(help="Train and evaluate the engagement predictor.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load(config_path: Path) -> Tuple[Dict[str, Any], ModelTrainer]:
    print(f"[trainer] Loading config from {config_path}")
    with open(config_path) as f:
        cfg = yaml.safe_load(f)

    training_config = load_training_config(config_path)
    snapshot = Path(cfg["data"]["snapshot_path"])
    if not snapshot.exists():
        raise typer.BadParameter(f"Missing store snapshot at {snapshot}")
    print(f"[trainer] Reading store snapshot from {snapshot}")
    return cfg, ModelTrainer(JsonSnapshotStore(snapshot), training_config)


def _write_metrics(cfg: Dict[str, Any], suffix: str, payload: Dict[str, Any]) -> Path:
    metrics_dir = Path(cfg.get("outputs", {}).get("metrics_dir", "reports/metrics"))
    metrics_dir.mkdir(parents=True, exist_ok=True)
    path = metrics_dir / f"{cfg.get('run_name', 'engagement')}_{suffix}.json"
    with open(path, "w") as f:
        json.dump(payload, f, indent=2, default=str)
    print(f"[trainer] Metrics written to {path}")
    return path


def _evaluation_table(title: str, evaluation: ModelEvaluation) -> Table:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for name in ("accuracy", "precision", "recall", "f1_score", "mse", "mae"):
        table.add_row(name, f"{getattr(evaluation, name):.3f}")
    return table


def _evaluation_payload(evaluation: ModelEvaluation) -> Dict[str, Any]:
    return {
        "accuracy": evaluation.accuracy,
        "precision": evaluation.precision,
        "recall": evaluation.recall,
        "f1_score": evaluation.f1_score,
        "mse": evaluation.mse,
        "mae": evaluation.mae,
        "confusion_matrix": evaluation.confusion_matrix,
        "feature_importance": dict(evaluation.feature_importance),
        "recommendations": evaluation.recommendations,
    }


@app.command()
def train(
    config: Path = typer.Option(..., "--config", help="Path to engagement trainer config YAML."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Train on the snapshot, evaluate on a held-out split, and save the model blob."""
    _configure_logging(verbose)
    cfg, trainer = _load(config)

    result = trainer.train_model()
    console.print(_evaluation_table("Engagement predictor (held-out split)", result.evaluation))
    for advice in result.evaluation.recommendations:
        console.print(f"[yellow]- {advice}[/yellow]")
    if result.model_path:
        print(f"[trainer] Model saved to {result.model_path}")

    _write_metrics(
        cfg,
        "metrics",
        {
            **_evaluation_payload(result.evaluation),
            "data_points": result.data_points,
            "training_time": result.training_time,
            "model_path": result.model_path,
            "config": result.config.as_dict(),
            "timestamp": result.timestamp.isoformat(),
        },
    )


@app.command("cross-validate")
def cross_validate(
    config: Path = typer.Option(..., "--config", help="Path to engagement trainer config YAML."),
    folds: int = typer.Option(5, "--folds", help="Number of folds."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Run k-fold cross-validation over the prepared training data."""
    _configure_logging(verbose)
    cfg, trainer = _load(config)

    result = trainer.cross_validate(trainer.prepare_training_data(), folds=folds)
    table = Table(title=f"{folds}-fold cross-validation")
    table.add_column("Fold", justify="right")
    for name in ("accuracy", "precision", "recall", "f1_score"):
        table.add_column(name, justify="right")
    for index, fold in enumerate(result.fold_results, start=1):
        table.add_row(str(index), *(f"{getattr(fold, n):.3f}" for n in ("accuracy", "precision", "recall", "f1_score")))
    console.print(table)
    print(f"[trainer] mean accuracy {result.mean_accuracy:.3f} ± {result.std_accuracy:.3f}")

    _write_metrics(
        cfg,
        "cv",
        {
            "folds": folds,
            "mean_accuracy": result.mean_accuracy,
            "mean_precision": result.mean_precision,
            "mean_recall": result.mean_recall,
            "mean_f1_score": result.mean_f1_score,
            "std_accuracy": result.std_accuracy,
            "fold_results": [_evaluation_payload(f) for f in result.fold_results],
        },
    )


@app.command()
def tune(
    config: Path = typer.Option(..., "--config", help="Path to engagement trainer config YAML."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Grid-search learning rate, batch size, and epochs."""
    _configure_logging(verbose)
    cfg, trainer = _load(config)

    result = trainer.hyperparameter_tuning(trainer.prepare_training_data())
    table = Table(title="Hyperparameter grid")
    for column in ("learning_rate", "batch_size", "epochs", "f1"):
        table.add_column(column, justify="right")
    for candidate, score in result.all_results:
        table.add_row(str(candidate.learning_rate), str(candidate.batch_size), str(candidate.epochs), f"{score:.3f}")
    console.print(table)
    print(f"[trainer] best f1 {result.best_score:.3f} with {result.best_config.as_dict()}")

    _write_metrics(
        cfg,
        "tuning",
        {
            "best_score": result.best_score,
            "best_config": result.best_config.as_dict(),
            "all_results": [{"config": c.as_dict(), "score": s} for c, s in result.all_results],
        },
    )


if __name__ == "__main__":
    app()
