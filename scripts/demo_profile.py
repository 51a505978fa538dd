# ABOUTME: Provides a CLI that narrates one learner's engagement, plan, content, and partner matches.
# ABOUTME: Reads a JSON store snapshot and drives every predictor through the MLEngine facade.

from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.table import Table

from src.common.adapters import JsonSnapshotStore
from src.common.schemas import UserActivity
from src.engine import MLEngine
from src.study_plan import StudyPreferences

console = Console()
app = typer.Typer(help="Preview Study Buddy predictions for a single learner.")


def _default_snapshot() -> Path:
    return Path("data/study_buddy_snapshot.json")


def _open_store(snapshot: Path) -> JsonSnapshotStore:
    if not snapshot.exists():
        console.print(f"[red]Missing store snapshot at {snapshot}[/red]")
        raise typer.Exit(code=1)
    return JsonSnapshotStore(snapshot)


def _find_user(users: List[UserActivity], user_id: str) -> UserActivity:
    for user in users:
        if user.user_id == user_id:
            return user
    console.print(f"[yellow]No user {user_id} in snapshot[/yellow]")
    raise typer.Exit(code=1)


@app.command()
def profile(
    user_id: str = typer.Option(..., "--user-id", help="Learner identifier in the snapshot."),
    snapshot: Path = typer.Option(_default_snapshot(), "--snapshot", help="JSON export of users and interactions."),
    weekly_hours: float = typer.Option(10.0, "--weekly-hours", help="Study hours the learner wants per week."),
    train: bool = typer.Option(False, "--train", help="Fit study plan and content models on the snapshot first."),
    recommendation_count: int = typer.Option(5, "--recommendation-count", help="Number of content items to surface."),
) -> None:
    """
    Show engagement risk, a weekly plan, and content recommendations for one learner.
    """
    store = _open_store(snapshot)
    users = store.load_user_activity()
    learner = _find_user(users, user_id)

    engine = MLEngine.create_default()
    if train:
        offsets = {u.user_id: u.user.timezone_offset for u in users if u.user.timezone_offset is not None}
        engine.study_plan.train_models([s for u in users for s in u.sessions], offsets)
        engine.content.train_models(store.load_interactions())
    engine.initialize()

    console.rule("[bold blue]Study Buddy Profile[/bold blue]")
    console.print(f"[bold]Learner:[/] {user_id}")
    console.print(f"[bold]Sessions:[/] {len(learner.sessions)}")
    console.print()

    engagement = engine.engagement.predict_for_user(learner)
    console.print("[bold green]Engagement[/bold green]")
    engagement_table = Table(show_header=True, header_style="bold magenta")
    engagement_table.add_column("Score")
    engagement_table.add_column("Risk")
    engagement_table.add_column("Dropout (days)")
    engagement_table.add_column("Confidence")
    engagement_table.add_row(
        str(engagement.engagement_score),
        engagement.risk_level,
        str(engagement.predicted_dropout_days),
        f"{engagement.confidence:.2f}",
    )
    console.print(engagement_table)
    for advice in engagement.recommendations + engagement.interventions:
        console.print(f"  → {advice}")

    priorities = {subject: 1.0 for subject in learner.user.subjects}
    plan = engine.study_plan.optimize_study_plan(
        learner, StudyPreferences(weekly_hours=weekly_hours, subject_priorities=priorities)
    )
    console.print()
    console.print(f"[bold yellow]Weekly plan ({plan.source})[/bold yellow]")
    plan_table = Table(show_header=True, header_style="bold magenta")
    plan_table.add_column("Day")
    plan_table.add_column("Start")
    plan_table.add_column("Minutes")
    plan_table.add_column("Subject")
    plan_table.add_column("Type")
    for day in plan.weekly_schedule:
        for session in day.sessions:
            plan_table.add_row(
                day.day, session.start_time, f"{session.duration:.0f}", session.subject, session.session_type
            )
    console.print(plan_table)

    recs = engine.content.recommend_content(learner, limit=recommendation_count)
    console.print()
    console.print("[bold yellow]Content[/bold yellow]")
    rec_table = Table(show_header=True, header_style="bold magenta")
    rec_table.add_column("Content ID")
    rec_table.add_column("Relevance")
    rec_table.add_column("Reason")
    for rec in recs:
        rec_table.add_row(rec.content_id, f"{rec.relevance_score:.2f}", rec.reason)
    console.print(rec_table)


@app.command()
def matches(
    user_id: str = typer.Option(..., "--user-id", help="Learner identifier in the snapshot."),
    snapshot: Path = typer.Option(_default_snapshot(), "--snapshot", help="JSON export of users and interactions."),
    limit: int = typer.Option(5, "--limit", help="Number of partners to surface."),
) -> None:
    """
    Rank study-partner candidates for one learner.
    """
    users = _open_store(snapshot).load_user_activity()
    learner = _find_user(users, user_id)
    engine = MLEngine.create_default()

    results = engine.partner_matching.find_matches(learner, users, limit=limit)
    if not results:
        console.print(f"[yellow]No partner candidates for {user_id}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Partner")
    table.add_column("Compatibility")
    table.add_column("Success")
    table.add_column("Reasons")
    for match in results:
        table.add_row(
            match.user_id,
            f"{match.compatibility_score:.2f}",
            f"{match.prediction.success_probability:.2f}",
            "; ".join(match.match_reasons),
        )
    console.print(table)


if __name__ == "__main__":
    app()
