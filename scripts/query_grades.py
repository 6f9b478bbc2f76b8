"""CLI helpers for inspecting collected grade data without the browser."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from gradeboard.cache import ResultCache
from gradeboard.collector import CollectionOrchestrator
from gradeboard.core.config import CONFIG_ENV_VAR, DashboardConfig, load_dashboard_config
from gradeboard.core.errors import GradeboardError
from gradeboard.core.history import CollectionHistory
from gradeboard.store import AnalysisStore

ENV_REPO_ROOT = "GRADEBOARD_REPO_ROOT"


def _resolve_repo_root() -> Path:
    override = os.environ.get(ENV_REPO_ROOT)
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).resolve().parents[1]


def _resolve_default_config(repo_root: Path | None = None) -> Path:
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        return Path(env_config).expanduser().resolve()
    base_root = repo_root or _resolve_repo_root()
    return (base_root / "config" / "dashboard.yaml").resolve()


REPO_ROOT = _resolve_repo_root()
DEFAULT_CONFIG = _resolve_default_config(REPO_ROOT)

app = typer.Typer(help="Inspect course analysis, semester ranks, and collection history.")
console = Console()

ConfigOption = typer.Option(
    None,
    "--config",
    show_default=False,
    help=f"Dashboard YAML (defaults to {CONFIG_ENV_VAR} or {DEFAULT_CONFIG}).",
)


def _load_settings(path: Path | None) -> DashboardConfig:
    resolved = path.expanduser().resolve() if path is not None else _resolve_default_config()
    if resolved.exists():
        return load_dashboard_config(resolved)
    if path is not None:
        raise typer.BadParameter(f"Dashboard config not found at {resolved}")
    return load_dashboard_config(base_dir=_resolve_repo_root())


def _store_for(settings: DashboardConfig) -> AnalysisStore:
    return AnalysisStore(settings.data.analysis_dir, settings.data.grades_dir)


def query_courses(stuno: str, config_path: Path | None = None) -> List[dict]:
    store = _store_for(_load_settings(config_path))
    try:
        records = store.load(stuno)
    except GradeboardError as exc:
        raise typer.BadParameter(exc.message) from exc
    if records is None:
        raise typer.BadParameter(f"No analysis file at {store.analysis_path(stuno)}")
    rows = []
    for index, record in enumerate(records):
        record = record if isinstance(record, dict) else {}
        my_data = record.get("myData") if isinstance(record.get("myData"), dict) else {}
        rows.append(
            {
                "id": index,
                "year": record.get("YY"),
                "semester": record.get("SHTM_CD"),
                "course": record.get("KOR_SBJT_NM"),
                "instructor": record.get("STF_NM"),
                "score": my_data.get("totalScore"),
                "grade": my_data.get("grade"),
                "rank": record.get("rank"),
                "total": record.get("totalStudents"),
                "percentile": record.get("percentile"),
            }
        )
    return rows


def query_ranks(stuno: str, config_path: Path | None = None) -> List[dict]:
    store = _store_for(_load_settings(config_path))
    try:
        ranks = store.load_ranks(stuno)
    except GradeboardError as exc:
        raise typer.BadParameter(exc.message) from exc
    if ranks is None:
        raise typer.BadParameter(f"No grades file at {store.grades_path(stuno)}")
    return [rank.model_dump() for rank in ranks]


def query_history(config_path: Path | None = None, limit: int = 20) -> List[dict]:
    settings = _load_settings(config_path)
    history_path = settings.collector.history_path
    if history_path is None:
        return []
    events = CollectionHistory(history_path).tail(limit)
    return [json.loads(event.model_dump_json()) for event in events]


def _print_table(headers: list[str], rows: List[dict], keys: list[str]) -> None:
    table = Table(*headers)
    for row in rows:
        table.add_row(*["" if row.get(key) is None else str(row.get(key)) for key in keys])
    console.print(table)


def _semester_label(code: Any) -> str:
    return "1학기" if str(code) == "10" else "2학기"


@app.command()
def courses(
    stuno: str = typer.Argument(..., help="Student number."),
    config: Optional[Path] = ConfigOption,
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
) -> None:
    """List course records from the analysis file in file order."""

    rows = query_courses(stuno, config)
    if as_json:
        typer.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return
    for row in rows:
        row["semester"] = f"{row.get('year')} {_semester_label(row.get('semester'))}"
    _print_table(
        ["#", "Semester", "Course", "Instructor", "Score", "Grade", "Rank"],
        [{**row, "rank": f"{row.get('rank')}/{row.get('total')}"} for row in rows],
        ["id", "semester", "course", "instructor", "score", "grade", "rank"],
    )


@app.command()
def ranks(
    stuno: str = typer.Argument(..., help="Student number."),
    config: Optional[Path] = ConfigOption,
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
) -> None:
    """Show the overall rank for each semester."""

    rows = query_ranks(stuno, config)
    if as_json:
        typer.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return
    _print_table(["Year", "Semester", "Rank"], rows, ["YY", "SHTM_CD", "SUST_RANK"])


@app.command()
def collect(
    stuno: str = typer.Argument(..., help="Student number."),
    config: Optional[Path] = ConfigOption,
    verbose: bool = typer.Option(False, "--verbose", help="Stream stage output through logging."),
) -> None:
    """Run the collect -> analyze pipeline once and report the record count."""

    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING)
    settings = _load_settings(config)
    store = _store_for(settings)
    orchestrator = CollectionOrchestrator.from_config(settings.collector, store, ResultCache(max_entries=1))
    try:
        result = orchestrator.collect(stuno)
    except GradeboardError as exc:
        console.print(f"[red]collection failed:[/red] {exc.message}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]collected[/green] {result.count} course records for {stuno}")


@app.command()
def history(
    config: Optional[Path] = ConfigOption,
    limit: int = typer.Option(20, "--limit", min=1, help="Number of recent events to show."),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of a table."),
) -> None:
    """Show the most recent collection attempts."""

    rows = query_history(config, limit)
    if as_json:
        typer.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return
    if not rows:
        console.print("[dim]No collection history recorded yet.[/dim]")
        return
    _print_table(
        ["When", "Student", "Outcome", "Stage", "Exit", "Count", "Seconds"],
        [{**row, "duration_seconds": f"{row.get('duration_seconds', 0.0):.2f}"} for row in rows],
        ["timestamp", "stuno", "outcome", "stage", "returncode", "count", "duration_seconds"],
    )


def _summary_counts(settings: DashboardConfig) -> Dict[str, int]:
    analysis_dir = settings.data.analysis_dir
    grades_dir = settings.data.grades_dir
    return {
        "analysis_files": len(list(analysis_dir.glob("analysis_*.json"))) if analysis_dir.exists() else 0,
        "grades_files": len(list(grades_dir.glob("grades_*.json"))) if grades_dir.exists() else 0,
    }


@app.command()
def summary(config: Optional[Path] = ConfigOption) -> None:
    """Summarize where data lives and how many students have been collected."""

    settings = _load_settings(config)
    counts = _summary_counts(settings)
    table = Table("Setting", "Value")
    table.add_row("Analysis dir", str(settings.data.analysis_dir))
    table.add_row("Grades dir", str(settings.data.grades_dir))
    table.add_row("Analysis files", str(counts["analysis_files"]))
    table.add_row("Grades files", str(counts["grades_files"]))
    table.add_row("Collect command", " ".join(settings.collector.collect_command))
    table.add_row("Analyze command", " ".join(settings.collector.analyze_command))
    console.print(table)


if __name__ == "__main__":
    app()
