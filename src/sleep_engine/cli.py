"""CLI entry point for sleep-engine.

Every command reads JSON documents from files and writes JSON to stdout.
Logs go to stderr.
"""

import json
from datetime import UTC, date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

import typer
from pydantic import BaseModel, TypeAdapter, ValidationError

from sleep_engine import __version__
from sleep_engine.core.config import settings
from sleep_engine.core.logging import configure_logging
from sleep_engine.core.timeutils import parse_timestamp
from sleep_engine.schemas.sleep import SleepRecord, UserProfile
from sleep_engine.schemas.summaries import DaySleepData
from sleep_engine.schemas.timeline import CycleDistributorInput
from sleep_engine.services.cycle_distributor import CycleDistributor
from sleep_engine.services.hypnogram import build_hypnogram_data
from sleep_engine.services.physiology import PhysiologyEstimator
from sleep_engine.services.prediction import SleepPredictionService
from sleep_engine.services.scoring import ScoreCalculator
from sleep_engine.services.summaries import SummaryGenerator

app = typer.Typer(
    name="sleep-engine",
    help="Deterministic sleep scoring, stage prediction and cycle timelines",
    no_args_is_help=True,
)

M = TypeVar("M", bound=BaseModel)

InputFile = typer.Argument(..., exists=True, dir_okay=False, readable=True)


class SummaryPeriod(str, Enum):
    """Summary window."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"{path} is not valid JSON: {e.msg}") from e


def _load_model(model: type[M], path: Path) -> M:
    try:
        return model.model_validate(_load_json(path))
    except ValidationError as e:
        raise typer.BadParameter(f"{path} is not a valid {model.__name__}: {e}") from e


def _load_list(model: type[M], path: Path | None) -> list[M]:
    if path is None:
        return []
    try:
        adapter = TypeAdapter(list[model])  # type: ignore[valid-type]
        return adapter.validate_python(_load_json(path))
    except ValidationError as e:
        raise typer.BadParameter(f"{path} is not a list of {model.__name__}: {e}") from e


def _load_profile(path: Path | None) -> UserProfile:
    profile = _load_model(UserProfile, path) if path is not None else UserProfile()
    if profile.sleep_goal_minutes is None:
        profile = profile.model_copy(
            update={"sleep_goal_minutes": float(settings.default_sleep_goal_minutes)}
        )
    return profile


def _parse_now(value: str | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    moment = parse_timestamp(value)
    if moment is None:
        raise typer.BadParameter(f"{value!r} is not an ISO-8601 timestamp", param_hint="--now")
    return moment


def _emit(model: BaseModel) -> None:
    typer.echo(model.model_dump_json(indent=2))


@app.callback()
def setup() -> None:
    """Deterministic sleep scoring, stage prediction and cycle timelines."""
    configure_logging(settings)


@app.command()
def score(
    record_file: Path = InputFile,
    profile_file: Path | None = typer.Option(None, "--profile", help="User profile JSON"),
    history_file: Path | None = typer.Option(None, "--history", help="Past nights JSON list"),
    now: str | None = typer.Option(None, help="Calculation timestamp (ISO-8601)"),
) -> None:
    """Score one night.

    Example:
        sleep-engine score night.json --profile profile.json --history history.json
    """
    record = _load_model(SleepRecord, record_file)
    result = ScoreCalculator().calculate(
        record,
        _load_profile(profile_file),
        _load_list(SleepRecord, history_file),
        _parse_now(now),
    )
    _emit(result)


@app.command()
def predict(
    record_file: Path = InputFile,
    profile_file: Path | None = typer.Option(None, "--profile", help="User profile JSON"),
    history_file: Path | None = typer.Option(None, "--history", help="Past nights JSON list"),
    now: str | None = typer.Option(None, help="Reference timestamp (ISO-8601)"),
) -> None:
    """Predict stages, timeline, recovery index and score for one night.

    Example:
        sleep-engine predict night.json --profile profile.json
    """
    moment = _parse_now(now)
    service = SleepPredictionService()
    data = service.build_prediction_input(
        _load_model(SleepRecord, record_file),
        _load_profile(profile_file),
        _load_list(SleepRecord, history_file),
        today=moment.date(),
    )
    _emit(service.build_premium_prediction(data, moment))


@app.command()
def timeline(input_file: Path = InputFile) -> None:
    """Distribute aggregate stage minutes into a cycle timeline.

    Exits with status 1 and prints the error when no timeline can be built.

    Example:
        sleep-engine timeline night-aggregates.json
    """
    result = CycleDistributor().distribute(_load_model(CycleDistributorInput, input_file))
    if result.output is None:
        error = result.error.to_log_dict() if result.error is not None else {}
        typer.echo(json.dumps({"error": error}, indent=2))
        raise typer.Exit(code=1)
    _emit(result.output)


@app.command()
def hypnogram(rows_file: Path = InputFile) -> None:
    """Normalise stored phase rows into hypnogram data.

    Example:
        sleep-engine hypnogram phases.json
    """
    rows = _load_json(rows_file)
    if not isinstance(rows, list):
        raise typer.BadParameter(f"{rows_file} must contain a JSON list of rows")
    _emit(build_hypnogram_data(rows))


@app.command()
def physiology(
    profile_file: Path = InputFile,
    today: str | None = typer.Option(None, help="Reference date (YYYY-MM-DD)"),
) -> None:
    """Estimate physiology from a user profile.

    Example:
        sleep-engine physiology profile.json --today 2026-01-15
    """
    reference = None
    if today is not None:
        try:
            reference = date.fromisoformat(today)
        except ValueError as e:
            raise typer.BadParameter(f"{today!r} is not a date", param_hint="--today") from e
    _emit(PhysiologyEstimator().estimate(_load_model(UserProfile, profile_file), reference))


@app.command()
def summary(
    days_file: Path = InputFile,
    period: SummaryPeriod = typer.Option(SummaryPeriod.WEEKLY, help="Summary window"),
) -> None:
    """Summarise tracked days.

    Example:
        sleep-engine summary days.json --period monthly
    """
    days = _load_list(DaySleepData, days_file)
    generator = SummaryGenerator()
    if period == SummaryPeriod.MONTHLY:
        _emit(generator.generate_monthly_summary(days))
    else:
        _emit(generator.generate_weekly_summary(days))


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"sleep-engine v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
