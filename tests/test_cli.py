"""Tests for the sleep-engine CLI."""

import json
from datetime import date, timedelta

import pytest
from typer.testing import CliRunner

from sleep_engine import __version__
from sleep_engine.cli import app
from sleep_engine.core.config import settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch):
    """Keep log lines out of command output."""
    monkeypatch.setattr(settings, "log_level", "ERROR")


def write_json(path, payload) -> str:
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload))
    return str(path)


def invoke_json(args: list[str]) -> dict:
    result = runner.invoke(app, args)
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestVersion:
    """Tests for the version command."""

    def test_version(self):
        """Test version output."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert f"sleep-engine v{__version__}" in result.stdout


class TestScoreCommand:
    """Tests for the score command."""

    def test_score(self, tmp_path, good_night, profile):
        """Test scoring a record with a profile at a fixed time."""
        record = write_json(tmp_path / "night.json", good_night.model_dump_json())
        profile_file = write_json(tmp_path / "profile.json", profile.model_dump_json())

        output = invoke_json(
            ["score", record, "--profile", profile_file, "--now", "2026-02-01T09:00:00+00:00"]
        )

        assert output["sleep_score"] == 91
        assert output["breakdown"]["confidence"] == "high"
        assert output["breakdown"]["calculated_at"].startswith("2026-02-01T09:00:00")

    def test_score_with_history(self, tmp_path, good_night, profile, history_14d):
        """Test a history file feeds the baseline."""
        record = write_json(tmp_path / "night.json", good_night.model_dump_json())
        profile_file = write_json(tmp_path / "profile.json", profile.model_dump_json())
        history = write_json(
            tmp_path / "history.json",
            [json.loads(night.model_dump_json()) for night in history_14d],
        )

        output = invoke_json(
            [
                "score",
                record,
                "--profile",
                profile_file,
                "--history",
                history,
                "--now",
                "2026-02-01T09:00:00+00:00",
            ]
        )

        assert output["breakdown"]["baseline"]["nights_analysed"] == 14

    def test_invalid_json(self, tmp_path):
        """Test a malformed file is a usage error."""
        record = write_json(tmp_path / "night.json", "{not json")

        result = runner.invoke(app, ["score", record])

        assert result.exit_code == 2

    def test_invalid_now(self, tmp_path, good_night):
        """Test an unparseable --now is a usage error."""
        record = write_json(tmp_path / "night.json", good_night.model_dump_json())

        result = runner.invoke(app, ["score", record, "--now", "yesterday"])

        assert result.exit_code == 2


class TestPredictCommand:
    """Tests for the predict command."""

    def test_predict(self, tmp_path, good_night, profile):
        """Test a prediction bundle is printed."""
        record = write_json(tmp_path / "night.json", good_night.model_dump_json())
        profile_file = write_json(tmp_path / "profile.json", profile.model_dump_json())

        output = invoke_json(
            ["predict", record, "--profile", profile_file, "--now", "2026-02-01T09:00:00+00:00"]
        )

        assert output["stage_distribution"]["confidence"] == "high"
        assert output["cycle_map"]["estimated_cycles"] == 5
        assert 0 <= output["recovery_index"] <= 100
        assert output["estimated_physiology"]["hr_max"] == 186.0


class TestTimelineCommand:
    """Tests for the timeline command."""

    def test_timeline(self, tmp_path, aggregate_night):
        """Test a cycle map is printed for aggregate data."""
        input_file = write_json(tmp_path / "aggregate.json", aggregate_night.model_dump_json())

        output = invoke_json(["timeline", input_file])

        assert output["estimated_cycles"] == 5
        assert sum(event["duration_minutes"] for event in output["phase_timeline"]) == 480

    def test_timeline_error(self, tmp_path):
        """Test missing timing exits with status 1 and the error."""
        input_file = write_json(tmp_path / "aggregate.json", {"duration_minutes": 480})

        result = runner.invoke(app, ["timeline", input_file])

        assert result.exit_code == 1
        error = json.loads(result.stdout)["error"]
        assert error["error_type"] == "missing_timing"
        assert error["is_fatal"] is False


class TestHypnogramCommand:
    """Tests for the hypnogram command."""

    def test_hypnogram(self, tmp_path):
        """Test stored rows are normalised."""
        rows = [
            {
                "stage": "light",
                "start_time": "2026-02-01T00:00:00Z",
                "end_time": "2026-02-01T00:40:00Z",
            },
            {
                "stage": "rem",
                "start_time": "2026-02-01T00:40:00Z",
                "end_time": "2026-02-01T01:20:00Z",
            },
            {"stage": "light", "start_time": "garbage", "end_time": "garbage"},
        ]
        rows_file = write_json(tmp_path / "rows.json", rows)

        output = invoke_json(["hypnogram", rows_file])

        assert output["dropped_rows"] == 1
        assert output["data"]["wake_min"] == 80
        assert [phase["stage"] for phase in output["data"]["phases"]] == ["light", "core"]

    def test_hypnogram_requires_list(self, tmp_path):
        """Test a non-list document is a usage error."""
        rows_file = write_json(tmp_path / "rows.json", {"stage": "light"})

        result = runner.invoke(app, ["hypnogram", rows_file])

        assert result.exit_code == 2


class TestPhysiologyCommand:
    """Tests for the physiology command."""

    def test_physiology(self, tmp_path, profile):
        """Test estimates for a profile at a reference date."""
        profile_file = write_json(tmp_path / "profile.json", profile.model_dump_json())

        output = invoke_json(["physiology", profile_file, "--today", "2026-02-01"])

        assert output["vo2max"] == 52.3
        assert output["resting_hr"] == 46.9

    def test_invalid_today(self, tmp_path, profile):
        """Test an unparseable --today is a usage error."""
        profile_file = write_json(tmp_path / "profile.json", profile.model_dump_json())

        result = runner.invoke(app, ["physiology", profile_file, "--today", "soon"])

        assert result.exit_code == 2


class TestSummaryCommand:
    """Tests for the summary command."""

    @pytest.fixture
    def days_file(self, tmp_path) -> str:
        """One week of tracked days."""
        start = date(2026, 1, 26)
        days = [
            {
                "date": (start + timedelta(days=offset)).isoformat(),
                "duration_hours": 7.5,
                "quality": 80,
                "deep_min": 90,
                "rem_min": 99,
            }
            for offset in range(7)
        ]
        return write_json(tmp_path / "days.json", days)

    def test_weekly(self, days_file):
        """Test the default weekly summary."""
        output = invoke_json(["summary", days_file])

        assert output["avg_hours"] == 7.5
        assert output["consistency_score"] == 100
        assert output["best_day"]["day"] == "Monday"

    def test_monthly(self, days_file):
        """Test the monthly summary option."""
        output = invoke_json(["summary", days_file, "--period", "monthly"])

        assert output["days_tracked"] == 7
        assert output["weekly_averages"] == [7.5]
