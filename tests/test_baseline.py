"""Tests for personal baseline calculation."""

from datetime import date, time

import pytest

from sleep_engine.schemas.sleep import SleepRecord
from sleep_engine.services.baseline import BaselineCalculator, newest_first, percentile
from tests.fixtures import make_night, seed_history


class TestBaselineCalculator:
    """Tests for BaselineCalculator."""

    def test_empty_history_uses_goal(self):
        """Test an empty history reports the goal as average duration."""
        baseline = BaselineCalculator().compute([], goal_minutes=450)

        assert baseline.avg_duration_min == 450
        assert baseline.nights_analysed == 0
        assert baseline.avg_deep_pct == 0
        assert baseline.bedtime_variance_minutes == 0

    def test_nights_without_duration_are_ignored(self):
        """Test zero and missing durations do not count as nights."""
        history = [
            make_night(date(2026, 1, 10), 420),
            SleepRecord(id="empty", duration_minutes=0),
            SleepRecord(id="missing"),
        ]

        baseline = BaselineCalculator().compute(history)

        assert baseline.nights_analysed == 1
        assert baseline.avg_duration_min == 420

    def test_regular_history(self):
        """Test a flat two-week history gives tight statistics."""
        history = seed_history(14, weekly_pattern=False)

        baseline = BaselineCalculator().compute(history)

        assert baseline.nights_analysed == 14
        assert baseline.avg_duration_min == 450
        assert baseline.avg_deep_pct == pytest.approx(20.0)
        assert baseline.avg_rem_pct == pytest.approx(22.0)
        assert baseline.avg_efficiency == pytest.approx(450 / 470)
        assert baseline.avg_waso_min == 20
        assert baseline.median_bedtime_minutes_from_midnight == 23 * 60
        assert baseline.bedtime_variance_minutes == 0

    def test_bedtimes_across_midnight_stay_contiguous(self):
        """Test 23:30 and 00:30 bedtimes are an hour apart, not 23 hours."""
        history = [
            make_night(date(2026, 1, 10), 420, bedtime=time(23, 30)),
            make_night(date(2026, 1, 11), 420, bedtime=time(0, 30)),
        ]

        baseline = BaselineCalculator().compute(history)

        assert baseline.median_bedtime_minutes_from_midnight == 1440
        assert baseline.bedtime_variance_minutes == pytest.approx(30)

    def test_duration_percentiles(self):
        """Test p25/p75 use linear interpolation."""
        history = [
            make_night(date(2026, 1, day), duration)
            for day, duration in zip(range(1, 6), [360, 400, 420, 440, 480], strict=True)
        ]

        baseline = BaselineCalculator().compute(history)

        assert baseline.p25_duration_min == 400
        assert baseline.p75_duration_min == 440

    def test_efficiency_falls_back_to_awake_minutes(self):
        """Test time in bed is TST plus awake when timing is missing."""
        record = SleepRecord(duration_minutes=400, awake_minutes=100)

        baseline = BaselineCalculator().compute([record])

        assert baseline.avg_efficiency == pytest.approx(0.8)


class TestPercentile:
    """Tests for percentile interpolation."""

    def test_empty(self):
        """Test no values gives zero."""
        assert percentile([], 0.5) == 0.0

    def test_interpolates_between_ranks(self):
        """Test a rank between two values is interpolated."""
        assert percentile([10, 20], 0.25) == pytest.approx(12.5)


class TestNewestFirst:
    """Tests for history ordering."""

    def test_orders_by_date_descending(self):
        """Test the most recent night comes first."""
        history = seed_history(3, last_night=date(2026, 1, 31))

        ordered = newest_first(history)

        assert [record.date for record in ordered] == [
            date(2026, 1, 31),
            date(2026, 1, 30),
            date(2026, 1, 29),
        ]

    def test_undated_nights_go_last(self):
        """Test nights with neither date nor start time sort last."""
        undated = SleepRecord(id="undated", duration_minutes=400)
        dated = make_night(date(2026, 1, 5), 400)

        assert [record.id for record in newest_first([undated, dated])] == [
            dated.id,
            "undated",
        ]

    def test_start_time_used_when_date_missing(self):
        """Test the start time's date stands in for a missing date."""
        older = make_night(date(2026, 1, 5), 400)
        newer = make_night(date(2026, 1, 6), 400).model_copy(update={"date": None})

        assert newest_first([older, newer])[0] is newer
