"""Tests for weekly and monthly summaries."""

from datetime import date, timedelta

import pytest

from sleep_engine.schemas.summaries import DaySleepData
from sleep_engine.services.summaries import SummaryGenerator, consistency_score, stage_percentages

MONDAY = date(2026, 1, 26)


def make_days(
    hours: list[float], start: date = MONDAY, deep_share: float = 0.2, quality: float = 80
) -> list[DaySleepData]:
    return [
        DaySleepData(
            date=start + timedelta(days=offset),
            duration_hours=value,
            quality=quality,
            deep_min=value * 60 * deep_share,
            rem_min=value * 60 * 0.22,
        )
        for offset, value in enumerate(hours)
    ]


class TestHelpers:
    """Tests for the summary helpers."""

    def test_consistency_score(self):
        """Test zero spread scores 100 and three hours SD scores 0."""
        assert consistency_score([]) == 0
        assert consistency_score([7, 7, 7]) == 100
        assert consistency_score([4, 10]) == 0

    def test_stage_percentages(self):
        """Test deep and REM shares of total minutes."""
        assert stage_percentages(make_days([8, 8])) == (20, 22)
        assert stage_percentages([]) == (0, 0)


class TestWeeklySummary:
    """Tests for the weekly summary."""

    def test_strong_week(self):
        """Test a week averaging over 7.5 hours."""
        summary = SummaryGenerator().generate_weekly_summary(
            make_days([7.5, 6.8, 8.0, 7.5, 7.0, 9.0, 8.5])
        )

        assert summary.main_insight == "A strong week: you averaged 7.8 hours a night."
        assert summary.total_hours == pytest.approx(54.3)
        assert summary.avg_hours == pytest.approx(7.8)
        assert summary.avg_quality == 80
        assert summary.best_day.day == "Saturday"
        assert summary.best_day.hours == 9.0
        assert summary.worst_day.day == "Tuesday"
        assert summary.days_with_good_sleep == 6
        assert summary.avg_deep_percent == 20
        assert summary.avg_rem_percent == 22
        assert len(summary.insights) == 3

    def test_short_week(self):
        """Test a steady but short week."""
        summary = SummaryGenerator().generate_weekly_summary(make_days([5.5] * 5))

        assert summary.main_insight == "Sleep debt is building: only 5.5 hours a night."
        assert summary.consistency_score == 100
        assert "Your sleep schedule was very consistent." in summary.insights
        assert summary.days_with_good_sleep == 0

    def test_social_jet_lag(self):
        """Test long weekend lie-ins are called out."""
        summary = SummaryGenerator().generate_weekly_summary(
            make_days([6, 6, 6, 6, 6, 9, 9], deep_share=0.15)
        )

        assert summary.main_insight == "Decent week. Adding 30-60 minutes a night would help."
        assert summary.insights[-1] == (
            "Weekend and weekday sleep differ a lot, a sign of social jet lag."
        )

    def test_no_data(self):
        """Test a week without sleep returns the empty summary."""
        summary = SummaryGenerator().generate_weekly_summary(make_days([0, 0, 0]))

        assert summary.total_hours == 0
        assert summary.best_day is None
        assert summary.worst_day is None
        assert summary.insights == ["No sleep was recorded this week."]


class TestMonthlySummary:
    """Tests for the monthly summary."""

    def test_improving_month(self):
        """Test weekly averages and the upward trend insight."""
        summary = SummaryGenerator().generate_monthly_summary(
            make_days([6.0] * 14 + [7.5] * 14, start=date(2026, 2, 2), quality=70)
        )

        assert summary.days_tracked == 28
        assert summary.total_hours == 189
        assert summary.weekly_averages == [6.0, 6.0, 7.5, 7.5]
        assert summary.days_with_good_sleep == 14
        assert summary.insights == [
            "Only 50% of nights reached the 7 hour goal.",
            "Your sleep duration improved over the month.",
        ]
        assert summary.main_insight == (
            "Sleep needs attention this month. Consider adjusting your schedule."
        )

    def test_great_month(self):
        """Test a month of full nights."""
        summary = SummaryGenerator().generate_monthly_summary(
            make_days([8.0] * 30, start=date(2026, 3, 1), quality=85)
        )

        assert summary.main_insight == "An outstanding month for sleep. Keep it going."
        assert summary.weekly_averages == [8.0, 8.0, 8.0, 8.0, 8.0]
        assert "Sleep quality stayed high all month." in summary.insights

    def test_untracked_days_are_ignored(self):
        """Test zero-hour days do not count as tracked."""
        summary = SummaryGenerator().generate_monthly_summary(make_days([7.0, 0, 8.0, 0]))

        assert summary.days_tracked == 2
        assert summary.days_with_good_sleep == 2

    def test_no_data(self):
        """Test a month without sleep returns the empty summary."""
        summary = SummaryGenerator().generate_monthly_summary([])

        assert summary.days_tracked == 0
        assert summary.weekly_averages == []
        assert summary.main_insight == "Track your sleep to unlock monthly insights."
