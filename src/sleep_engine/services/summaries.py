"""Weekly and monthly sleep summaries with natural language insights."""

from collections.abc import Sequence
from statistics import mean, pstdev

import structlog

from sleep_engine.core.numeric import clamp, round_half_up, round_to
from sleep_engine.schemas.summaries import (
    DayHighlight,
    DaySleepData,
    MonthlySummary,
    WeeklySummary,
)

logger = structlog.get_logger()

GOOD_SLEEP_HOURS = 7.0
CONSISTENCY_MAX_STD_HOURS = 3.0  # Duration SD at which consistency is 0
MAX_WEEKLY_INSIGHTS = 3
MAX_MONTHLY_INSIGHTS = 4
DAYS_PER_WEEK = 7
SOCIAL_JET_LAG_HOURS = 1.5
TREND_THRESHOLD_HOURS = 0.5

# Fixed English names so output does not depend on the host locale
WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
WEEKEND_WEEKDAYS = {5, 6}


def consistency_score(hours: Sequence[float]) -> int:
    """Duration consistency (0-100): 100 at zero spread, 0 at three hours SD."""
    if not hours:
        return 0
    spread = pstdev(hours)
    return round_half_up(clamp((1 - spread / CONSISTENCY_MAX_STD_HOURS) * 100, 0, 100))


def stage_percentages(days: Sequence[DaySleepData]) -> tuple[int, int]:
    """Average deep and REM share of total sleep, as whole percentages."""
    total_minutes = sum(day.duration_hours * 60 for day in days)
    if total_minutes <= 0:
        return 0, 0
    deep = sum(day.deep_min for day in days)
    rem = sum(day.rem_min for day in days)
    return (
        round_half_up(deep / total_minutes * 100),
        round_half_up(rem / total_minutes * 100),
    )


class SummaryGenerator:
    """Generate weekly and monthly summaries from tracked days.

    Days with no sleep duration are ignored. Insights are plain sentences
    meant to be shown as-is.
    """

    def __init__(self) -> None:
        """Initialize summary generator."""
        self.logger = logger.bind(service="summaries")

    def generate_weekly_summary(self, days: Sequence[DaySleepData]) -> WeeklySummary:
        """Summarise up to a week of nights.

        Args:
            days: Tracked days in any order

        Returns:
            WeeklySummary (the "no data" summary when no day has sleep)
        """
        valid = [day for day in days if day.duration_hours > 0]
        if not valid:
            return WeeklySummary(
                total_hours=0,
                avg_hours=0,
                avg_quality=0,
                best_day=None,
                worst_day=None,
                days_with_good_sleep=0,
                avg_deep_percent=0,
                avg_rem_percent=0,
                consistency_score=0,
                insights=["No sleep was recorded this week."],
                main_insight="Track a few nights to unlock weekly insights.",
            )

        hours = [day.duration_hours for day in valid]
        total_hours = sum(hours)
        avg_hours = total_hours / len(valid)
        avg_quality = mean(day.quality for day in valid)

        ranked = sorted(valid, key=lambda day: day.duration_hours, reverse=True)
        best, worst = ranked[0], ranked[-1]
        deep_pct, rem_pct = stage_percentages(valid)
        consistency = consistency_score(hours)

        insights: list[str] = []
        if avg_hours >= 7.5:
            insights.append("Sleep duration was excellent, well inside the 7-9 hour range.")
            main_insight = f"A strong week: you averaged {avg_hours:.1f} hours a night."
        elif avg_hours >= 6.5:
            insights.append("Sleep duration was adequate. Aim for 7-8 hours a night.")
            main_insight = "Decent week. Adding 30-60 minutes a night would help."
        else:
            insights.append("You slept less than you need, which affects energy and mood.")
            main_insight = f"Sleep debt is building: only {avg_hours:.1f} hours a night."

        if consistency >= 80:
            insights.append("Your sleep schedule was very consistent.")
        elif consistency >= 50:
            insights.append("Your sleep length varied a fair amount. Keep a steadier bedtime.")
        else:
            insights.append("Your sleep schedule was irregular, which disrupts your body clock.")

        if deep_pct < 13:
            insights.append("Deep sleep was below the 15-20% target. Limit late screens.")
        elif deep_pct >= 18:
            insights.append("Deep sleep was excellent, a sign of good physical recovery.")

        weekend = [day.duration_hours for day in valid if day.date.weekday() in WEEKEND_WEEKDAYS]
        weekday = [
            day.duration_hours for day in valid if day.date.weekday() not in WEEKEND_WEEKDAYS
        ]
        if weekend and weekday and abs(mean(weekend) - mean(weekday)) > SOCIAL_JET_LAG_HOURS:
            insights.append("Weekend and weekday sleep differ a lot, a sign of social jet lag.")

        self.logger.debug(
            "Generated weekly summary",
            days=len(valid),
            avg_hours=round_to(avg_hours),
            consistency=consistency,
        )

        return WeeklySummary(
            total_hours=round_to(total_hours),
            avg_hours=round_to(avg_hours),
            avg_quality=round_half_up(avg_quality),
            best_day=DayHighlight(
                day=WEEKDAY_NAMES[best.date.weekday()], hours=best.duration_hours
            ),
            worst_day=DayHighlight(
                day=WEEKDAY_NAMES[worst.date.weekday()], hours=worst.duration_hours
            ),
            days_with_good_sleep=sum(1 for value in hours if value >= GOOD_SLEEP_HOURS),
            avg_deep_percent=deep_pct,
            avg_rem_percent=rem_pct,
            consistency_score=consistency,
            insights=insights[:MAX_WEEKLY_INSIGHTS],
            main_insight=main_insight,
        )

    def generate_monthly_summary(self, days: Sequence[DaySleepData]) -> MonthlySummary:
        """Summarise a month of nights.

        Weekly averages are taken over consecutive chunks of seven tracked
        days in input order.

        Args:
            days: Tracked days, oldest first

        Returns:
            MonthlySummary (the "no data" summary when no day has sleep)
        """
        valid = [day for day in days if day.duration_hours > 0]
        if not valid:
            return MonthlySummary(
                total_hours=0,
                avg_hours=0,
                avg_quality=0,
                days_tracked=0,
                days_with_good_sleep=0,
                avg_deep_percent=0,
                avg_rem_percent=0,
                consistency_score=0,
                weekly_averages=[],
                insights=["No sleep was recorded this month."],
                main_insight="Track your sleep to unlock monthly insights.",
            )

        hours = [day.duration_hours for day in valid]
        total_hours = sum(hours)
        avg_hours = total_hours / len(valid)
        avg_quality = mean(day.quality for day in valid)
        good_days = sum(1 for value in hours if value >= GOOD_SLEEP_HOURS)
        deep_pct, rem_pct = stage_percentages(valid)

        weekly_averages = [
            round_to(mean(hours[index : index + DAYS_PER_WEEK]))
            for index in range(0, len(hours), DAYS_PER_WEEK)
        ]

        insights: list[str] = []
        goal_rate = round_half_up(good_days / len(valid) * 100)
        if goal_rate >= 80:
            insights.append(f"You reached 7+ hours on {goal_rate}% of tracked nights.")
            main_insight = "An outstanding month for sleep. Keep it going."
        elif goal_rate >= 60:
            insights.append(f"You reached 7+ hours on {goal_rate}% of nights.")
            main_insight = "A solid month. A few more full nights would make it great."
        else:
            insights.append(f"Only {goal_rate}% of nights reached the 7 hour goal.")
            main_insight = "Sleep needs attention this month. Consider adjusting your schedule."

        if len(weekly_averages) >= 2:
            trend = weekly_averages[-1] - weekly_averages[0]
            if trend > TREND_THRESHOLD_HOURS:
                insights.append("Your sleep duration improved over the month.")
            elif trend < -TREND_THRESHOLD_HOURS:
                insights.append("Your sleep duration dropped as the month went on.")

        if avg_quality >= 80:
            insights.append("Sleep quality stayed high all month.")
        elif avg_quality < 60:
            insights.append("Sleep quality was low. Review your bedroom and pre-bed routine.")

        if deep_pct < 15:
            insights.append("Deep sleep was below optimal. Regular daytime exercise can help.")

        self.logger.debug(
            "Generated monthly summary",
            days=len(valid),
            avg_hours=round_to(avg_hours),
            weeks=len(weekly_averages),
        )

        return MonthlySummary(
            total_hours=round_half_up(total_hours),
            avg_hours=round_to(avg_hours),
            avg_quality=round_half_up(avg_quality),
            days_tracked=len(valid),
            days_with_good_sleep=good_days,
            avg_deep_percent=deep_pct,
            avg_rem_percent=rem_pct,
            consistency_score=consistency_score(hours),
            weekly_averages=weekly_averages,
            insights=insights[:MAX_MONTHLY_INSIGHTS],
            main_insight=main_insight,
        )
