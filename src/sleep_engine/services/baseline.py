"""Personal baseline calculation from sleep history."""

import math
from collections.abc import Iterable
from datetime import date
from statistics import mean, median

import structlog

from sleep_engine.core.constants import DEFAULT_SLEEP_GOAL_MINUTES
from sleep_engine.core.timeutils import minutes_between, minutes_from_midnight
from sleep_engine.schemas.sleep import SleepRecord, UserBaseline

logger = structlog.get_logger()


class BaselineCalculator:
    """Compute a user's personal sleep baseline.

    Baselines are personal reference values computed from historical nights.
    They feed the blended norms and the consistency component of the score.
    Nights without a positive total sleep time are ignored.
    """

    def __init__(self) -> None:
        """Initialize baseline calculator."""
        self.logger = logger.bind(service="baseline")

    def compute(
        self,
        history: Iterable[SleepRecord],
        goal_minutes: float = DEFAULT_SLEEP_GOAL_MINUTES,
    ) -> UserBaseline:
        """Compute the baseline for a set of nights.

        Args:
            history: Past nights in any order
            goal_minutes: Average duration reported when no valid night exists

        Returns:
            UserBaseline (all statistics zero when no night is valid)
        """
        durations: list[float] = []
        deep_pcts: list[float] = []
        rem_pcts: list[float] = []
        efficiencies: list[float] = []
        wasos: list[float] = []
        bedtimes: list[float] = []
        wake_times: list[float] = []

        # Welford running variance for bedtimes
        bedtime_count = 0
        bedtime_mean = 0.0
        bedtime_m2 = 0.0

        for record in history:
            tst = record.total_sleep_minutes
            if tst <= 0:
                continue

            durations.append(tst)
            if record.deep_minutes:
                deep_pcts.append(record.deep_minutes / tst * 100)
            if record.rem_minutes:
                rem_pcts.append(record.rem_minutes / tst * 100)
            if record.awake_minutes is not None:
                wasos.append(record.awake_minutes)

            efficiency = self._efficiency(record, tst)
            if efficiency is not None:
                efficiencies.append(efficiency)

            bedtime = minutes_from_midnight(record.start_time)
            if bedtime is not None:
                bedtimes.append(bedtime)
                bedtime_count += 1
                delta = bedtime - bedtime_mean
                bedtime_mean += delta / bedtime_count
                bedtime_m2 += delta * (bedtime - bedtime_mean)

            wake = minutes_from_midnight(record.end_time)
            if wake is not None:
                wake_times.append(wake)

        variance = math.sqrt(bedtime_m2 / bedtime_count) if bedtime_count > 1 else 0.0

        baseline = UserBaseline(
            avg_duration_min=mean(durations) if durations else float(goal_minutes),
            avg_deep_pct=_mean_or_zero(deep_pcts),
            avg_rem_pct=_mean_or_zero(rem_pcts),
            avg_efficiency=_mean_or_zero(efficiencies),
            avg_waso_min=_mean_or_zero(wasos),
            median_bedtime_minutes_from_midnight=_median_or_zero(bedtimes),
            median_wake_minutes_from_midnight=_median_or_zero(wake_times),
            bedtime_variance_minutes=variance,
            p25_duration_min=percentile(durations, 0.25),
            p75_duration_min=percentile(durations, 0.75),
            nights_analysed=len(durations),
        )

        self.logger.debug(
            "Computed baseline",
            nights_analysed=baseline.nights_analysed,
            avg_duration_min=round(baseline.avg_duration_min, 1),
        )
        return baseline

    def _efficiency(self, record: SleepRecord, tst: float) -> float | None:
        """TST over time in bed, using end-start when valid, else TST + awake."""
        time_in_bed = 0.0
        if record.start_time is not None and record.end_time is not None:
            time_in_bed = minutes_between(record.start_time, record.end_time)
        if time_in_bed <= 0:
            time_in_bed = tst + (record.awake_minutes or 0.0)
        if time_in_bed <= 0:
            return None
        return tst / time_in_bed


def percentile(values: list[float], p: float) -> float:
    """Linear-interpolated percentile at rank (n-1)p; 0 for no values."""
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = (len(ordered) - 1) * p
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return float(ordered[lower])
    return ordered[lower] + (ordered[upper] - ordered[lower]) * (rank - lower)


def _mean_or_zero(values: list[float]) -> float:
    return mean(values) if values else 0.0


def _median_or_zero(values: list[float]) -> float:
    return float(median(values)) if values else 0.0


def newest_first(history: Iterable[SleepRecord]) -> list[SleepRecord]:
    """Order nights by date, most recent first; undated nights go last.

    The sort is stable, so nights sharing a date keep their input order.
    """
    return sorted(history, key=_night_date, reverse=True)


def _night_date(record: SleepRecord) -> date:
    if record.date is not None:
        return record.date
    if record.start_time is not None:
        return record.start_time.date()
    return date.min
