"""Cycle distribution from aggregate stage minutes.

Turns a night's totals (duration and whatever stage minutes are known) into a
minute-resolution phase timeline:

1. Resolve stage budgets from real minutes or age-calibrated ratios
2. Estimate sleep-onset latency (SOL) from resting HR and age
3. Split the rest of the night into 3-6 ultradian cycles
4. Front-load deep sleep with exponential decay (boosted by sleep debt)
5. Back-load REM with logarithmic growth and circadian limits on cycle 1
6. Fill each cycle with light sleep and micro-arousals
7. Lay the events out back to back, correct small drift, check invariants
"""

import math
from dataclasses import dataclass
from datetime import datetime

import structlog

from sleep_engine.core.constants import DEFAULT_AGE
from sleep_engine.core.numeric import clamp, round_half_up
from sleep_engine.schemas.sleep import ConfidenceLevel, SleepStage
from sleep_engine.schemas.timeline import CycleDistributorInput, CycleMap
from sleep_engine.services.redistribution import (
    clamp_non_negative,
    distribute_transfer_across_donors,
    force_sum_to_target,
    redistribute_difference_to_later_cycles,
    trim_from,
)
from sleep_engine.services.timeline_invariants import (
    SynthesisResult,
    TimelineCursor,
    TimelineError,
    TimelineErrorType,
    TimelineInvariantError,
    apply_drift_correction,
    build_cycle_breakdown,
    ensure_timeline_invariants,
)

logger = structlog.get_logger()

ALGORITHM_VERSION = 1
MEDIAN_CYCLE_MINUTES = 96
CYCLE1_MIN_MINUTES = 70
CYCLE1_MAX_MINUTES = 100
LATER_CYCLE_MIN_MINUTES = 85
LATER_CYCLE_MAX_MINUTES = 120
MIN_CYCLES = 3
MAX_CYCLES = 6
N3_DECAY_LAMBDA = 0.7  # Deep weight exp(-lambda * cycle_index)
REM_GROWTH_FACTOR = 1.0  # REM weight log(1 + factor * cycle_number)
SOL_MIN_MINUTES = 5
SOL_MAX_MINUTES = 30
CYCLE1_REM_MAX_MINUTES = 8
MICRO_AROUSAL_MINUTES = 2
MIN_LIGHT_MINUTES = 5  # Light floor per cycle and for the night's budget
DEFAULT_AWAKE_RATIO = 0.07
DEBT_BOOST_THRESHOLD_MINUTES = 60
DEBT_BOOST_DIVISOR = 960  # 16h of debt gives the full boost
DEBT_BOOST_MAX = 0.25
PERSONAL_RATIO_WEIGHT = 0.4
AGE_ATTENUATION_PER_DECADE = 0.02  # Cycle-1 deep loss per decade past 25
AGE_ATTENUATION_FLOOR = 0.75
LIGHT_DESCENT_SHARE = 0.45  # Share of cycle light before deep
HISTORY_HIGH_CONFIDENCE_NIGHTS = 7
HISTORY_MEDIUM_CONFIDENCE_NIGHTS = 3


@dataclass(frozen=True)
class StageBudgets:
    """Whole-minute stage totals for the night."""

    deep: int
    rem: int
    light: int
    awake: int


@dataclass(frozen=True)
class CycleAllocation:
    """Per-cycle stage minutes; each cycle's four entries sum to its length."""

    deep: list[int]
    rem: list[int]
    light: list[int]
    micro_arousals: list[int]


def age_stage_ratios(age: int | None) -> tuple[float, float]:
    """Age-calibrated (deep, REM) shares of total sleep."""
    if age is None:
        return 0.18, 0.22
    if age < 25:
        return 0.22, 0.23
    if age <= 44:
        return 0.18, 0.22
    if age <= 64:
        return 0.14, 0.20
    return 0.10, 0.18


def resolve_stage_budgets(data: CycleDistributorInput) -> StageBudgets:
    """Stage budgets from real minutes where given, otherwise age ratios.

    Deep and REM are trimmed (proportionally, then deep first) so light never
    drops below MIN_LIGHT_MINUTES.
    """
    duration = max(0, round_half_up(data.duration_minutes))
    deep_ratio, rem_ratio = age_stage_ratios(data.age)

    deep = _budget(data.deep_minutes, duration * deep_ratio)
    rem = _budget(data.rem_minutes, duration * rem_ratio)
    awake = _budget(data.awake_minutes, duration * DEFAULT_AWAKE_RATIO)

    light = duration - deep - rem - awake
    if light < MIN_LIGHT_MINUTES and deep + rem > 0:
        required = MIN_LIGHT_MINUTES - light
        deep_trim = min(round_half_up(required * deep / (deep + rem)), deep)
        rem_trim = min(required - deep_trim, rem)
        deep -= deep_trim
        rem -= rem_trim

        light = duration - deep - rem - awake
        if light < MIN_LIGHT_MINUTES:
            remaining = MIN_LIGHT_MINUTES - light
            extra_deep = min(remaining, deep)
            deep -= extra_deep
            rem -= min(remaining - extra_deep, rem)
            light = duration - deep - rem - awake

    return StageBudgets(deep=deep, rem=rem, light=light, awake=awake)


def _budget(minutes: float | None, fallback: float) -> int:
    value = minutes if minutes is not None else fallback
    return max(0, round_half_up(value))


def compute_sol(resting_hr: float | None, age: int | None) -> int:
    """Sleep-onset latency: longer with higher resting HR and age past 40."""
    hr = resting_hr if resting_hr is not None else 0.0
    if hr > 70:
        base = 18
    elif hr > 58:
        base = 13
    elif hr > 48:
        base = 9
    else:
        base = 7
    age_adjustment = max(0.0, ((age if age is not None else DEFAULT_AGE) - 40) * 0.15)
    return int(clamp(round_half_up(base + age_adjustment), SOL_MIN_MINUTES, SOL_MAX_MINUTES))


def estimate_cycle_count(minutes: int) -> int:
    """Number of cycles for the minutes after sleep onset."""
    return int(clamp(round_half_up(minutes / MEDIAN_CYCLE_MINUTES), MIN_CYCLES, MAX_CYCLES))


def compute_cycle_lengths(remaining: int) -> list[int]:
    """Split the post-onset minutes into cycles.

    Cycle 1 is shorter (70-100 min), later cycles 85-120 min, and the last
    cycle absorbs the rounding remainder. On nights too short for the bounds
    the overshoot is trimmed from the latest cycles so lengths stay
    non-negative and always sum to ``remaining``.
    """
    remaining = max(0, remaining)
    cycles = estimate_cycle_count(remaining)

    first = int(
        clamp(
            round_half_up(remaining / (cycles + 0.3)),
            CYCLE1_MIN_MINUTES,
            CYCLE1_MAX_MINUTES,
        )
    )
    later = int(
        clamp(
            round_half_up(max(0, remaining - first) / (cycles - 1)),
            LATER_CYCLE_MIN_MINUTES,
            LATER_CYCLE_MAX_MINUTES,
        )
    )
    lengths = [first] + [later] * (cycles - 1)

    remainder = remaining - sum(lengths)
    if remainder >= 0:
        lengths[-1] += remainder
        return lengths

    latest_first = list(range(cycles - 1, -1, -1))
    trimmed, _ = trim_from(lengths, latest_first, -remainder)
    return trimmed


def distribute_n3(lengths: list[int], deep_budget: int, sleep_debt: float | None) -> list[int]:
    """Deep minutes per cycle with exponential decay and a sleep-debt boost."""
    if not lengths:
        return []

    budget = max(0, deep_budget)
    weights = [math.exp(-N3_DECAY_LAMBDA * index) for index in range(len(lengths))]
    total_weight = sum(weights)
    deep = [max(0, round_half_up(budget * weight / total_weight)) for weight in weights]

    debt = sleep_debt or 0.0
    if debt > DEBT_BOOST_THRESHOLD_MINUTES and len(deep) > 1:
        boost = min(DEBT_BOOST_MAX, debt / DEBT_BOOST_DIVISOR)
        transfer = round_half_up(deep[0] * boost)
        if transfer > 0:
            deep[0] += transfer
            deep = distribute_transfer_across_donors(deep, transfer)

    return force_sum_to_target(clamp_non_negative(deep), budget, prefer_last_nonzero=True)


def distribute_rem(lengths: list[int], rem_budget: int, bedtime_hour: int | None) -> list[int]:
    """REM minutes per cycle growing logarithmically, with cycle 1 capped.

    Cycle 1 REM is held to 1-8 minutes, then halved for 22:00-23:59 bedtimes
    or capped at 10 for 00:00-03:59 bedtimes. Every change to cycle 1 is
    offset across the later cycles.
    """
    if not lengths:
        return []

    budget = max(0, rem_budget)
    weights = [math.log(1 + REM_GROWTH_FACTOR * (index + 1)) for index in range(len(lengths))]
    total_weight = sum(weights)
    rem = [max(0, round_half_up(budget * weight / total_weight)) for weight in weights]

    before = rem[0]
    rem[0] = int(clamp(rem[0], 1, CYCLE1_REM_MAX_MINUTES))
    rem = redistribute_difference_to_later_cycles(rem, rem[0] - before)

    if bedtime_hour is not None:
        before = rem[0]
        if 22 <= bedtime_hour <= 23:
            rem[0] = max(1, round_half_up(rem[0] * 0.5))
        elif 0 <= bedtime_hour <= 3:
            rem[0] = min(rem[0], 10)
        rem = redistribute_difference_to_later_cycles(rem, rem[0] - before)

    return force_sum_to_target(clamp_non_negative(rem), budget)


def attenuate_first_cycle_deep(deep: list[int], age: int | None) -> list[int]:
    """Shift cycle-1 deep sleep to later cycles as N3 declines with age."""
    if len(deep) <= 1 or age is None:
        return list(deep)

    decades = max(0.0, (age - 25) / 10)
    attenuation = clamp(1 - decades * AGE_ATTENUATION_PER_DECADE, AGE_ATTENUATION_FLOOR, 1.0)
    adjusted_first = max(0, round_half_up(deep[0] * attenuation))
    removed = deep[0] - adjusted_first
    if removed <= 0:
        return list(deep)

    budget = sum(deep)
    later = len(deep) - 1
    result = [adjusted_first] + [value + removed // later for value in deep[1:]]
    result[-1] += removed % later
    return force_sum_to_target(result, budget, prefer_last_nonzero=True)


def allocate_light_and_awake(
    lengths: list[int], deep: list[int], rem: list[int], awake_budget: int
) -> CycleAllocation:
    """Fill each cycle with light sleep and a micro-arousal.

    Light keeps a floor of MIN_LIGHT_MINUTES per cycle (or the whole cycle when
    shorter), taken back from deep and then REM. Awake minutes left after the
    per-cycle micro-arousals go to the last cycle, out of its light (down to
    the floor) and then its deep and REM.
    """
    deep_out = list(deep)
    rem_out = list(rem)
    light_out: list[int] = []
    micro_out: list[int] = []
    floors: list[int] = []
    remaining_awake = max(0, awake_budget)

    for index, length in enumerate(lengths):
        if remaining_awake > 3:
            micro = MICRO_AROUSAL_MINUTES
        elif remaining_awake > 0:
            micro = 1
        else:
            micro = 0
        micro = min(micro, length)
        remaining_awake -= micro

        floor = min(MIN_LIGHT_MINUTES, length - micro)
        light = length - deep_out[index] - rem_out[index] - micro
        if light < floor:
            deficit = floor - light
            deep_trim = min(deep_out[index], deficit)
            deep_out[index] -= deep_trim
            rem_trim = min(rem_out[index], deficit - deep_trim)
            rem_out[index] -= rem_trim
            light += deep_trim + rem_trim

        light_out.append(light)
        micro_out.append(micro)
        floors.append(floor)

    if remaining_awake > 0 and lengths:
        last = len(lengths) - 1
        from_light = min(remaining_awake, max(0, light_out[last] - floors[last]))
        light_out[last] -= from_light
        from_deep = min(remaining_awake - from_light, deep_out[last])
        deep_out[last] -= from_deep
        from_rem = min(remaining_awake - from_light - from_deep, rem_out[last])
        rem_out[last] -= from_rem
        micro_out[last] += from_light + from_deep + from_rem

    return CycleAllocation(deep=deep_out, rem=rem_out, light=light_out, micro_arousals=micro_out)


def compute_confidence(data: CycleDistributorInput) -> ConfidenceLevel:
    """Confidence from real stage availability and history depth."""
    has_stages = data.deep_minutes is not None and data.rem_minutes is not None
    if has_stages and data.history_nights >= HISTORY_HIGH_CONFIDENCE_NIGHTS:
        return ConfidenceLevel.HIGH
    if has_stages or data.history_nights >= HISTORY_MEDIUM_CONFIDENCE_NIGHTS:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


class CycleDistributor:
    """Distribute aggregate stage minutes across sleep cycles."""

    def __init__(self) -> None:
        """Initialize cycle distributor."""
        self.logger = logger.bind(service="cycle_distributor")

    def distribute(self, data: CycleDistributorInput) -> SynthesisResult:
        """Build a cycle map, reporting why when none can be built.

        Missing start/end or a non-positive duration yield a non-fatal error.
        An invariant violation yields a fatal error; the timeline is never
        returned in that case.

        Args:
            data: Aggregate night data

        Returns:
            SynthesisResult with either the cycle map or the error
        """
        if data.start_time is None or data.end_time is None:
            return SynthesisResult(
                error=TimelineError(
                    error_type=TimelineErrorType.MISSING_TIMING,
                    message="start and end time are required",
                )
            )

        duration = max(0, round_half_up(data.duration_minutes))
        if duration <= 0:
            return SynthesisResult(
                error=TimelineError(
                    error_type=TimelineErrorType.NO_DURATION,
                    message="duration must be positive",
                    details={"duration_minutes": data.duration_minutes},
                )
            )

        try:
            cycle_map = self._synthesise(data, duration, data.start_time, data.end_time)
        except TimelineInvariantError as e:
            self.logger.warning(
                "Cycle distribution failed invariant checks",
                violations=[violation.to_log_dict() for violation in e.violations],
            )
            return SynthesisResult(error=e.violations[0])

        return SynthesisResult(output=cycle_map)

    def _synthesise(
        self,
        data: CycleDistributorInput,
        duration: int,
        start: datetime,
        end: datetime,
    ) -> CycleMap:
        budgets = resolve_stage_budgets(data)
        sol = min(compute_sol(data.resting_hr, data.age), duration)
        lengths = compute_cycle_lengths(duration - sol)
        bedtime_hour = start.hour

        deep_budget = budgets.deep
        rem_budget = budgets.rem
        if data.personal_deep_ratio is not None and data.personal_rem_ratio is not None:
            deep_ratio, rem_ratio = age_stage_ratios(data.age)
            deep_budget = _blended_budget(duration, deep_ratio, data.personal_deep_ratio)
            rem_budget = _blended_budget(duration, rem_ratio, data.personal_rem_ratio)

        deep = distribute_n3(lengths, deep_budget, data.sleep_debt_minutes)
        rem = distribute_rem(lengths, rem_budget, bedtime_hour)
        deep = attenuate_first_cycle_deep(deep, data.age)

        allocation = allocate_light_and_awake(
            lengths, deep, rem, max(0, budgets.awake - sol)
        )

        timeline = TimelineCursor(start)
        timeline.push(SleepStage.AWAKE, sol, 0)
        for index in range(len(lengths)):
            light = allocation.light[index]
            descent = round_half_up(light * LIGHT_DESCENT_SHARE)
            cycle_number = index + 1
            timeline.push(SleepStage.LIGHT, descent, cycle_number)
            timeline.push(SleepStage.DEEP, allocation.deep[index], cycle_number)
            timeline.push(SleepStage.LIGHT, light - descent, cycle_number)
            timeline.push(SleepStage.REM, allocation.rem[index], cycle_number)
            timeline.push(SleepStage.AWAKE, allocation.micro_arousals[index], cycle_number)

        events = apply_drift_correction(timeline.events, end)
        ensure_timeline_invariants(events, duration)

        self.logger.debug(
            "Distributed sleep cycles",
            duration_minutes=duration,
            sol_minutes=sol,
            cycles=len(lengths),
            events=len(events),
        )

        return CycleMap(
            estimated_cycles=len(lengths),
            phase_timeline=events,
            cycle_breakdown=build_cycle_breakdown(events, len(lengths)),
            confidence=compute_confidence(data),
            algorithm_version=ALGORITHM_VERSION,
        )


def _blended_budget(duration: int, age_ratio: float, personal_ratio: float) -> int:
    blended = age_ratio * (1 - PERSONAL_RATIO_WEIGHT) + personal_ratio * PERSONAL_RATIO_WEIGHT
    return max(0, round_half_up(duration * blended))


def distribute_sleep_cycles(data: CycleDistributorInput) -> CycleMap | None:
    """Cycle map for aggregate data, or None when no timeline can be built."""
    return CycleDistributor().distribute(data).output
