"""Phase timeline generation from a predicted stage distribution.

Used when the night has no real stage minutes and the split comes from the
stage predictor. Deep sleep is front-loaded into the first third of the cycles
and REM back-loaded into the last third; each cycle is planned in fractional
minutes, scaled to fit the cycle, and laid out in whole minutes.
"""

import math
from datetime import datetime

import structlog

from sleep_engine.core.numeric import clamp, round_half_up
from sleep_engine.core.timeutils import add_minutes, minutes_between
from sleep_engine.schemas.prediction import SleepPredictionInput, StageDistribution
from sleep_engine.schemas.sleep import SleepStage
from sleep_engine.schemas.timeline import CycleMap
from sleep_engine.services.timeline_invariants import (
    TimelineCursor,
    apply_drift_correction,
    build_cycle_breakdown,
    ensure_timeline_invariants,
)

logger = structlog.get_logger()

PREDICTED_CYCLE_MINUTES = 95
MIN_CYCLES = 3
MAX_CYCLES = 6
SOL_RANGE = (5, 25)
LIGHT_SEGMENT_SHARE = 0.18  # Each light segment is at most this share of a cycle
FRONT_LOADED_SHARE = 0.6  # Deep in the first third, REM in the last third


def predicted_sol(resting_hr: float | None) -> int:
    """Sleep-onset latency tier from resting heart rate."""
    hr = resting_hr if resting_hr is not None else 0.0
    if hr > 70:
        sol = 20
    elif hr > 58:
        sol = 14
    else:
        sol = 8
    return int(clamp(sol, *SOL_RANGE))


class PhaseTimelineGenerator:
    """Lay out a predicted distribution as a minute-resolution timeline."""

    def __init__(self) -> None:
        """Initialize phase timeline generator."""
        self.logger = logger.bind(service="phase_timeline")

    def generate(
        self,
        data: SleepPredictionInput,
        distribution: StageDistribution,
        now: datetime | None = None,
    ) -> CycleMap:
        """Generate the timeline and per-cycle breakdown.

        Args:
            data: Prediction input (start time falls back to ``now``)
            distribution: Stage percentages to lay out
            now: Reference time used when the input has no start

        Returns:
            CycleMap carrying the distribution's confidence

        Raises:
            TimelineInvariantError: If the laid-out timeline breaks an invariant
        """
        total = max(1, round_half_up(data.duration_minutes))
        start = data.start_time or now or datetime.now().astimezone()
        end = add_minutes(start, total)
        if data.end_time is not None and minutes_between(start, data.end_time) > 0:
            end = data.end_time

        cycles = int(
            clamp(round_half_up(total / PREDICTED_CYCLE_MINUTES), MIN_CYCLES, MAX_CYCLES)
        )

        deep_total = total * distribution.deep_percent / 100
        rem_total = total * distribution.rem_percent / 100
        deep_left = deep_total
        rem_left = rem_total
        light_left = total * distribution.light_percent / 100
        awake_left = total * distribution.awake_percent / 100

        timeline = TimelineCursor(start, capacity=total)
        emitted_sol = timeline.push(SleepStage.AWAKE, min(predicted_sol(data.resting_hr), total), 0)
        awake_left = max(0.0, awake_left - emitted_sol)

        front = math.ceil(cycles / 3)
        back = cycles // 3
        non_front = max(1, cycles - front)
        non_back = max(1, cycles - back)
        back_start = cycles - back + 1
        cycle_target = total / cycles

        for cycle in range(1, cycles + 1):
            if cycle <= front:
                deep_plan = deep_total * FRONT_LOADED_SHARE / front
            else:
                deep_plan = deep_total * (1 - FRONT_LOADED_SHARE) / non_front
            if cycle >= back_start:
                rem_plan = rem_total * FRONT_LOADED_SHARE / max(1, back)
            else:
                rem_plan = rem_total * (1 - FRONT_LOADED_SHARE) / non_back

            descent = min(light_left, cycle_target * LIGHT_SEGMENT_SHARE)
            ascent = min(max(0.0, light_left - descent), cycle_target * LIGHT_SEGMENT_SHARE)
            deep = min(deep_left, deep_plan)
            rem = min(rem_left, rem_plan)
            micro = min(awake_left, 3 if awake_left >= 3 else 2) if awake_left > 0 else 0.0

            planned = [descent, deep, ascent, rem, micro]
            planned_sum = sum(planned)
            scale = cycle_target / planned_sum if planned_sum > cycle_target else 1.0
            descent, deep, ascent, rem, micro = (value * scale for value in planned)

            light_done = timeline.push(SleepStage.LIGHT, round_half_up(descent), cycle)
            deep_done = timeline.push(SleepStage.DEEP, round_half_up(deep), cycle)
            light_done += timeline.push(SleepStage.LIGHT, round_half_up(ascent), cycle)
            rem_done = timeline.push(SleepStage.REM, round_half_up(rem), cycle)
            awake_done = timeline.push(SleepStage.AWAKE, round_half_up(micro), cycle)

            deep_left = max(0.0, deep_left - deep_done)
            rem_left = max(0.0, rem_left - rem_done)
            light_left = max(0.0, light_left - light_done)
            awake_left = max(0.0, awake_left - awake_done)

        leftover = timeline.remaining or 0
        if leftover > 0:
            final_stage = SleepStage.LIGHT if light_left >= awake_left else SleepStage.AWAKE
            timeline.push(final_stage, leftover, cycles)

        events = apply_drift_correction(timeline.events, end)
        ensure_timeline_invariants(events, total)

        self.logger.debug(
            "Generated phase timeline",
            duration_minutes=total,
            cycles=cycles,
            events=len(events),
        )

        return CycleMap(
            estimated_cycles=cycles,
            phase_timeline=events,
            cycle_breakdown=build_cycle_breakdown(events, cycles),
            confidence=distribution.confidence,
        )


def generate_phase_timeline(
    data: SleepPredictionInput,
    distribution: StageDistribution,
    now: datetime | None = None,
) -> CycleMap:
    """Phase timeline for a predicted distribution.

    Raises:
        TimelineInvariantError: If the laid-out timeline breaks an invariant
    """
    return PhaseTimelineGenerator().generate(data, distribution, now)
