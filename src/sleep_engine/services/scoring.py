"""Sleep score calculation.

The score is a weighted sum of component scores (duration, deep, REM,
efficiency, WASO, consistency) followed by a fixed sequence of adjustments:

    1. Short-sleep penalty (escalating below 6h, steeper below 5h)
    2. Chronic sleep-debt penalty from the most recent nights
    3. Reliability shrinkage toward 50 for less trustworthy sources
    4. Completeness multiplier for missing stage or timing fields

Every component function is total: missing or malformed fields degrade to a
neutral or zero contribution instead of raising.
"""

import math
from collections.abc import Sequence
from datetime import UTC, datetime

import structlog

from sleep_engine.core.constants import (
    DEFAULT_SLEEP_GOAL_MINUTES,
    LOW_RELIABILITY_SOURCES,
    NEUTRAL_COMPONENT_SCORE,
    SOURCE_RELIABILITY,
    get_source_reliability,
)
from sleep_engine.core.numeric import clamp, gaussian_score, round_half_up, round_to
from sleep_engine.core.timeutils import (
    MINUTES_PER_DAY,
    circular_diff_minutes,
    minutes_between,
    minutes_from_midnight,
)
from sleep_engine.schemas.scoring import (
    ComponentKey,
    ComponentResult,
    ScoreAdjustments,
    ScoreBreakdown,
    ScoreFlag,
    ScoreResult,
    SubScores,
)
from sleep_engine.schemas.sleep import (
    AgeNorm,
    Chronotype,
    ConfidenceLevel,
    DataSource,
    SleepRecord,
    UserBaseline,
    UserProfile,
)
from sleep_engine.services.baseline import BaselineCalculator, newest_first
from sleep_engine.services.norms import get_age_norm
from sleep_engine.services.physiology import resolve_plausible_age

logger = structlog.get_logger()

COMPONENT_WEIGHTS: dict[ComponentKey, float] = {
    ComponentKey.DURATION: 0.10,
    ComponentKey.DEEP_SLEEP: 0.20,
    ComponentKey.REM_SLEEP: 0.20,
    ComponentKey.EFFICIENCY: 0.25,
    ComponentKey.WASO: 0.15,
    ComponentKey.CONSISTENCY: 0.10,
    ComponentKey.TIMING: 0.0,  # Reported, not scored
    ComponentKey.SCREEN_TIME: 0.0,  # Reported, not scored
}

# Blended norm = personal share x personal average + population share x norm
PERSONAL_BLEND = 0.6
POPULATION_BLEND = 0.4

TIME_IN_BED_FALLBACK_RATIO = 1.08  # Assumed TIB/TST when timing is missing
STAGE_BAND_HALF_WIDTH = 2.5  # Percentage points of full credit either side
STAGE_BAND_ZERO_DISTANCE = 15.0  # Points outside the band where credit hits 0
WASO_FULL_CREDIT_MINUTES = 15
WASO_ZERO_CREDIT_MINUTES = 60
WASO_SEVERE_MINUTES = 60

CONSISTENCY_MIN_NIGHTS = 5
CONSISTENCY_SIGMA_MINUTES = 60
CONSISTENCY_VARIANCE_SCALE = 120  # Bedtime SD at which the variance term is 0
TIMING_SIGMA_MINUTES = 70
SCREEN_TIME_MIDPOINT_MINUTES = 40
SCREEN_TIME_STEEPNESS = 0.04

CHRONIC_DEBT_WINDOW_NIGHTS = 14
CHRONIC_DEBT_MIN_NIGHTS = 3
CHRONIC_DEBT_DEFICIT_SCALE = 0.5
CHRONIC_DEBT_MAX_PENALTY = 0.12

COMPLETENESS_MISSING_STAGE_PENALTY = 0.1
COMPLETENESS_MISSING_TIMING_PENALTY = 0.05
COMPLETENESS_MIN_FACTOR = 0.6

HIGH_CONFIDENCE_MIN_RELIABILITY = 0.9

# Flag thresholds
FLAG_DURATION_BELOW_MINUTES = 300
FLAG_GOAL_LOW_RATIO = 0.8
FLAG_DEEP_LOW_RATIO = 0.15
FLAG_REM_LOW_RATIO = 0.15
FLAG_AWAKE_HIGH_RATIO = 0.1
FLAG_BEDTIME_DEVIATION_MINUTES = 90
FLAG_BEDTIME_SEVERE_MINUTES = 180
FLAG_SOCIAL_JET_LAG_VARIANCE_MINUTES = 90

# Target bedtime in minutes from midnight for each chronotype
CHRONOTYPE_BEDTIME_TARGETS = {
    Chronotype.MORNING: 22 * 60,
    Chronotype.INTERMEDIATE: 23 * 60,
    Chronotype.EVENING: 60,
}


def stage_targets(age: int | None) -> tuple[float, float]:
    """Target deep and REM percentages for an age."""
    if age is None:
        return 18.0, 22.0
    if age < 25:
        return 22.0, 23.0
    if age <= 44:
        return 18.0, 22.0
    if age <= 64:
        return 14.0, 20.0
    return 10.0, 18.0


def score_stage_band(actual_pct: float, target_pct: float) -> float:
    """Full credit within the band around the target, linear decay outside it."""
    low = target_pct - STAGE_BAND_HALF_WIDTH
    high = target_pct + STAGE_BAND_HALF_WIDTH
    if low <= actual_pct <= high:
        return 100.0
    delta = low - actual_pct if actual_pct < low else actual_pct - high
    return max(0.0, 100 - delta / STAGE_BAND_ZERO_DISTANCE * 100)


def score_efficiency(efficiency_pct: float) -> float:
    """Tiered efficiency score (0-100)."""
    if efficiency_pct >= 90:
        return 100.0
    if efficiency_pct >= 85:
        return 80.0
    if efficiency_pct >= 80:
        return 60.0
    return max(0.0, efficiency_pct / 80 * 60)


def score_waso(waso_minutes: float) -> float:
    """Linear WASO score between the full and zero credit thresholds."""
    if waso_minutes < WASO_FULL_CREDIT_MINUTES:
        return 100.0
    if waso_minutes >= WASO_ZERO_CREDIT_MINUTES:
        return 0.0
    span = WASO_ZERO_CREDIT_MINUTES - WASO_FULL_CREDIT_MINUTES
    return (WASO_ZERO_CREDIT_MINUTES - waso_minutes) / span * 100


def score_total_sleep(tst_minutes: float) -> float:
    """J-curve over total sleep time; oversleep is penalised too."""
    hours = tst_minutes / 60
    if 7 <= hours <= 9:
        return 100.0
    if 6 <= hours < 7 or 9 < hours <= 10:
        return 80.0
    if 5 <= hours < 6 or 10 < hours <= 11:
        return 50.0
    return 20.0


def short_sleep_penalty(tst_minutes: float) -> float:
    """Points removed for nights under six hours."""
    hours = tst_minutes / 60
    if hours < 5:
        return 35 + (5 - hours) * 5
    if hours < 6:
        return 10 + (6 - hours) * 5
    return 0.0


def score_consistency(record: SleepRecord, baseline: UserBaseline) -> float:
    """Regularity in [0, 1] from bedtime deviation and bedtime spread.

    Needs at least five analysed nights and a bedtime; otherwise neutral.
    """
    if baseline.nights_analysed < CONSISTENCY_MIN_NIGHTS:
        return NEUTRAL_COMPONENT_SCORE
    bedtime = minutes_from_midnight(record.start_time)
    if bedtime is None:
        return NEUTRAL_COMPONENT_SCORE

    deviation = abs(bedtime - baseline.median_bedtime_minutes_from_midnight)
    bedtime_score = gaussian_score(deviation, 0, CONSISTENCY_SIGMA_MINUTES)
    variance_score = clamp(1 - baseline.bedtime_variance_minutes / CONSISTENCY_VARIANCE_SCALE)
    return clamp(0.6 * bedtime_score + 0.4 * variance_score)


def score_timing(record: SleepRecord, chronotype: Chronotype | None) -> float:
    """Bedtime alignment with the chronotype's target bedtime."""
    bedtime = minutes_from_midnight(record.start_time)
    if bedtime is None:
        return NEUTRAL_COMPONENT_SCORE
    normalised = bedtime - MINUTES_PER_DAY if bedtime >= MINUTES_PER_DAY else bedtime
    target = CHRONOTYPE_BEDTIME_TARGETS[chronotype or Chronotype.INTERMEDIATE]
    diff = circular_diff_minutes(normalised, target)
    return clamp(gaussian_score(diff, 0, TIMING_SIGMA_MINUTES))


def score_screen_time(record: SleepRecord) -> float:
    """Logistic decay over pre-bed screen minutes; neutral without a summary."""
    summary = record.screen_time_summary
    if summary is None:
        return NEUTRAL_COMPONENT_SCORE
    minutes = summary.total_minutes_last_2_hours or 0.0
    return clamp(
        1 / (1 + math.exp(SCREEN_TIME_STEEPNESS * (minutes - SCREEN_TIME_MIDPOINT_MINUTES)))
    )


def compute_chronic_debt_penalty(history: Sequence[SleepRecord], goal_minutes: float) -> float:
    """Fractional penalty from the average deficit over the most recent nights.

    History is ordered newest first by date before the window is taken;
    undated nights sort last. Needs at least three nights with a positive
    duration inside the window.
    """
    recent = [
        record
        for record in newest_first(history)[:CHRONIC_DEBT_WINDOW_NIGHTS]
        if record.total_sleep_minutes > 0
    ]
    if len(recent) < CHRONIC_DEBT_MIN_NIGHTS or goal_minutes <= 0:
        return 0.0
    avg_tst = sum(record.total_sleep_minutes for record in recent) / len(recent)
    deficit_ratio = max(0.0, (goal_minutes - avg_tst) / goal_minutes)
    return min(deficit_ratio * CHRONIC_DEBT_DEFICIT_SCALE, CHRONIC_DEBT_MAX_PENALTY)


def completeness_factor(record: SleepRecord) -> float:
    """Multiplier for missing stage fields and missing timing."""
    missing_stages = sum(
        1
        for value in (
            record.deep_minutes,
            record.rem_minutes,
            record.light_minutes,
            record.awake_minutes,
        )
        if value is None
    )
    missing_timing = record.start_time is None or record.end_time is None
    factor = (
        1
        - missing_stages * COMPLETENESS_MISSING_STAGE_PENALTY
        - (COMPLETENESS_MISSING_TIMING_PENALTY if missing_timing else 0.0)
    )
    return clamp(factor, COMPLETENESS_MIN_FACTOR, 1.0)


def blended_norm(personal: float, population: float) -> float:
    """Blend a personal average with its population norm (population when no history)."""
    return PERSONAL_BLEND * (personal or population) + POPULATION_BLEND * population


class ScoreCalculator:
    """Compute explainable sleep scores.

    A fresh baseline is derived from the supplied history on every call; the
    calculator holds no state between calls.
    """

    def __init__(self) -> None:
        """Initialize score calculator."""
        self.logger = logger.bind(service="scoring")
        self.baseline_calculator = BaselineCalculator()

    def calculate(
        self,
        record: SleepRecord,
        profile: UserProfile | None = None,
        history: Sequence[SleepRecord] = (),
        now: datetime | None = None,
    ) -> ScoreResult:
        """Score one night.

        Args:
            record: The night to score
            profile: User demographics and preferences
            history: Past nights (any order) for the baseline and debt penalty
            now: Timestamp for ``calculated_at`` (defaults to the current time)

        Returns:
            ScoreResult with the final score and its breakdown
        """
        now = now or datetime.now(UTC)
        profile = profile or UserProfile()

        tst = record.total_sleep_minutes
        if tst <= 0:
            self.logger.debug("Scoring skipped, no sleep duration", record_id=record.id)
            return self._zero_result(now)

        age, _ = resolve_plausible_age(profile, now.date())
        age_norm = get_age_norm(age)
        goal = profile.sleep_goal_minutes or DEFAULT_SLEEP_GOAL_MINUTES
        baseline = self.baseline_calculator.compute(history, goal)
        source_info = get_source_reliability(record.source)
        completeness = completeness_factor(record)

        time_in_bed = self._time_in_bed(record, tst)
        efficiency_ratio = tst / time_in_bed if time_in_bed > 0 else 0.0
        efficiency_score = score_efficiency(efficiency_ratio * 100)

        deep_target, rem_target = stage_targets(age)
        deep_pct = (record.deep_minutes or 0.0) / tst * 100
        rem_pct = (record.rem_minutes or 0.0) / tst * 100
        deep_score = score_stage_band(deep_pct, deep_target)
        rem_score = score_stage_band(rem_pct, rem_target)

        if record.awake_minutes is not None:
            waso_minutes = record.awake_minutes
        else:
            waso_minutes = max(0.0, time_in_bed - tst)
        waso_score = score_waso(waso_minutes)

        tst_score = score_total_sleep(tst)
        regularity_score = score_consistency(record, baseline) * 100

        normalised = {
            ComponentKey.DURATION: clamp(tst_score / 100),
            ComponentKey.DEEP_SLEEP: clamp(deep_score / 100),
            ComponentKey.REM_SLEEP: clamp(rem_score / 100),
            ComponentKey.EFFICIENCY: clamp(efficiency_score / 100),
            ComponentKey.WASO: clamp(waso_score / 100),
            ComponentKey.CONSISTENCY: clamp(regularity_score / 100),
            ComponentKey.TIMING: score_timing(record, profile.chronotype),
            ComponentKey.SCREEN_TIME: score_screen_time(record),
        }
        raw_score = sum(COMPONENT_WEIGHTS[key] * normalised[key] * 100 for key in ComponentKey)

        short_penalty = short_sleep_penalty(tst)
        debt_penalty = compute_chronic_debt_penalty(history, goal) * 100
        penalised = raw_score - short_penalty - debt_penalty
        reliability_adjusted = 50 + (penalised - 50) * source_info.factor
        final_score = round_half_up(clamp(reliability_adjusted * completeness, 0, 100))

        if not record.has_all_stages() and not source_info.stage_data_valid:
            confidence = ConfidenceLevel.LOW
        elif (
            record.confidence == ConfidenceLevel.HIGH
            and source_info.factor >= HIGH_CONFIDENCE_MIN_RELIABILITY
        ):
            confidence = ConfidenceLevel.HIGH
        else:
            confidence = ConfidenceLevel.MEDIUM

        breakdown = ScoreBreakdown(
            total=final_score,
            confidence=confidence,
            components=self._build_components(
                record,
                profile,
                tst,
                efficiency_ratio,
                waso_minutes,
                normalised,
                age_norm,
                baseline,
            ),
            weights=dict(COMPONENT_WEIGHTS),
            adjustments=ScoreAdjustments(
                source_reliability_factor=source_info.factor,
                data_completeness_factor=completeness,
                chronic_debt_penalty=round_to(debt_penalty, 2),
                short_sleep_penalty=round_to(short_penalty, 2),
            ),
            sub_scores=SubScores(
                efficiency_score=round_half_up(clamp(efficiency_score, 0, 100)),
                waso_score=round_half_up(clamp(waso_score, 0, 100)),
                tst_score=round_half_up(clamp(tst_score, 0, 100)),
                deep_score=round_half_up(clamp(deep_score, 0, 100)),
                rem_score=round_half_up(clamp(rem_score, 0, 100)),
                regularity_score=round_half_up(clamp(regularity_score, 0, 100)),
            ),
            baseline=baseline,
            age_norm=age_norm,
            flags=self._compute_flags(record, tst, age_norm, baseline, goal),
            calculated_at=now,
        )

        self.logger.debug(
            "Calculated sleep score",
            record_id=record.id,
            score=final_score,
            confidence=confidence.value,
            raw_score=round(raw_score, 2),
        )

        return ScoreResult(sleep_score=final_score, breakdown=breakdown)

    def _time_in_bed(self, record: SleepRecord, tst: float) -> float:
        """End minus start when positive, else TST scaled by the fallback ratio."""
        if record.start_time is not None and record.end_time is not None:
            span = minutes_between(record.start_time, record.end_time)
            if span > 0:
                return span
        return tst * TIME_IN_BED_FALLBACK_RATIO

    def _build_components(
        self,
        record: SleepRecord,
        profile: UserProfile,
        tst: float,
        efficiency_ratio: float,
        waso_minutes: float,
        normalised: dict[ComponentKey, float],
        age_norm: AgeNorm,
        baseline: UserBaseline,
    ) -> dict[ComponentKey, ComponentResult]:
        bedtime = minutes_from_midnight(record.start_time)
        deviation = (
            abs(bedtime - baseline.median_bedtime_minutes_from_midnight)
            if bedtime is not None
            else 0.0
        )
        screen_minutes = (
            record.screen_time_summary.total_minutes_last_2_hours
            if record.screen_time_summary is not None
            else None
        )

        raw_and_norm = {
            ComponentKey.DURATION: (
                tst,
                blended_norm(baseline.avg_duration_min, age_norm.ideal_duration_min),
            ),
            ComponentKey.DEEP_SLEEP: (
                (record.deep_minutes or 0.0) / tst * 100,
                blended_norm(baseline.avg_deep_pct, age_norm.deep_pct_ideal),
            ),
            ComponentKey.REM_SLEEP: (
                (record.rem_minutes or 0.0) / tst * 100,
                blended_norm(baseline.avg_rem_pct, age_norm.rem_pct_ideal),
            ),
            ComponentKey.EFFICIENCY: (
                efficiency_ratio,
                blended_norm(baseline.avg_efficiency, age_norm.efficiency_ideal),
            ),
            ComponentKey.WASO: (
                waso_minutes,
                blended_norm(baseline.avg_waso_min, age_norm.waso_expected),
            ),
            ComponentKey.CONSISTENCY: (deviation, baseline.bedtime_variance_minutes),
            ComponentKey.TIMING: (
                bedtime or 0.0,
                float(CHRONOTYPE_BEDTIME_TARGETS[profile.chronotype or Chronotype.INTERMEDIATE]),
            ),
            ComponentKey.SCREEN_TIME: (
                screen_minutes or 0.0,
                float(SCREEN_TIME_MIDPOINT_MINUTES),
            ),
        }

        components: dict[ComponentKey, ComponentResult] = {}
        for key, (raw, norm) in raw_and_norm.items():
            weight = COMPONENT_WEIGHTS[key]
            components[key] = ComponentResult(
                raw_value=raw,
                norm_value=norm,
                normalised=normalised[key],
                weight=weight,
                contribution=weight * normalised[key] * 100,
            )
        return components

    def _compute_flags(
        self,
        record: SleepRecord,
        tst: float,
        age_norm: AgeNorm,
        baseline: UserBaseline,
        goal_minutes: float,
    ) -> list[ScoreFlag]:
        flags: list[ScoreFlag] = []
        deep = record.deep_minutes or 0.0
        rem = record.rem_minutes or 0.0
        awake = record.awake_minutes or 0.0

        if tst < FLAG_DURATION_BELOW_MINUTES:
            flags.append(ScoreFlag.DURATION_BELOW_5H)
        if tst < goal_minutes * FLAG_GOAL_LOW_RATIO:
            flags.append(ScoreFlag.DURATION_BELOW_GOAL_20PCT)
        if deep > 0 and deep / tst < FLAG_DEEP_LOW_RATIO:
            flags.append(ScoreFlag.DEEP_BELOW_15PCT)
        if rem > 0 and rem / tst < FLAG_REM_LOW_RATIO:
            flags.append(ScoreFlag.REM_BELOW_15PCT)
        if awake > 0 and awake / tst > FLAG_AWAKE_HIGH_RATIO:
            flags.append(ScoreFlag.AWAKE_ABOVE_10PCT_TST)

        if awake > age_norm.waso_acceptable:
            flags.append(ScoreFlag.WASO_ABOVE_ACCEPTABLE)
        if awake > WASO_SEVERE_MINUTES:
            flags.append(ScoreFlag.WASO_SEVERE)

        if baseline.nights_analysed >= CONSISTENCY_MIN_NIGHTS:
            bedtime = minutes_from_midnight(record.start_time)
            if bedtime is not None:
                deviation = abs(bedtime - baseline.median_bedtime_minutes_from_midnight)
                if deviation > FLAG_BEDTIME_DEVIATION_MINUTES:
                    flags.append(ScoreFlag.LATE_BEDTIME_VS_MEDIAN)
                if deviation > FLAG_BEDTIME_SEVERE_MINUTES:
                    flags.append(ScoreFlag.EXTREME_BEDTIME_SHIFT)
            if baseline.bedtime_variance_minutes > FLAG_SOCIAL_JET_LAG_VARIANCE_MINUTES:
                flags.append(ScoreFlag.SOCIAL_JET_LAG)

        if not record.deep_minutes or not record.rem_minutes:
            flags.append(ScoreFlag.DATA_INCOMPLETE_STAGES)

        if record.source in LOW_RELIABILITY_SOURCES:
            flags.append(ScoreFlag.SOURCE_LOW_RELIABILITY)

        return flags

    def _zero_result(self, now: datetime) -> ScoreResult:
        """Fixed result for a night without sleep duration."""
        zero = ComponentResult(
            raw_value=0, norm_value=0, normalised=0, weight=0, contribution=0
        )
        weights = {key: 0.0 for key in ComponentKey}
        weights[ComponentKey.DURATION] = 1.0
        components = {key: zero for key in ComponentKey}
        components[ComponentKey.DURATION] = zero.model_copy(update={"weight": 1.0})

        breakdown = ScoreBreakdown(
            total=0,
            confidence=ConfidenceLevel.LOW,
            components=components,
            weights=weights,
            adjustments=ScoreAdjustments(
                source_reliability_factor=SOURCE_RELIABILITY[DataSource.MANUAL].factor,
                data_completeness_factor=COMPLETENESS_MIN_FACTOR,
                chronic_debt_penalty=0.0,
            ),
            sub_scores=SubScores(
                efficiency_score=0,
                waso_score=0,
                tst_score=0,
                deep_score=0,
                rem_score=0,
                regularity_score=0,
            ),
            baseline=UserBaseline(
                avg_duration_min=0,
                avg_deep_pct=0,
                avg_rem_pct=0,
                avg_efficiency=0,
                avg_waso_min=0,
                median_bedtime_minutes_from_midnight=0,
                median_wake_minutes_from_midnight=0,
                bedtime_variance_minutes=0,
                p25_duration_min=0,
                p75_duration_min=0,
                nights_analysed=0,
            ),
            age_norm=get_age_norm(None),
            flags=[ScoreFlag.DATA_INCOMPLETE, ScoreFlag.DATA_INCOMPLETE_STAGES],
            calculated_at=now,
        )
        return ScoreResult(sleep_score=0, breakdown=breakdown)


def calculate_sleep_score(
    record: SleepRecord,
    profile: UserProfile | None = None,
    history: Sequence[SleepRecord] = (),
    now: datetime | None = None,
) -> ScoreResult:
    """Score one night with a fresh calculator."""
    return ScoreCalculator().calculate(record, profile, history, now)
