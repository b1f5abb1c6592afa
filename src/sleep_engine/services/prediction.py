"""Premium sleep prediction orchestration.

Chains the stage predictor, the prediction-path timeline generator and the
score calculator into one bundle, and assembles prediction inputs from a
record, a profile and recent history.
"""

from collections.abc import Sequence
from datetime import UTC, date, datetime

import structlog

from sleep_engine.core.constants import DEFAULT_AGE, DEFAULT_SLEEP_GOAL_MINUTES
from sleep_engine.core.numeric import round_half_up, round_to
from sleep_engine.schemas.prediction import (
    InsightFlag,
    PhysiologySnapshot,
    PremiumSleepPrediction,
    SleepPredictionInput,
    StageDistribution,
)
from sleep_engine.schemas.sleep import (
    ConfidenceLevel,
    DataSource,
    EstimatedPhysiology,
    SleepRecord,
    UserProfile,
)
from sleep_engine.schemas.timeline import CycleMap
from sleep_engine.services.baseline import BaselineCalculator, newest_first
from sleep_engine.services.phase_timeline import PhaseTimelineGenerator
from sleep_engine.services.physiology import PhysiologyEstimator, resolve_plausible_age
from sleep_engine.services.scoring import ScoreCalculator
from sleep_engine.services.stage_predictor import StageDistributionPredictor
from sleep_engine.services.timeline_invariants import TimelineInvariantError

logger = structlog.get_logger()

RECENT_DEBT_WINDOW_NIGHTS = 7
PREDICTED_RECORD_ID = "premium_prediction"

# Recovery index reference values
RECOVERY_DEEP_REFERENCE_PCT = 20
RECOVERY_REM_REFERENCE_PCT = 22
RECOVERY_DURATION_REFERENCE_MIN = 480
RECOVERY_DEBT_DIVISOR = 4  # Debt minutes per lost recovery point
RECOVERY_UNKNOWN_DEBT_SCORE = 85

# Insight thresholds
OPTIMAL_DEEP_PCT = 20
LOW_DEEP_PCT = 12
REM_REBOUND_PCT = 27
LOW_REM_PCT = 15
HIGH_FRAGMENTATION_AWAKE_PCT = 15
HIGH_DEBT_MINUTES = 180
CLEARING_DEBT_MINUTES = 120
CLEARING_MIN_RECOVERY = 80
AEROBIC_ADVANTAGE_VO2MAX = 52


def compute_recent_sleep_debt(
    history: Sequence[SleepRecord],
    goal_minutes: float = DEFAULT_SLEEP_GOAL_MINUTES,
    window: int = RECENT_DEBT_WINDOW_NIGHTS,
) -> float:
    """Sum of nightly shortfalls against the goal over recent nights.

    Args:
        history: Past nights in any order
        goal_minutes: Nightly sleep goal
        window: Number of most recent nights with a positive duration to use

    Returns:
        Accumulated debt in minutes (0 when history is empty)
    """
    recent = [record for record in newest_first(history) if record.total_sleep_minutes > 0]
    return sum(max(0.0, goal_minutes - record.total_sleep_minutes) for record in recent[:window])


def calculate_recovery_index(
    distribution: StageDistribution, data: SleepPredictionInput
) -> int:
    """Recovery index (0-100) from stage shares, duration and sleep debt."""
    deep = min(100.0, distribution.deep_percent / RECOVERY_DEEP_REFERENCE_PCT * 100) * 0.4
    rem = min(100.0, distribution.rem_percent / RECOVERY_REM_REFERENCE_PCT * 100) * 0.3
    duration = min(100.0, data.duration_minutes / RECOVERY_DURATION_REFERENCE_MIN * 100) * 0.2
    if data.sleep_debt_minutes is not None:
        debt = max(0.0, 100 - data.sleep_debt_minutes / RECOVERY_DEBT_DIVISOR) * 0.1
    else:
        debt = RECOVERY_UNKNOWN_DEBT_SCORE * 0.1
    return max(0, min(100, round_half_up(deep + rem + duration + debt)))


def generate_insight_flags(
    distribution: StageDistribution, data: SleepPredictionInput, recovery_index: int
) -> list[InsightFlag]:
    """Headline insights for a predicted night."""
    flags: list[InsightFlag] = []
    trusted = distribution.confidence != ConfidenceLevel.LOW
    debt = data.sleep_debt_minutes or 0.0

    if distribution.deep_percent >= OPTIMAL_DEEP_PCT and trusted:
        flags.append(InsightFlag.OPTIMAL_DEEP)
    if distribution.deep_percent < LOW_DEEP_PCT:
        flags.append(InsightFlag.LOW_DEEP)
    if distribution.rem_percent > REM_REBOUND_PCT:
        flags.append(InsightFlag.REM_REBOUND)
    if distribution.rem_percent < LOW_REM_PCT:
        flags.append(InsightFlag.LOW_REM)
    if distribution.awake_percent > HIGH_FRAGMENTATION_AWAKE_PCT:
        flags.append(InsightFlag.HIGH_FRAGMENTATION)
    if debt > HIGH_DEBT_MINUTES:
        flags.append(InsightFlag.SLEEP_DEBT_HIGH)
    if debt > CLEARING_DEBT_MINUTES and recovery_index >= CLEARING_MIN_RECOVERY:
        flags.append(InsightFlag.SLEEP_DEBT_CLEARING)
    if data.vo2max is not None and data.vo2max > AEROBIC_ADVANTAGE_VO2MAX and trusted:
        flags.append(InsightFlag.AEROBIC_ADVANTAGE)
    return flags


class SleepPredictionService:
    """Build premium predictions from assembled inputs."""

    def __init__(self) -> None:
        """Initialize sleep prediction service."""
        self.logger = logger.bind(service="prediction")
        self.stage_predictor = StageDistributionPredictor()
        self.timeline_generator = PhaseTimelineGenerator()
        self.score_calculator = ScoreCalculator()
        self.physiology_estimator = PhysiologyEstimator()
        self.baseline_calculator = BaselineCalculator()

    def build_prediction_input(
        self,
        record: SleepRecord,
        profile: UserProfile | None = None,
        history: Sequence[SleepRecord] = (),
        physiology: EstimatedPhysiology | None = None,
        today: date | None = None,
    ) -> SleepPredictionInput:
        """Assemble a prediction input for one night.

        Physiology is estimated from the profile when not supplied. Personal
        deep/REM averages are taken from the history baseline when it has
        stage data.

        Args:
            record: The night to predict
            profile: User demographics and preferences
            history: Past nights for debt and personal calibration
            physiology: Measured or previously estimated physiology
            today: Reference date for age calculation

        Returns:
            SleepPredictionInput ready for ``build_premium_prediction``
        """
        profile = profile or UserProfile()
        today = today or date.today()
        physiology = physiology or self.physiology_estimator.estimate(profile, today)
        goal = profile.sleep_goal_minutes or DEFAULT_SLEEP_GOAL_MINUTES
        baseline = self.baseline_calculator.compute(history, goal)
        age, age_assumed = resolve_plausible_age(profile, today)

        return SleepPredictionInput(
            age=None if age_assumed else age,
            start_time=record.start_time,
            end_time=record.end_time,
            duration_minutes=record.total_sleep_minutes,
            deep_minutes=record.deep_minutes,
            rem_minutes=record.rem_minutes,
            light_minutes=record.light_minutes,
            awake_minutes=record.awake_minutes,
            hrv_rmssd=physiology.hrv_rmssd,
            resting_hr=physiology.resting_hr,
            vo2max=physiology.vo2max,
            respiratory_rate=physiology.respiratory_rate,
            sleep_debt_minutes=compute_recent_sleep_debt(history, goal),
            chronotype=profile.chronotype,
            recent_avg_deep_percent=baseline.avg_deep_pct or None,
            recent_avg_rem_percent=baseline.avg_rem_pct or None,
        )

    def build_premium_prediction(
        self, data: SleepPredictionInput, now: datetime | None = None
    ) -> PremiumSleepPrediction:
        """Predict stages, lay out a timeline and score the predicted night.

        A timeline that fails its invariant checks is logged and left out
        (``cycle_map`` is None); the rest of the bundle is still returned.

        Args:
            data: Assembled prediction input
            now: Reference time for undated inputs and the score stamp

        Returns:
            PremiumSleepPrediction bundle
        """
        now = now or datetime.now(UTC)
        distribution = self.stage_predictor.predict(data)

        cycle_map: CycleMap | None
        try:
            cycle_map = self.timeline_generator.generate(data, distribution, now)
        except TimelineInvariantError as e:
            self.logger.error(
                "Predicted timeline failed invariant checks",
                violations=[violation.to_log_dict() for violation in e.violations],
            )
            cycle_map = None

        recovery_index = calculate_recovery_index(distribution, data)
        insight_flags = generate_insight_flags(distribution, data, recovery_index)
        predicted_score = self.score_calculator.calculate(
            self._predicted_record(data, distribution, now),
            UserProfile(age=data.age, sleep_goal_minutes=DEFAULT_SLEEP_GOAL_MINUTES),
            history=(),
            now=now,
        )

        self.logger.info(
            "Built premium prediction",
            predicted_score=predicted_score.sleep_score,
            recovery_index=recovery_index,
            confidence=distribution.confidence.value,
            has_timeline=cycle_map is not None,
        )

        return PremiumSleepPrediction(
            stage_distribution=distribution,
            cycle_map=cycle_map,
            recovery_index=recovery_index,
            insight_flags=insight_flags,
            predicted_score=predicted_score,
            estimated_physiology=PhysiologySnapshot(
                vo2max=data.vo2max,
                resting_hr=data.resting_hr,
                hrv_rmssd=data.hrv_rmssd,
                hr_max=round_to(207 - 0.7 * (data.age if data.age is not None else DEFAULT_AGE)),
                respiratory_rate=data.respiratory_rate,
                basis_notes=list(distribution.prediction_basis),
            ),
            generated_at=now,
        )

    def _predicted_record(
        self, data: SleepPredictionInput, distribution: StageDistribution, now: datetime
    ) -> SleepRecord:
        """Synthetic record carrying the predicted stage minutes."""
        duration = data.duration_minutes
        night = data.start_time or now
        return SleepRecord(
            id=PREDICTED_RECORD_ID,
            date=night.date(),
            start_time=data.start_time,
            end_time=data.end_time,
            duration_minutes=duration,
            deep_minutes=round_half_up(duration * distribution.deep_percent / 100),
            rem_minutes=round_half_up(duration * distribution.rem_percent / 100),
            light_minutes=round_half_up(duration * distribution.light_percent / 100),
            awake_minutes=round_half_up(duration * distribution.awake_percent / 100),
            source=DataSource.PREDICTION,
            confidence=distribution.confidence,
        )


def build_premium_prediction(
    data: SleepPredictionInput, now: datetime | None = None
) -> PremiumSleepPrediction:
    """Premium prediction with a fresh service."""
    return SleepPredictionService().build_premium_prediction(data, now)
