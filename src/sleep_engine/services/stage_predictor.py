"""Stage distribution prediction.

Predicts the deep/REM/light/awake split of a night. When the night already
carries complete, self-consistent stage minutes those are used directly.
Otherwise an age-calibrated baseline is shifted by physiology, sleep debt and
chronotype rules, optionally blended with the user's recent averages, and
finally clamped and renormalised so the percentages always sum to 100.
"""

from dataclasses import dataclass

import structlog

from sleep_engine.schemas.prediction import SleepPredictionInput, StageDistribution
from sleep_engine.schemas.sleep import Chronotype, ConfidenceLevel

logger = structlog.get_logger()

STAGE_SUM_TOLERANCE = 0.05  # Stage minutes may disagree with TST by 5%
PERSONAL_BLEND_WEIGHT = 0.2  # Share of the personal average in calibration
RESIDUAL_EPSILON = 1e-6


@dataclass(frozen=True)
class StageBounds:
    """Inclusive percentage bounds for one stage."""

    low: float
    high: float


DEEP_BOUNDS = StageBounds(5, 35)
REM_BOUNDS = StageBounds(10, 35)
LIGHT_BOUNDS = StageBounds(30, 60)
AWAKE_BOUNDS = StageBounds(2, 25)

FALLBACK_SPLIT = (18.0, 22.0, 52.0, 8.0)  # deep, rem, light, awake


@dataclass
class _Split:
    """Mutable working split used while rules are applied."""

    deep: float
    rem: float
    light: float
    awake: float

    @property
    def total(self) -> float:
        return self.deep + self.rem + self.light + self.awake


def age_baseline_split(age: int | None) -> tuple[float, float, float, float]:
    """Age-calibrated deep/REM/light/awake percentages."""
    if age is None:
        return FALLBACK_SPLIT
    if age < 25:
        return (22.0, 23.0, 50.0, 5.0)
    if age <= 44:
        return (18.0, 22.0, 52.0, 8.0)
    if age <= 64:
        return (14.0, 20.0, 56.0, 10.0)
    return (10.0, 18.0, 60.0, 12.0)


def clamp_and_normalise(
    deep: float, rem: float, light: float, awake: float
) -> tuple[float, float, float, float]:
    """Clamp each stage to its bounds and make the four sum to exactly 100.

    Values are clamped, scaled to 100, clamped again, and any residual is then
    absorbed stage by stage (light, awake, REM, deep) within each stage's
    remaining room. The bounds always admit a valid split, so the residual
    always reaches zero.
    """
    split = _Split(
        _bound(deep, DEEP_BOUNDS),
        _bound(rem, REM_BOUNDS),
        _bound(light, LIGHT_BOUNDS),
        _bound(awake, AWAKE_BOUNDS),
    )
    total = split.total
    if total <= 0:
        split = _Split(*FALLBACK_SPLIT)
    else:
        scale = 100 / total
        split = _Split(
            _bound(split.deep * scale, DEEP_BOUNDS),
            _bound(split.rem * scale, REM_BOUNDS),
            _bound(split.light * scale, LIGHT_BOUNDS),
            _bound(split.awake * scale, AWAKE_BOUNDS),
        )

    residual = 100 - split.total
    for name, bounds in (
        ("light", LIGHT_BOUNDS),
        ("awake", AWAKE_BOUNDS),
        ("rem", REM_BOUNDS),
        ("deep", DEEP_BOUNDS),
    ):
        if abs(residual) < RESIDUAL_EPSILON:
            break
        current = getattr(split, name)
        if residual > 0:
            step = min(residual, bounds.high - current)
        else:
            step = max(residual, bounds.low - current)
        setattr(split, name, current + step)
        residual -= step

    return split.deep, split.rem, split.light, split.awake


def _bound(value: float, bounds: StageBounds) -> float:
    return max(bounds.low, min(bounds.high, value))


class StageDistributionPredictor:
    """Predict a night's stage distribution."""

    def __init__(self) -> None:
        """Initialize stage distribution predictor."""
        self.logger = logger.bind(service="stage_predictor")

    def predict(self, data: SleepPredictionInput) -> StageDistribution:
        """Predict stage percentages with a confidence tier and basis tags.

        Args:
            data: Prediction input; every field except duration is optional

        Returns:
            StageDistribution whose percentages sum to 100
        """
        real = self._from_stage_minutes(data)
        if real is not None:
            split, basis = real, ["existing_stage_data"]
            calibrated = False
        else:
            split, basis, calibrated = self._estimate(data)

        deep, rem, light, awake = clamp_and_normalise(
            split.deep, split.rem, split.light, split.awake
        )

        if real is not None:
            confidence = ConfidenceLevel.HIGH
        elif calibrated:
            confidence = ConfidenceLevel.MEDIUM
        else:
            confidence = ConfidenceLevel.LOW

        self.logger.debug(
            "Predicted stage distribution",
            deep=round(deep, 2),
            rem=round(rem, 2),
            confidence=confidence.value,
            basis=basis,
        )

        return StageDistribution(
            deep_percent=deep,
            rem_percent=rem,
            light_percent=light,
            awake_percent=awake,
            confidence=confidence,
            prediction_basis=basis,
        )

    def _from_stage_minutes(self, data: SleepPredictionInput) -> _Split | None:
        """Percentages straight from stage minutes when they are complete and consistent."""
        stages = (data.deep_minutes, data.rem_minutes, data.light_minutes, data.awake_minutes)
        duration = data.duration_minutes
        if duration <= 0 or any(value is None for value in stages):
            return None
        deep, rem, light, awake = (float(value or 0.0) for value in stages)
        stage_sum = deep + rem + light + awake
        if abs(stage_sum - duration) / duration > STAGE_SUM_TOLERANCE:
            return None
        return _Split(
            deep / duration * 100,
            rem / duration * 100,
            light / duration * 100,
            awake / duration * 100,
        )

    def _estimate(self, data: SleepPredictionInput) -> tuple[_Split, list[str], bool]:
        """Apply the rule pipeline to the age baseline."""
        split = _Split(*age_baseline_split(data.age))
        basis = ["age_calibrated_baseline"]

        hrv = data.hrv_rmssd
        if hrv is not None:
            if hrv > 55:
                split.deep += 4
                split.light -= 4
                basis.append("hrv_gt_55")
            elif hrv >= 40:
                split.deep += 2
                split.light -= 2
                basis.append("hrv_40_55")
            elif hrv < 25:
                split.deep -= 4
                split.awake += 2
                split.light -= 2
                basis.append("hrv_lt_25")
            else:
                basis.append("hrv_neutral")

        resting_hr = data.resting_hr
        if resting_hr is not None:
            if resting_hr < 45:
                split.deep += 4
                split.rem += 1
                basis.append("resting_hr_lt_45")
            elif resting_hr < 50:
                split.deep += 3
                basis.append("resting_hr_lt_50")
            elif resting_hr > 78:
                split.deep -= 5
                split.awake += 3
                basis.append("resting_hr_gt_78")
            elif resting_hr > 68:
                split.deep -= 3
                split.awake += 2
                basis.append("resting_hr_gt_68")

        vo2max = data.vo2max
        if vo2max is not None:
            if vo2max > 52:
                split.rem += 2
                basis.append("vo2max_gt_52")
            elif vo2max < 35:
                split.rem -= 2
                split.light += 2
                basis.append("vo2max_lt_35")

        respiratory_rate = data.respiratory_rate
        if respiratory_rate is not None:
            if 12 <= respiratory_rate <= 14:
                split.deep += 2
                basis.append("rr_12_14")
            elif respiratory_rate > 17:
                split.rem += 2
                split.deep -= 2
                basis.append("rr_gt_17")

        debt = data.sleep_debt_minutes
        if debt is not None:
            if debt > 240:
                split.deep += 8
                split.rem += 3
                basis.append("sleep_debt_gt_240")
            elif debt >= 120:
                split.deep += 5
                split.rem += 2
                basis.append("sleep_debt_120_240")
            elif debt >= 60:
                split.deep += 3
                basis.append("sleep_debt_60_120")

        if data.chronotype == Chronotype.EVENING and data.start_time is not None:
            if data.start_time.hour < 23:
                split.rem -= 3
                split.light += 3
                basis.append("chronotype_evening_early_sleep_penalty")
        elif data.chronotype == Chronotype.MORNING and data.end_time is not None:
            if data.end_time.hour > 8:
                split.deep -= 2
                split.light += 2
                basis.append("chronotype_morning_late_wake_penalty")

        calibrated = False
        if data.recent_avg_deep_percent is not None:
            split.deep = _blend(split.deep, data.recent_avg_deep_percent)
            calibrated = True
        if data.recent_avg_rem_percent is not None:
            split.rem = _blend(split.rem, data.recent_avg_rem_percent)
            calibrated = True
        if calibrated:
            basis.append("personal_baseline_calibrated")

        split.light = 100 - split.deep - split.rem - split.awake
        return split, basis, calibrated


def _blend(model_value: float, personal_value: float) -> float:
    return model_value * (1 - PERSONAL_BLEND_WEIGHT) + personal_value * PERSONAL_BLEND_WEIGHT
