"""Physiology estimation from demographics.

Estimates VO2max, resting heart rate, HRV and respiratory rate for users who
have no wearable data, so stage prediction can still personalise. All
estimates are population regressions blended with anchor tables and are
clamped to physiologically plausible ranges.
"""

from datetime import date

import structlog

from sleep_engine.core.constants import DEFAULT_AGE, MAX_PLAUSIBLE_AGE
from sleep_engine.core.numeric import clamp, round_to
from sleep_engine.schemas.sleep import (
    ActivityLevel,
    EstimatedPhysiology,
    Sex,
    UserProfile,
)

logger = structlog.get_logger()

DEFAULT_ACTIVITY = ActivityLevel.MODERATE

# VO2max at age 25 by activity level (male, female) in ml/kg/min
VO2MAX_BASE: dict[ActivityLevel, tuple[float, float]] = {
    ActivityLevel.SEDENTARY: (35, 30),
    ActivityLevel.LIGHT: (40, 35),
    ActivityLevel.MODERATE: (46, 41),
    ActivityLevel.ACTIVE: (53, 47),
    ActivityLevel.VERY_ACTIVE: (59, 53),
}

# Resting HR anchors for men at 30; women +4 bpm
RESTING_HR_ANCHOR_MALE: dict[ActivityLevel, float] = {
    ActivityLevel.SEDENTARY: 52,
    ActivityLevel.LIGHT: 50,
    ActivityLevel.MODERATE: 48,
    ActivityLevel.ACTIVE: 46,
    ActivityLevel.VERY_ACTIVE: 42,
}

VO2MAX_DECLINE_PER_YEAR = 0.0025  # Fractional loss per year past 25
VO2MAX_RANGE = (10.0, 80.0)
RESTING_HR_RANGE = (38.0, 90.0)
RESTING_HR_FEMALE_OFFSET = 4.0
RESTING_HR_AGE_SLOPE = 0.35  # bpm per year past 30
RESTING_HR_RAW_WEIGHT = 0.12  # Regression share; the anchor gets the rest
HRV_RANGE = (12.0, 80.0)
HRV_FEMALE_OFFSET = 6.0
HRV_AGE_SLOPE = 0.15  # ms per year past 30
RESPIRATORY_RATE_RANGE = (12.0, 17.0)


class PhysiologyEstimator:
    """Estimate physiology from date of birth, sex and activity level.

    Missing or invalid inputs are replaced with documented assumptions and
    each assumption is recorded in ``basis_notes``. The estimator never raises.
    """

    def __init__(self) -> None:
        """Initialize physiology estimator."""
        self.logger = logger.bind(service="physiology")

    def estimate(self, profile: UserProfile, today: date | None = None) -> EstimatedPhysiology:
        """Estimate physiological markers for a profile.

        Args:
            profile: User profile (any field may be missing)
            today: Reference date for age calculation

        Returns:
            Estimated physiology with basis notes
        """
        age, age_assumed = resolve_plausible_age(profile, today or date.today())
        activity = profile.activity_level or DEFAULT_ACTIVITY
        sex = profile.sex

        vo2max = self.estimate_vo2max(age, sex, activity)
        hr_max = round_to(207 - 0.7 * age, 1)
        resting_hr = self.estimate_resting_hr(age, sex, activity, vo2max, hr_max)
        hrv = self.estimate_hrv(age, sex, resting_hr)
        respiratory_rate = round_to(
            clamp(14 - (vo2max - 35) * 0.05, *RESPIRATORY_RATE_RANGE), 1
        )

        notes = [
            f"age={age}",
            f"activity={activity.value}",
            f"sex={sex.value if sex else 'average'}",
        ]
        if age_assumed:
            notes.append(f"assumed_age={DEFAULT_AGE}")
        if profile.activity_level is None:
            notes.append(f"assumed_activity={DEFAULT_ACTIVITY.value}")
        if sex is None:
            notes.append("assumed_sex=average")

        self.logger.debug(
            "Estimated physiology",
            age=age,
            vo2max=vo2max,
            resting_hr=resting_hr,
            hrv_rmssd=hrv,
        )

        return EstimatedPhysiology(
            vo2max=vo2max,
            resting_hr=resting_hr,
            hrv_rmssd=hrv,
            hr_max=hr_max,
            respiratory_rate=respiratory_rate,
            basis_notes=notes,
        )

    def estimate_vo2max(self, age: int, sex: Sex | None, activity: ActivityLevel) -> float:
        """VO2max from the activity anchor with a 0.25%/year decline past 25."""
        male, female = VO2MAX_BASE[activity]
        base = _by_sex(sex, male, female)
        decline = 1 - max(0, age - 25) * VO2MAX_DECLINE_PER_YEAR
        return round_to(clamp(base * decline, *VO2MAX_RANGE), 1)

    def estimate_resting_hr(
        self,
        age: int,
        sex: Sex | None,
        activity: ActivityLevel,
        vo2max: float,
        hr_max: float,
    ) -> float:
        """Resting HR blending the HRmax/VO2max ratio with an anchor table."""
        raw = hr_max / (vo2max / 15)
        male_anchor = RESTING_HR_ANCHOR_MALE[activity]
        anchor = _by_sex(sex, male_anchor, male_anchor + RESTING_HR_FEMALE_OFFSET)
        anchor += max(0, age - 30) * RESTING_HR_AGE_SLOPE
        blended = raw * RESTING_HR_RAW_WEIGHT + anchor * (1 - RESTING_HR_RAW_WEIGHT)
        return round_to(clamp(blended, *RESTING_HR_RANGE), 1)

    def estimate_hrv(self, age: int, sex: Sex | None, resting_hr: float) -> float:
        """HRV rMSSD from resting HR with sex and age adjustments."""
        hrv = clamp(20 + (70 - resting_hr) * 0.9, *HRV_RANGE)
        hrv += _by_sex(sex, 0.0, HRV_FEMALE_OFFSET)
        hrv -= max(0, age - 30) * HRV_AGE_SLOPE
        return round_to(clamp(hrv, *HRV_RANGE), 1)


def resolve_plausible_age(profile: UserProfile, today: date) -> tuple[int, bool]:
    """Age at a reference date, falling back to DEFAULT_AGE.

    The date of birth wins over the explicit age. Missing ages, birth dates
    in the future and ages above MAX_PLAUSIBLE_AGE are replaced.

    Returns:
        Tuple of (age, whether the default was assumed)
    """
    age = profile.resolve_age(today)
    if age is None or age <= 0 or age > MAX_PLAUSIBLE_AGE:
        return DEFAULT_AGE, True
    return age, False


def _by_sex(sex: Sex | None, male: float, female: float) -> float:
    """Pick the sex-specific value, averaging both when sex is unknown."""
    if sex == Sex.MALE:
        return male
    if sex == Sex.FEMALE:
        return female
    return (male + female) / 2
