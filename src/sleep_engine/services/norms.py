"""Population sleep norms by age bucket."""

from enum import Enum

from sleep_engine.schemas.sleep import AgeNorm


class AgeBucket(str, Enum):
    """Age ranges with distinct sleep architecture norms."""

    UNDER_18 = "under18"
    AGE_18_25 = "18-25"
    AGE_26_35 = "26-35"
    AGE_36_50 = "36-50"
    AGE_51_65 = "51-65"
    AGE_65_PLUS = "65plus"


DEFAULT_AGE_BUCKET = AgeBucket.AGE_26_35

# AASM duration guidance with deep/REM trend anchors from age meta-analyses
AGE_NORMS: dict[AgeBucket, AgeNorm] = {
    AgeBucket.UNDER_18: AgeNorm(
        ideal_duration_min=540,
        min_healthy_duration_min=480,
        deep_pct_ideal=22,
        deep_pct_low=17,
        deep_pct_high=28,
        rem_pct_ideal=22,
        rem_pct_low=17,
        rem_pct_high=28,
        efficiency_ideal=0.93,
        efficiency_low=0.85,
        waso_expected=15,
        waso_acceptable=20,
    ),
    AgeBucket.AGE_18_25: AgeNorm(
        ideal_duration_min=490,
        min_healthy_duration_min=420,
        deep_pct_ideal=20,
        deep_pct_low=16,
        deep_pct_high=25,
        rem_pct_ideal=22,
        rem_pct_low=17,
        rem_pct_high=27,
        efficiency_ideal=0.92,
        efficiency_low=0.85,
        waso_expected=18,
        waso_acceptable=20,
    ),
    AgeBucket.AGE_26_35: AgeNorm(
        ideal_duration_min=460,
        min_healthy_duration_min=420,
        deep_pct_ideal=18,
        deep_pct_low=14,
        deep_pct_high=23,
        rem_pct_ideal=21,
        rem_pct_low=16,
        rem_pct_high=26,
        efficiency_ideal=0.91,
        efficiency_low=0.85,
        waso_expected=22,
        waso_acceptable=25,
    ),
    AgeBucket.AGE_36_50: AgeNorm(
        ideal_duration_min=450,
        min_healthy_duration_min=420,
        deep_pct_ideal=15,
        deep_pct_low=11,
        deep_pct_high=20,
        rem_pct_ideal=20,
        rem_pct_low=15,
        rem_pct_high=25,
        efficiency_ideal=0.88,
        efficiency_low=0.82,
        waso_expected=32,
        waso_acceptable=40,
    ),
    AgeBucket.AGE_51_65: AgeNorm(
        ideal_duration_min=440,
        min_healthy_duration_min=420,
        deep_pct_ideal=13,
        deep_pct_low=9,
        deep_pct_high=17,
        rem_pct_ideal=19,
        rem_pct_low=14,
        rem_pct_high=24,
        efficiency_ideal=0.85,
        efficiency_low=0.79,
        waso_expected=42,
        waso_acceptable=55,
    ),
    AgeBucket.AGE_65_PLUS: AgeNorm(
        ideal_duration_min=420,
        min_healthy_duration_min=390,
        deep_pct_ideal=11,
        deep_pct_low=7,
        deep_pct_high=15,
        rem_pct_ideal=17,
        rem_pct_low=12,
        rem_pct_high=22,
        efficiency_ideal=0.82,
        efficiency_low=0.75,
        waso_expected=52,
        waso_acceptable=70,
    ),
}


def get_age_bucket(age: float | None) -> AgeBucket:
    """Map an age to its bucket; unknown ages use the 26-35 bucket."""
    if age is None:
        return DEFAULT_AGE_BUCKET
    if age < 18:
        return AgeBucket.UNDER_18
    if age <= 25:
        return AgeBucket.AGE_18_25
    if age <= 35:
        return AgeBucket.AGE_26_35
    if age <= 50:
        return AgeBucket.AGE_36_50
    if age <= 65:
        return AgeBucket.AGE_51_65
    return AgeBucket.AGE_65_PLUS


def get_age_norm(age: float | None) -> AgeNorm:
    """Population norms for an age (total function)."""
    return AGE_NORMS[get_age_bucket(age)]
