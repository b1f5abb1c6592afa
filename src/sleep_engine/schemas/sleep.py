"""Pydantic schemas for sleep records, user profiles and reference data."""

import datetime as dt
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sleep_engine.schemas._coercion import (
    coerce_date,
    coerce_enum,
    coerce_number,
    coerce_timestamp,
)


class DataSource(str, Enum):
    """Origin of a sleep record."""

    HEALTH_CONNECT = "health_connect"
    DIGITAL_WELLBEING = "digital_wellbeing"
    USAGE_STATS = "usage_stats"
    WEARABLE = "wearable"
    MANUAL = "manual"
    PREDICTION = "prediction"  # Synthesised by the prediction service


class ConfidenceLevel(str, Enum):
    """Three-tier confidence used across records and outputs."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SleepStage(str, Enum):
    """Sleep stage of a phase event."""

    AWAKE = "awake"
    LIGHT = "light"
    DEEP = "deep"
    REM = "rem"


class Sex(str, Enum):
    """Biological sex used by the physiology estimator."""

    MALE = "male"
    FEMALE = "female"


class ActivityLevel(str, Enum):
    """Self-reported activity level."""

    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    VERY_ACTIVE = "very_active"


class Chronotype(str, Enum):
    """Circadian preference."""

    MORNING = "morning"
    INTERMEDIATE = "intermediate"
    EVENING = "evening"


class ScreenTimeSummary(BaseModel):
    """Pre-bed screen usage attached to a record."""

    model_config = ConfigDict(frozen=True)

    total_minutes_last_2_hours: float | None = Field(
        default=None, description="Screen minutes in the two hours before bed"
    )
    blue_light: bool | None = Field(default=None, description="Blue-light exposure detected")
    last_app_used_minutes_before_bed: float | None = Field(
        default=None, description="Minutes between last app use and bedtime"
    )

    @field_validator(
        "total_minutes_last_2_hours", "last_app_used_minutes_before_bed", mode="before"
    )
    @classmethod
    def _number(cls, value: Any) -> float | None:
        return coerce_number(value)


class SleepRecord(BaseModel):
    """One night of sleep as reported by any source.

    Every measurement is optional. Malformed values are coerced to None here so
    the services never see unparseable timestamps or non-finite numbers.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default="", description="Record identifier")
    date: dt.date | None = Field(default=None, description="Calendar date the night belongs to")
    start_time: dt.datetime | None = Field(default=None, description="Sleep start")
    end_time: dt.datetime | None = Field(default=None, description="Sleep end")
    duration_minutes: float | None = Field(default=None, description="Total sleep time (TST)")
    deep_minutes: float | None = Field(default=None, description="Deep (N3) minutes")
    rem_minutes: float | None = Field(default=None, description="REM minutes")
    light_minutes: float | None = Field(default=None, description="Light (N1/N2) minutes")
    awake_minutes: float | None = Field(default=None, description="Awake minutes after onset")
    source: DataSource = Field(default=DataSource.MANUAL, description="Record origin")
    confidence: ConfidenceLevel = Field(
        default=ConfidenceLevel.LOW, description="Source-reported confidence"
    )
    estimated_bedtime: dt.datetime | None = Field(default=None, description="Inferred bedtime")
    estimated_wakeup: dt.datetime | None = Field(default=None, description="Inferred wake time")
    screen_time_summary: ScreenTimeSummary | None = Field(
        default=None, description="Pre-bed screen usage"
    )

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, value: Any) -> dt.date | None:
        return coerce_date(value)

    @field_validator(
        "start_time", "end_time", "estimated_bedtime", "estimated_wakeup", mode="before"
    )
    @classmethod
    def _timestamp(cls, value: Any) -> dt.datetime | None:
        return coerce_timestamp(value)

    @field_validator(
        "duration_minutes",
        "deep_minutes",
        "rem_minutes",
        "light_minutes",
        "awake_minutes",
        mode="before",
    )
    @classmethod
    def _number(cls, value: Any) -> float | None:
        return coerce_number(value)

    @field_validator("source", mode="before")
    @classmethod
    def _source(cls, value: Any) -> DataSource:
        return coerce_enum(value, DataSource, DataSource.MANUAL) or DataSource.MANUAL

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> ConfidenceLevel:
        return coerce_enum(value, ConfidenceLevel, ConfidenceLevel.LOW) or ConfidenceLevel.LOW

    @property
    def total_sleep_minutes(self) -> float:
        """TST with missing or negative durations read as zero."""
        return max(0.0, self.duration_minutes or 0.0)

    def has_all_stages(self) -> bool:
        """Check whether all four stage minute fields are present."""
        return all(
            value is not None
            for value in (
                self.deep_minutes,
                self.rem_minutes,
                self.light_minutes,
                self.awake_minutes,
            )
        )


class UserProfile(BaseModel):
    """Demographics and preferences used for personalisation."""

    model_config = ConfigDict(frozen=True)

    age: int | None = Field(default=None, description="Age in years")
    date_of_birth: dt.date | None = Field(default=None, description="Date of birth")
    sex: Sex | None = Field(default=None, description="Biological sex")
    activity_level: ActivityLevel | None = Field(default=None, description="Activity level")
    chronotype: Chronotype | None = Field(default=None, description="Circadian preference")
    sleep_goal_minutes: float | None = Field(default=None, description="Nightly sleep goal")

    @field_validator("age", mode="before")
    @classmethod
    def _age(cls, value: Any) -> int | None:
        number = coerce_number(value)
        return None if number is None else int(number)

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def _dob(cls, value: Any) -> dt.date | None:
        return coerce_date(value)

    @field_validator("sex", mode="before")
    @classmethod
    def _sex(cls, value: Any) -> Sex | None:
        return coerce_enum(value, Sex)

    @field_validator("activity_level", mode="before")
    @classmethod
    def _activity(cls, value: Any) -> ActivityLevel | None:
        return coerce_enum(value, ActivityLevel)

    @field_validator("chronotype", mode="before")
    @classmethod
    def _chronotype(cls, value: Any) -> Chronotype | None:
        return coerce_enum(value, Chronotype)

    @field_validator("sleep_goal_minutes", mode="before")
    @classmethod
    def _goal(cls, value: Any) -> float | None:
        number = coerce_number(value)
        return number if number is not None and number > 0 else None

    def resolve_age(self, today: dt.date | None = None) -> int | None:
        """Age in years from the date of birth, else the explicit age.

        Args:
            today: Reference date (defaults to the current date)

        Returns:
            Age in years, or None when neither field is usable
        """
        if self.date_of_birth is not None:
            return age_on(self.date_of_birth, today or dt.date.today())
        return self.age


def age_on(date_of_birth: dt.date, today: dt.date) -> int:
    """Completed years between a birth date and a reference date."""
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


class AgeNorm(BaseModel):
    """Population norms for one age bucket."""

    model_config = ConfigDict(frozen=True)

    ideal_duration_min: float
    min_healthy_duration_min: float
    deep_pct_ideal: float
    deep_pct_low: float
    deep_pct_high: float
    rem_pct_ideal: float
    rem_pct_low: float
    rem_pct_high: float
    efficiency_ideal: float
    efficiency_low: float
    waso_expected: float
    waso_acceptable: float


class UserBaseline(BaseModel):
    """Personal sleep statistics derived from history."""

    model_config = ConfigDict(frozen=True)

    avg_duration_min: float = Field(description="Mean TST over valid nights")
    avg_deep_pct: float = Field(description="Mean deep percentage of TST")
    avg_rem_pct: float = Field(description="Mean REM percentage of TST")
    avg_efficiency: float = Field(description="Mean sleep efficiency (0-1)")
    avg_waso_min: float = Field(description="Mean wake after sleep onset")
    median_bedtime_minutes_from_midnight: float = Field(description="Median bedtime")
    median_wake_minutes_from_midnight: float = Field(description="Median wake time")
    bedtime_variance_minutes: float = Field(description="Bedtime standard deviation")
    p25_duration_min: float = Field(description="25th percentile TST")
    p75_duration_min: float = Field(description="75th percentile TST")
    nights_analysed: int = Field(description="Number of valid nights used")


class EstimatedPhysiology(BaseModel):
    """Physiological markers inferred from demographics."""

    model_config = ConfigDict(frozen=True)

    vo2max: float = Field(description="Estimated VO2max (ml/kg/min)")
    resting_hr: float = Field(description="Estimated resting heart rate (bpm)")
    hrv_rmssd: float = Field(description="Estimated HRV rMSSD (ms)")
    hr_max: float = Field(description="Estimated maximum heart rate (bpm)")
    respiratory_rate: float = Field(description="Estimated breaths per minute")
    basis_notes: list[str] = Field(default_factory=list, description="How each input was resolved")
