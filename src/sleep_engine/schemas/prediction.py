"""Pydantic schemas for stage prediction and the premium prediction bundle."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sleep_engine.schemas._coercion import coerce_enum, coerce_number, coerce_timestamp
from sleep_engine.schemas.scoring import ScoreResult
from sleep_engine.schemas.sleep import Chronotype, ConfidenceLevel
from sleep_engine.schemas.timeline import CycleMap


class InsightFlag(str, Enum):
    """Headline insights derived from a prediction."""

    OPTIMAL_DEEP = "OPTIMAL_DEEP"
    LOW_DEEP = "LOW_DEEP"
    REM_REBOUND = "REM_REBOUND"
    LOW_REM = "LOW_REM"
    HIGH_FRAGMENTATION = "HIGH_FRAGMENTATION"
    SLEEP_DEBT_HIGH = "SLEEP_DEBT_HIGH"
    SLEEP_DEBT_CLEARING = "SLEEP_DEBT_CLEARING"
    AEROBIC_ADVANTAGE = "AEROBIC_ADVANTAGE"


class StageDistribution(BaseModel):
    """Stage percentages summing to 100 with a confidence tier."""

    model_config = ConfigDict(frozen=True)

    deep_percent: float
    rem_percent: float
    light_percent: float
    awake_percent: float
    confidence: ConfidenceLevel
    prediction_basis: list[str] = Field(
        default_factory=list, description="Ordered tags naming each applied rule"
    )

    @property
    def total_percent(self) -> float:
        """Sum of the four percentages."""
        return self.deep_percent + self.rem_percent + self.light_percent + self.awake_percent


class SleepPredictionInput(BaseModel):
    """Everything the stage predictor and timeline generator may use."""

    model_config = ConfigDict(frozen=True)

    age: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_minutes: float = Field(default=0.0, description="Total sleep time")
    deep_minutes: float | None = None
    rem_minutes: float | None = None
    light_minutes: float | None = None
    awake_minutes: float | None = None
    hrv_rmssd: float | None = Field(default=None, description="HRV rMSSD (ms)")
    resting_hr: float | None = Field(default=None, description="Resting heart rate (bpm)")
    vo2max: float | None = Field(default=None, description="VO2max (ml/kg/min)")
    respiratory_rate: float | None = Field(default=None, description="Breaths per minute")
    sleep_debt_minutes: float | None = Field(default=None, description="Recent accumulated debt")
    chronotype: Chronotype | None = None
    recent_avg_deep_percent: float | None = Field(default=None, description="Personal deep %")
    recent_avg_rem_percent: float | None = Field(default=None, description="Personal REM %")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return coerce_timestamp(value)

    @field_validator(
        "deep_minutes",
        "rem_minutes",
        "light_minutes",
        "awake_minutes",
        "hrv_rmssd",
        "resting_hr",
        "vo2max",
        "respiratory_rate",
        "sleep_debt_minutes",
        "recent_avg_deep_percent",
        "recent_avg_rem_percent",
        mode="before",
    )
    @classmethod
    def _number(cls, value: Any) -> float | None:
        return coerce_number(value)

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _duration(cls, value: Any) -> float:
        return coerce_number(value) or 0.0

    @field_validator("chronotype", mode="before")
    @classmethod
    def _chronotype(cls, value: Any) -> Chronotype | None:
        return coerce_enum(value, Chronotype)


class PhysiologySnapshot(BaseModel):
    """Physiology values actually used for a prediction."""

    model_config = ConfigDict(frozen=True)

    vo2max: float | None = None
    resting_hr: float | None = None
    hrv_rmssd: float | None = None
    hr_max: float | None = None
    respiratory_rate: float | None = None
    basis_notes: list[str] = Field(default_factory=list)


class PremiumSleepPrediction(BaseModel):
    """Stage distribution, timeline, recovery index and predicted score."""

    model_config = ConfigDict(frozen=True)

    stage_distribution: StageDistribution
    cycle_map: CycleMap | None = Field(description="None when no valid timeline could be built")
    recovery_index: int = Field(ge=0, le=100)
    insight_flags: list[InsightFlag] = Field(default_factory=list)
    predicted_score: ScoreResult
    estimated_physiology: PhysiologySnapshot
    generated_at: datetime
