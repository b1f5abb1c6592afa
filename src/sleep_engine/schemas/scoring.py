"""Pydantic schemas for the sleep score and its breakdown."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sleep_engine.schemas.sleep import AgeNorm, ConfidenceLevel, UserBaseline

WEIGHT_SUM_TOLERANCE = 1e-6


class ComponentKey(str, Enum):
    """Named score components."""

    DURATION = "duration"
    DEEP_SLEEP = "deep_sleep"
    REM_SLEEP = "rem_sleep"
    EFFICIENCY = "efficiency"
    WASO = "waso"
    CONSISTENCY = "consistency"
    TIMING = "timing"
    SCREEN_TIME = "screen_time"


class ScoreFlag(str, Enum):
    """Interpretable warnings attached to a score."""

    DATA_INCOMPLETE = "data_incomplete"
    DATA_INCOMPLETE_STAGES = "data_incomplete_stages"
    DURATION_BELOW_5H = "duration_below_5h"
    DURATION_BELOW_GOAL_20PCT = "duration_below_goal_20pct"
    DEEP_BELOW_15PCT = "deep_below_15pct"
    REM_BELOW_15PCT = "rem_below_15pct"
    AWAKE_ABOVE_10PCT_TST = "awake_above_10pct_tst"
    WASO_ABOVE_ACCEPTABLE = "waso_above_acceptable"
    WASO_SEVERE = "waso_severe"
    LATE_BEDTIME_VS_MEDIAN = "late_bedtime_vs_median"
    EXTREME_BEDTIME_SHIFT = "extreme_bedtime_shift"
    SOCIAL_JET_LAG = "social_jet_lag"
    SOURCE_LOW_RELIABILITY = "source_low_reliability"


class ComponentResult(BaseModel):
    """Explanation of one score component."""

    model_config = ConfigDict(frozen=True)

    raw_value: float = Field(description="Observed value")
    norm_value: float = Field(description="Personal/population blended norm")
    normalised: float = Field(ge=0, le=1, description="Component score in [0, 1]")
    weight: float = Field(ge=0, le=1, description="Weight in the total")
    contribution: float = Field(description="weight x normalised x 100")


class ScoreAdjustments(BaseModel):
    """Multipliers and penalties applied after the weighted sum."""

    model_config = ConfigDict(frozen=True)

    source_reliability_factor: float = Field(description="Shrinkage factor for the data source")
    data_completeness_factor: float = Field(description="Multiplier for missing fields")
    chronic_debt_penalty: float = Field(description="Fractional drag from recent under-sleep")
    short_sleep_penalty: float = Field(default=0.0, description="Points removed for short nights")


class SubScores(BaseModel):
    """Integer 0-100 sub-scores behind the weighted components."""

    model_config = ConfigDict(frozen=True)

    efficiency_score: int
    waso_score: int
    tst_score: int
    deep_score: int
    rem_score: int
    regularity_score: int


class ScoreBreakdown(BaseModel):
    """Full explanation of a sleep score."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(ge=0, le=100, description="Final score")
    confidence: ConfidenceLevel = Field(description="Confidence in the score")
    components: dict[ComponentKey, ComponentResult] = Field(description="Per-component results")
    weights: dict[ComponentKey, float] = Field(description="Component weights (sum to 1)")
    adjustments: ScoreAdjustments
    sub_scores: SubScores
    baseline: UserBaseline
    age_norm: AgeNorm
    flags: list[ScoreFlag] = Field(default_factory=list)
    calculated_at: datetime

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "ScoreBreakdown":
        total_weight = sum(self.weights.values())
        if abs(total_weight - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Component weights must sum to 1, got {total_weight:.6f}")
        return self


class ScoreResult(BaseModel):
    """Score with its breakdown."""

    model_config = ConfigDict(frozen=True)

    sleep_score: int = Field(ge=0, le=100)
    breakdown: ScoreBreakdown
