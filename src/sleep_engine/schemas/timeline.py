"""Pydantic schemas for phase timelines and cycle maps."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sleep_engine.schemas._coercion import coerce_timestamp
from sleep_engine.schemas.sleep import ConfidenceLevel, SleepStage


class PhaseEvent(BaseModel):
    """One contiguous stage segment of a synthesised night."""

    model_config = ConfigDict(frozen=True)

    stage: SleepStage
    start_time: datetime
    end_time: datetime
    duration_minutes: int = Field(gt=0, description="Whole minutes")
    cycle_number: int = Field(ge=0, description="0 is sleep-onset latency")


class CycleBreakdown(BaseModel):
    """Stage totals for one ultradian cycle."""

    model_config = ConfigDict(frozen=True)

    cycle_number: int
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    dominant_stage: SleepStage
    deep_minutes: int
    rem_minutes: int
    light_minutes: int
    awake_minutes: int


class CycleMap(BaseModel):
    """Synthesised timeline with per-cycle summary."""

    model_config = ConfigDict(frozen=True)

    estimated_cycles: int = Field(ge=3, le=6)
    phase_timeline: list[PhaseEvent]
    cycle_breakdown: list[CycleBreakdown]
    confidence: ConfidenceLevel
    algorithm_version: int = 1

    @property
    def total_minutes(self) -> int:
        """Sum of event durations."""
        return sum(event.duration_minutes for event in self.phase_timeline)


class CycleDistributorInput(BaseModel):
    """Aggregate inputs for cycle distribution."""

    model_config = ConfigDict(frozen=True)

    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_minutes: float = Field(description="Total sleep time to distribute")
    deep_minutes: float | None = None
    rem_minutes: float | None = None
    light_minutes: float | None = None
    awake_minutes: float | None = None
    resting_hr: float | None = Field(default=None, description="Resting heart rate (bpm)")
    age: int | None = None
    sleep_debt_minutes: float | None = Field(default=None, description="Recent accumulated debt")
    personal_deep_ratio: float | None = Field(default=None, description="Personal deep share 0-1")
    personal_rem_ratio: float | None = Field(default=None, description="Personal REM share 0-1")
    history_nights: int = Field(default=0, ge=0, description="Nights of history available")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> datetime | None:
        return coerce_timestamp(value)
