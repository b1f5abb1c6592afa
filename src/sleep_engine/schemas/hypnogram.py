"""Pydantic schemas for normalised hypnogram data."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from sleep_engine.schemas.sleep import ConfidenceLevel


class HypnogramStage(str, Enum):
    """Display stages; REM is reported under the core label."""

    AWAKE = "awake"
    CORE = "core"
    DEEP = "deep"
    LIGHT = "light"


class HypnogramPhase(BaseModel):
    """One phase in minutes relative to the session start."""

    model_config = ConfigDict(frozen=True)

    stage: HypnogramStage
    start_min: int = Field(ge=0)
    duration_min: int = Field(gt=0)
    cycle_number: int = Field(ge=0)
    confidence: ConfidenceLevel


class HypnogramData(BaseModel):
    """Clean, sorted, non-overlapping phases for one session."""

    model_config = ConfigDict(frozen=True)

    phases: list[HypnogramPhase]
    sleep_onset_min: int = 0
    wake_min: int = Field(ge=0, description="Minutes from first phase start to last phase end")


class HypnogramResult(BaseModel):
    """Normaliser output: data (None when nothing survived) and the drop count."""

    model_config = ConfigDict(frozen=True)

    data: HypnogramData | None
    dropped_rows: int = Field(ge=0)
