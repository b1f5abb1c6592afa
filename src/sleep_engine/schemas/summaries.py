"""Pydantic schemas for weekly and monthly sleep summaries."""

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sleep_engine.schemas._coercion import coerce_number


class DaySleepData(BaseModel):
    """One tracked day as fed to the summary generator."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    duration_hours: float = 0.0
    quality: float = Field(default=0.0, description="Sleep score for the night (0-100)")
    deep_min: float = 0.0
    rem_min: float = 0.0
    light_min: float = 0.0
    awake_min: float = 0.0

    @field_validator(
        "duration_hours", "quality", "deep_min", "rem_min", "light_min", "awake_min", mode="before"
    )
    @classmethod
    def _number(cls, value: Any) -> float:
        return coerce_number(value) or 0.0


class DayHighlight(BaseModel):
    """Best or worst day of a week."""

    model_config = ConfigDict(frozen=True)

    day: str = Field(description="Weekday name")
    hours: float


class WeeklySummary(BaseModel):
    """Aggregates and insights for up to seven days."""

    model_config = ConfigDict(frozen=True)

    total_hours: float
    avg_hours: float
    avg_quality: int
    best_day: DayHighlight | None
    worst_day: DayHighlight | None
    days_with_good_sleep: int
    avg_deep_percent: int
    avg_rem_percent: int
    consistency_score: int = Field(ge=0, le=100)
    insights: list[str] = Field(max_length=3)
    main_insight: str


class MonthlySummary(BaseModel):
    """Aggregates, weekly averages and insights for a month."""

    model_config = ConfigDict(frozen=True)

    total_hours: int
    avg_hours: float
    avg_quality: int
    days_tracked: int
    days_with_good_sleep: int
    avg_deep_percent: int
    avg_rem_percent: int
    consistency_score: int = Field(ge=0, le=100)
    weekly_averages: list[float]
    insights: list[str] = Field(max_length=4)
    main_insight: str
