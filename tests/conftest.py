"""Shared test fixtures."""

from datetime import UTC, date, datetime

import pytest

from sleep_engine.schemas.sleep import (
    ActivityLevel,
    ConfidenceLevel,
    DataSource,
    Sex,
    SleepRecord,
    UserProfile,
)
from sleep_engine.schemas.timeline import CycleDistributorInput
from tests.fixtures.history_seed import seed_history


@pytest.fixture
def now() -> datetime:
    """Fixed calculation time."""
    return datetime(2026, 2, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def good_night() -> SleepRecord:
    """Eight hours of well-structured sleep from a health platform."""
    return SleepRecord(
        id="good-night",
        date=date(2026, 1, 31),
        start_time="2026-01-31T23:00:00+00:00",
        end_time="2026-02-01T07:20:00+00:00",
        duration_minutes=480,
        deep_minutes=96,
        rem_minutes=106,
        light_minutes=258,
        awake_minutes=20,
        source=DataSource.HEALTH_CONNECT,
        confidence=ConfidenceLevel.HIGH,
    )


@pytest.fixture
def short_night() -> SleepRecord:
    """Four hours with stages scaled down from the good night."""
    return SleepRecord(
        id="short-night",
        date=date(2026, 1, 31),
        start_time="2026-02-01T02:00:00+00:00",
        end_time="2026-02-01T06:10:00+00:00",
        duration_minutes=240,
        deep_minutes=48,
        rem_minutes=53,
        light_minutes=129,
        awake_minutes=10,
        source=DataSource.HEALTH_CONNECT,
        confidence=ConfidenceLevel.HIGH,
    )


@pytest.fixture
def profile() -> UserProfile:
    """Active 30-year-old man."""
    return UserProfile(
        age=30,
        sex=Sex.MALE,
        activity_level=ActivityLevel.ACTIVE,
        sleep_goal_minutes=480,
    )


@pytest.fixture
def history_14d() -> list[SleepRecord]:
    """Two weeks of regular nights ending the night before the scored one."""
    return seed_history(days=14, last_night=date(2026, 1, 30))


@pytest.fixture
def aggregate_night() -> CycleDistributorInput:
    """Eight-hour night with real stage totals for cycle distribution."""
    return CycleDistributorInput(
        start_time="2026-01-31T23:30:00+00:00",
        end_time="2026-02-01T07:30:00+00:00",
        duration_minutes=480,
        deep_minutes=85,
        rem_minutes=102,
        light_minutes=265,
        awake_minutes=28,
        resting_hr=55,
        age=32,
    )
