"""Sleep history seeding helpers.

Builds deterministic nights with realistic weekly patterns:
- Shorter sleep early in the week
- Longer weekend sleep (catching up)
- Stage minutes proportional to total sleep time
"""

from datetime import UTC, date, datetime, time, timedelta

from sleep_engine.schemas.sleep import ConfidenceLevel, DataSource, SleepRecord

# Weekly duration pattern in minutes: Mon=0, Sun=6
WEEKLY_DURATION_MODIFIER = {
    0: -20,  # Sunday night, early alarm
    1: 0,
    2: 10,
    3: 5,
    4: -15,  # Friday night social
    5: 30,  # Saturday lie-in
    6: 25,
}


def make_night(
    night_date: date,
    duration: float,
    bedtime: time = time(23, 0),
    awake: float = 20,
    with_stages: bool = True,
    source: DataSource = DataSource.WEARABLE,
    confidence: ConfidenceLevel = ConfidenceLevel.HIGH,
) -> SleepRecord:
    """Build one night starting at ``bedtime`` on ``night_date``.

    Time in bed is the sleep duration plus the awake minutes. Stage minutes
    follow a 20/22 deep/REM split with light taking the rest.
    """
    start = datetime.combine(night_date, bedtime, tzinfo=UTC)
    end = start + timedelta(minutes=duration + awake)
    stages: dict[str, float | None] = {
        "deep_minutes": None,
        "rem_minutes": None,
        "light_minutes": None,
        "awake_minutes": None,
    }
    if with_stages:
        deep = round(duration * 0.20)
        rem = round(duration * 0.22)
        stages = {
            "deep_minutes": deep,
            "rem_minutes": rem,
            "light_minutes": duration - deep - rem,
            "awake_minutes": awake,
        }

    return SleepRecord(
        id=f"night-{night_date.isoformat()}",
        date=night_date,
        start_time=start,
        end_time=end,
        duration_minutes=duration,
        source=source,
        confidence=confidence,
        **stages,
    )


def seed_history(
    days: int,
    last_night: date = date(2026, 1, 31),
    base_duration: float = 450,
    with_stages: bool = True,
    weekly_pattern: bool = True,
) -> list[SleepRecord]:
    """Seed ``days`` consecutive nights ending on ``last_night``, oldest first."""
    nights: list[SleepRecord] = []
    for offset in range(days - 1, -1, -1):
        night_date = last_night - timedelta(days=offset)
        duration = base_duration
        if weekly_pattern:
            duration += WEEKLY_DURATION_MODIFIER[night_date.weekday()]
        nights.append(make_night(night_date, duration, with_stages=with_stages))
    return nights
