"""Timestamp parsing and minute arithmetic."""

from datetime import UTC, datetime, timedelta

MINUTES_PER_DAY = 1440
NOON_MINUTES = 720  # Times before noon belong to the previous evening's night


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None for anything unusable.

    Accepts datetimes unchanged and strings in any form
    ``datetime.fromisoformat`` understands (including a trailing ``Z``).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        return None


def minutes_between(start: datetime, end: datetime) -> float:
    """Signed minutes from start to end.

    When exactly one side carries a timezone both are compared on their wall
    clocks, so mixed inputs never raise.
    """
    if (start.tzinfo is None) != (end.tzinfo is None):
        start = start.replace(tzinfo=None)
        end = end.replace(tzinfo=None)
    return (end - start).total_seconds() / 60


def add_minutes(moment: datetime, minutes: float) -> datetime:
    """Return a new datetime shifted by the given number of minutes."""
    return moment + timedelta(minutes=minutes)


def minutes_from_midnight(moment: datetime | None) -> float | None:
    """Wall-clock minutes from midnight, with pre-noon times pushed past 24h.

    A 23:30 bedtime maps to 1410 and a 00:30 bedtime to 1470, so bedtimes on
    either side of midnight stay contiguous for medians and variances.
    """
    if moment is None:
        return None
    minutes = moment.hour * 60 + moment.minute
    if minutes < NOON_MINUTES:
        minutes += MINUTES_PER_DAY
    return float(minutes)


def circular_diff_minutes(value: float, target: float) -> float:
    """Smallest distance between two clock times in minutes."""
    direct = abs(value - target)
    return min(direct, MINUTES_PER_DAY - direct)


def to_epoch_ms(moment: datetime) -> int:
    """Milliseconds since the epoch; naive datetimes are read as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return int(round(moment.timestamp() * 1000))
