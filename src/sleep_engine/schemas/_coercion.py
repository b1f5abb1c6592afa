"""Lenient field coercion applied once at the model boundary."""

import math
from datetime import date, datetime
from enum import Enum
from typing import TypeVar

from sleep_engine.core.timeutils import parse_timestamp

E = TypeVar("E", bound=Enum)


def coerce_number(value: object) -> float | None:
    """Return a finite float, or None for missing, non-numeric or non-finite values."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_timestamp(value: object) -> datetime | None:
    """Return a datetime, or None when the value cannot be parsed."""
    return parse_timestamp(value)


def coerce_date(value: object) -> date | None:
    """Return a calendar date, or None when the value cannot be parsed."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def coerce_enum(value: object, enum_cls: type[E], default: E | None = None) -> E | None:
    """Map a raw value onto an enum member, falling back to a default."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return default
    return default
