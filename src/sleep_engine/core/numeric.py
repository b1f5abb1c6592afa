"""Numeric helpers shared by the scoring and synthesis services."""

import math


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value to the inclusive range [low, high]."""
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up.

    Python's ``round`` uses banker's rounding, which would make 95.5 and 96.5
    land on the same integer. Every minute count in the engine uses this
    instead so that rounding is monotonic.
    """
    return math.floor(value + 0.5)


def round_to(value: float, digits: int = 1) -> float:
    """Round half-up to a fixed number of decimal places."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def gaussian_score(value: float, target: float, sigma: float) -> float:
    """Gaussian similarity in [0, 1], 1 when value equals target."""
    if sigma <= 0:
        return 0.0
    return math.exp(-0.5 * ((value - target) / sigma) ** 2)
