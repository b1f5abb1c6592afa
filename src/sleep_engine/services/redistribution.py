"""Integer redistribution helpers for per-cycle minute vectors.

Every function here is pure: it takes a list of whole minutes and returns a
new list, leaving its input untouched.
"""

from collections.abc import Sequence

from sleep_engine.core.numeric import round_half_up


def clamp_non_negative(values: Sequence[int]) -> list[int]:
    """Replace negative entries with zero."""
    return [max(0, value) for value in values]


def trim_from(values: Sequence[int], indices: Sequence[int], amount: int) -> tuple[list[int], int]:
    """Remove up to ``amount`` minutes from the given indices.

    Minutes are first taken proportionally to each entry's size, then one at a
    time in index order until the amount is reached or every entry is empty.

    Returns:
        The new vector and the number of minutes actually removed
    """
    result = list(values)
    if amount <= 0:
        return result, 0

    donors = [index for index in indices if result[index] > 0]
    donor_total = sum(result[index] for index in donors)
    remaining = amount

    if donor_total > 0:
        for index in donors:
            if remaining <= 0:
                break
            share = round_half_up(result[index] / donor_total * amount)
            trim = min(result[index], share, remaining)
            result[index] -= trim
            remaining -= trim

    while remaining > 0:
        trimmed_any = False
        for index in indices:
            if remaining <= 0:
                break
            if result[index] > 0:
                result[index] -= 1
                remaining -= 1
                trimmed_any = True
        if not trimmed_any:
            break

    return result, amount - remaining


def add_to(values: Sequence[int], indices: Sequence[int], amount: int) -> list[int]:
    """Add ``amount`` minutes across the given indices.

    Minutes go proportionally to each entry's size, then round-robin for the
    rounding remainder (or for everything when all entries are zero).
    """
    result = list(values)
    if amount <= 0 or not indices:
        return result

    total = sum(result[index] for index in indices)
    remaining = amount
    if total > 0:
        for index in indices:
            if remaining <= 0:
                break
            share = min(round_half_up(result[index] / total * amount), remaining)
            result[index] += share
            remaining -= share

    pointer = 0
    while remaining > 0:
        result[indices[pointer % len(indices)]] += 1
        remaining -= 1
        pointer += 1

    return result


def distribute_transfer_across_donors(values: Sequence[int], transfer: int) -> list[int]:
    """Take ``transfer`` minutes from cycles after the first.

    The caller adds the transfer to cycle 1; if donors run dry the shortfall is
    left for ``force_sum_to_target`` to settle.
    """
    later = list(range(1, len(values)))
    result, _ = trim_from(values, later, transfer)
    return result


def redistribute_difference_to_later_cycles(values: Sequence[int], first_delta: int) -> list[int]:
    """Offset a change made to cycle 1 across the later cycles.

    Args:
        values: Per-cycle minutes, with cycle 1 already changed
        first_delta: How much cycle 1 changed (negative when it shrank)

    Returns:
        New vector whose total matches the total before cycle 1 changed,
        unless the later cycles could not absorb a positive delta
    """
    if len(values) <= 1 or first_delta == 0:
        return list(values)

    later = list(range(1, len(values)))
    if first_delta < 0:
        return add_to(values, later, -first_delta)
    result, _ = trim_from(values, later, first_delta)
    return result


def force_sum_to_target(
    values: Sequence[int], target: float, prefer_last_nonzero: bool = False
) -> list[int]:
    """Nudge a vector so its entries sum exactly to ``target``.

    Surplus minutes are trimmed from the end backwards. A shortfall is added to
    the preferred entry: the last non-zero entry when ``prefer_last_nonzero``,
    otherwise the last entry.
    """
    result = list(values)
    if not result:
        return result

    safe_target = max(0, round_half_up(target))
    delta = safe_target - sum(result)
    if delta == 0:
        return result

    preferred = len(result) - 1
    if prefer_last_nonzero:
        for index in range(len(result) - 1, -1, -1):
            if result[index] > 0:
                preferred = index
                break

    if delta > 0:
        result[preferred] += delta
    else:
        remaining = -delta
        for index in range(len(result) - 1, -1, -1):
            if remaining <= 0:
                break
            trim = min(max(0, result[index]), remaining)
            result[index] -= trim
            remaining -= trim

    return result
