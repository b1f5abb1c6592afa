"""Tests for per-cycle integer redistribution helpers."""

from sleep_engine.services.redistribution import (
    add_to,
    clamp_non_negative,
    distribute_transfer_across_donors,
    force_sum_to_target,
    redistribute_difference_to_later_cycles,
    trim_from,
)


class TestTrimFrom:
    """Tests for trim_from."""

    def test_proportional_trim(self):
        """Test minutes come off in proportion to each entry."""
        assert trim_from([10, 20, 30], [0, 1, 2], 6) == ([9, 18, 27], 6)

    def test_reports_shortfall(self):
        """Test the removed count stops at what the donors hold."""
        assert trim_from([1, 0, 0], [0, 1, 2], 5) == ([0, 0, 0], 1)

    def test_only_listed_indices_are_touched(self):
        """Test entries outside the index list keep their value."""
        result, removed = trim_from([50, 4, 4], [1, 2], 3)

        assert result[0] == 50
        assert sum(result) == 55
        assert removed == 3

    def test_input_is_not_mutated(self):
        """Test the caller's list is left untouched."""
        values = [10, 10]
        trim_from(values, [0, 1], 4)

        assert values == [10, 10]


class TestAddTo:
    """Tests for add_to."""

    def test_proportional_add(self):
        """Test minutes are added in proportion to each entry."""
        assert add_to([10, 30], [0, 1], 4) == [11, 33]

    def test_round_robin_when_all_zero(self):
        """Test zero entries share the amount round-robin."""
        assert add_to([0, 0, 0], [0, 1, 2], 4) == [2, 1, 1]


class TestRedistribution:
    """Tests for the cycle-1 offset and transfer helpers."""

    def test_shrunk_first_cycle_feeds_later_cycles(self):
        """Test minutes taken from cycle 1 go to later cycles."""
        assert redistribute_difference_to_later_cycles([5, 10, 10], -2) == [5, 11, 11]

    def test_grown_first_cycle_drains_later_cycles(self):
        """Test minutes added to cycle 1 come out of later cycles."""
        assert redistribute_difference_to_later_cycles([12, 10, 10], 2) == [12, 9, 9]

    def test_single_cycle_is_unchanged(self):
        """Test there is nothing to offset with one cycle."""
        assert redistribute_difference_to_later_cycles([7], -3) == [7]

    def test_transfer_comes_from_later_cycles(self):
        """Test a transfer to cycle 1 is taken from the donors."""
        assert distribute_transfer_across_donors([20, 10, 5], 5) == [20, 7, 3]


class TestForceSumToTarget:
    """Tests for force_sum_to_target."""

    def test_shortfall_goes_to_last_entry(self):
        """Test missing minutes are added to the last entry by default."""
        assert force_sum_to_target([5, 5, 0], 12) == [5, 5, 2]

    def test_shortfall_goes_to_last_nonzero_entry(self):
        """Test the last non-zero entry is preferred when requested."""
        assert force_sum_to_target([5, 5, 0], 12, prefer_last_nonzero=True) == [5, 7, 0]

    def test_surplus_trimmed_from_the_end(self):
        """Test extra minutes come off the latest entries first."""
        assert force_sum_to_target([5, 5, 5], 7) == [5, 2, 0]

    def test_empty(self):
        """Test an empty vector stays empty."""
        assert force_sum_to_target([], 10) == []

    def test_clamp_non_negative(self):
        """Test negative entries become zero."""
        assert clamp_non_negative([-1, 2, 0]) == [0, 2, 0]
