"""Tests for income-proportional apportionment."""

import pytest

from household_settle.apportioner import apportion, round_quotient
from household_settle.exceptions import InvalidInputError
from household_settle.models import Policy, RoundingMode, ZeroIncomePolicy


def shares_of(result) -> dict[str, int]:
    return {share.member_id: share.share_amount for share in result}


MIN_SHARE_5 = Policy(zero_income_policy=ZeroIncomePolicy.MIN_SHARE, min_share_percent=5)


class TestExampleScenarios:
    """Worked examples from the household settlement rules."""

    def test_two_incomes_exact_split(self):
        """60/40 income split divides evenly."""
        result = apportion(50000, [("A", 300000), ("B", 200000)], Policy())

        assert shares_of(result) == {"A": 30000, "B": 20000}

    def test_three_nearly_equal_incomes(self):
        """Residual unit goes to the largest fractional remainder."""
        incomes = [("A", 333333), ("B", 333333), ("C", 333334)]

        result = shares_of(apportion(100, incomes, Policy()))

        assert sum(result.values()) == 100
        assert result == {"A": 33, "B": 33, "C": 34}
        for amount in result.values():
            assert abs(amount - 100 / 3) <= 1

    def test_zero_income_excluded(self):
        """EXCLUDE gives zero-income members nothing."""
        incomes = [("A", 100000), ("B", 0), ("C", 100000)]

        result = apportion(10000, incomes, Policy())

        assert shares_of(result) == {"A": 5000, "B": 0, "C": 5000}

    def test_zero_income_min_share(self):
        """MIN_SHARE reserves 5% for B, remainder split 50/50."""
        incomes = [("A", 100000), ("B", 0), ("C", 100000)]

        result = apportion(10000, incomes, MIN_SHARE_5)

        assert shares_of(result) == {"A": 4750, "B": 500, "C": 4750}


class TestRoundQuotient:
    """Rounding a quotient + remainder/denominator."""

    @pytest.mark.parametrize(
        "quotient,remainder,denominator,mode,expected",
        [
            (2, 0, 3, RoundingMode.CEILING, 2),
            (2, 1, 3, RoundingMode.FLOOR, 2),
            (2, 1, 3, RoundingMode.CEILING, 3),
            (2, 1, 3, RoundingMode.ROUND, 2),
            (2, 2, 3, RoundingMode.ROUND, 3),
            (2, 1, 2, RoundingMode.ROUND, 3),  # ties away from zero
            (2, 1, 2, RoundingMode.BANKERS, 2),  # ties to even
            (3, 1, 2, RoundingMode.BANKERS, 4),
            (3, 2, 3, RoundingMode.BANKERS, 4),
            (3, 1, 3, RoundingMode.BANKERS, 3),
        ],
    )
    def test_modes(self, quotient, remainder, denominator, mode, expected):
        assert round_quotient(quotient, remainder, denominator, mode) == expected


class TestResidualDistribution:
    """Residual units are distributed deterministically."""

    EQUAL = [("A", 1000), ("B", 1000), ("C", 1000)]

    def test_floor_residual_to_lowest_id_on_tie(self):
        """Equal remainders: ascending member id receives the extra unit."""
        result = shares_of(apportion(100, self.EQUAL, Policy(rounding_mode=RoundingMode.FLOOR)))

        assert result == {"A": 34, "B": 33, "C": 33}

    def test_round_residual_to_lowest_id_on_tie(self):
        result = shares_of(apportion(100, self.EQUAL, Policy(rounding_mode=RoundingMode.ROUND)))

        assert result == {"A": 34, "B": 33, "C": 33}

    def test_ceiling_overshoot_removed_from_lowest_ids(self):
        """CEILING overshoots by 2; the two lowest ids give a unit back."""
        result = shares_of(
            apportion(100, self.EQUAL, Policy(rounding_mode=RoundingMode.CEILING))
        )

        assert result == {"A": 33, "B": 33, "C": 34}

    def test_bankers_half_rounds_to_even(self):
        """2.5 + 2.5 rounds down to 2 + 2, residual goes to A."""
        incomes = [("A", 1), ("B", 1)]

        bankers = shares_of(apportion(5, incomes, Policy(rounding_mode=RoundingMode.BANKERS)))
        rounded = shares_of(apportion(5, incomes, Policy(rounding_mode=RoundingMode.ROUND)))

        assert bankers == {"A": 3, "B": 2}
        assert rounded == {"A": 2, "B": 3}

    def test_bankers_odd_half_rounds_up(self):
        """3.5 + 3.5 rounds up to 4 + 4, overshoot taken from A."""
        incomes = [("A", 1), ("B", 1)]

        result = shares_of(apportion(7, incomes, Policy(rounding_mode=RoundingMode.BANKERS)))

        assert result == {"A": 3, "B": 4}

    def test_largest_remainder_wins_over_id(self):
        """B's larger fractional part beats A's lower id."""
        incomes = [("A", 1), ("B", 2)]

        result = shares_of(apportion(10, incomes, Policy(rounding_mode=RoundingMode.FLOOR)))

        # ideals: 3.33, 6.67
        assert result == {"A": 3, "B": 7}

    def test_input_order_does_not_matter(self):
        incomes = [("C", 333334), ("A", 333333), ("B", 333333)]

        result = apportion(100, incomes, Policy())

        assert [s.member_id for s in result] == ["A", "B", "C"]
        assert shares_of(result) == {"A": 33, "B": 33, "C": 34}


CONSERVATION_CASES = [
    (100, [("A", 333333), ("B", 333333), ("C", 333334)]),
    (1, [("A", 5), ("B", 5), ("C", 5)]),
    (99999, [("A", 123457), ("B", 1), ("C", 987654), ("D", 42)]),
    (7, [("A", 1), ("B", 1)]),
    (123456789, [("A", 3), ("B", 7), ("C", 11), ("D", 13), ("E", 17)]),
    (50, [("A", 0), ("B", 10), ("C", 0), ("D", 30)]),
]


class TestConservation:
    """Shares always sum to the total, each within one unit of ideal."""

    @pytest.mark.parametrize("mode", list(RoundingMode))
    @pytest.mark.parametrize("total,incomes", CONSERVATION_CASES)
    def test_exact_sum_and_bounded_error(self, mode, total, incomes):
        result = shares_of(apportion(total, incomes, Policy(rounding_mode=mode)))

        assert sum(result.values()) == total

        pool = sum(amount for _, amount in incomes)
        for member_id, income in incomes:
            # |share - total * income / pool| < 1
            assert abs(result[member_id] * pool - total * income) < pool

    @pytest.mark.parametrize("total,incomes", CONSERVATION_CASES)
    def test_min_share_exact_sum(self, total, incomes):
        policy = Policy(zero_income_policy=ZeroIncomePolicy.MIN_SHARE, min_share_percent=10)

        result = apportion(total, incomes, policy)

        assert sum(s.share_amount for s in result) == total
        assert all(s.share_amount >= 0 for s in result)

    @pytest.mark.parametrize("total,incomes", CONSERVATION_CASES)
    def test_rounding_mode_never_changes_total(self, total, incomes):
        """Switching rounding mode only moves residual units around."""
        baseline = shares_of(apportion(total, incomes, Policy()))

        for mode in RoundingMode:
            other = shares_of(apportion(total, incomes, Policy(rounding_mode=mode)))
            assert sum(other.values()) == sum(baseline.values())
            for member_id in baseline:
                assert abs(other[member_id] - baseline[member_id]) <= 1


class TestZeroIncomePolicies:
    """Edge cases of EXCLUDE and MIN_SHARE."""

    def test_zero_total_gives_zero_shares(self):
        result = apportion(0, [("A", 100), ("B", 0)], Policy())

        assert shares_of(result) == {"A": 0, "B": 0}

    def test_zero_total_with_all_zero_incomes(self):
        """No expense to split, so no proportional base is needed."""
        result = apportion(0, [("A", 0), ("B", 0)], Policy())

        assert shares_of(result) == {"A": 0, "B": 0}

    def test_all_zero_incomes_excluded_raises(self):
        with pytest.raises(InvalidInputError, match="no proportional base") as exc_info:
            apportion(1000, [("A", 0), ("B", 0)], Policy())

        assert exc_info.value.member_ids == ["A", "B"]

    def test_min_share_with_all_zero_incomes_splits_equally(self):
        """10 reserved each, remaining 70 split equally."""
        policy = Policy(zero_income_policy=ZeroIncomePolicy.MIN_SHARE, min_share_percent=10)

        result = shares_of(apportion(100, [("A", 0), ("B", 0), ("C", 0)], policy))

        assert result == {"A": 34, "B": 33, "C": 33}

    def test_min_share_floors_the_minimum(self):
        """5% of 999 = 49.95, floored to 49."""
        result = shares_of(apportion(999, [("A", 100), ("B", 0)], MIN_SHARE_5))

        assert result == {"A": 950, "B": 49}

    def test_min_share_zero_percent_matches_exclude(self):
        incomes = [("A", 100000), ("B", 0), ("C", 300000)]
        policy = Policy(zero_income_policy=ZeroIncomePolicy.MIN_SHARE, min_share_percent=0)

        assert apportion(10000, incomes, policy) == apportion(10000, incomes, Policy())

    def test_min_share_reservations_exceeding_total_raise(self):
        policy = Policy(zero_income_policy=ZeroIncomePolicy.MIN_SHARE, min_share_percent=50)

        with pytest.raises(InvalidInputError, match="exceed the total"):
            apportion(100, [("A", 0), ("B", 0), ("C", 0)], policy)

    def test_min_share_hundred_percent_single_zero_member(self):
        policy = Policy(zero_income_policy=ZeroIncomePolicy.MIN_SHARE, min_share_percent=100)

        result = shares_of(apportion(100, [("A", 500), ("B", 0)], policy))

        assert result == {"A": 0, "B": 100}


class TestInvalidInput:
    """Caller errors are reported as InvalidInputError."""

    def test_empty_incomes(self):
        with pytest.raises(InvalidInputError, match="without any income"):
            apportion(100, [], Policy())

    def test_negative_income(self):
        with pytest.raises(InvalidInputError, match="Negative") as exc_info:
            apportion(100, [("A", 100), ("B", -1)], Policy())

        assert exc_info.value.member_ids == ["B"]

    def test_negative_total(self):
        with pytest.raises(InvalidInputError, match="non-negative"):
            apportion(-1, [("A", 100)], Policy())

    def test_duplicate_member(self):
        with pytest.raises(InvalidInputError, match="Duplicate") as exc_info:
            apportion(100, [("A", 100), ("A", 200)], Policy())

        assert exc_info.value.member_ids == ["A"]

    @pytest.mark.parametrize("percent", [-1, 101])
    def test_min_share_percent_out_of_range(self, percent):
        policy = Policy(
            zero_income_policy=ZeroIncomePolicy.MIN_SHARE, min_share_percent=percent
        )

        with pytest.raises(InvalidInputError, match="min_share_percent"):
            apportion(100, [("A", 100)], policy)
