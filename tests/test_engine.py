"""Tests for the settlement engine."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from household_settle.engine import (
    SettlementEngine,
    compute_fingerprint,
    compute_settlement,
)
from household_settle.exceptions import InvalidInputError
from household_settle.models import (
    EntryKind,
    ExpenseEntry,
    IncomeRecord,
    Policy,
    Responsibility,
    Transfer,
    YearMonth,
)

MONTH = YearMonth(year=2025, month=3)


def make_income(member_id: str, amount: int) -> IncomeRecord:
    return IncomeRecord(member_id=member_id, month=MONTH, allocatable_amount=amount)


def make_expense(
    id: int,
    payer: str,
    amount: int,
    personal_for: str | None = None,
    kind: EntryKind = EntryKind.EXPENSE,
) -> ExpenseEntry:
    """Create an ExpenseEntry for testing."""
    return ExpenseEntry(
        id=id,
        payer_member_id=payer,
        amount=amount,
        responsibility=(
            Responsibility.PERSONAL if personal_for else Responsibility.HOUSEHOLD
        ),
        owing_member_id=personal_for,
        kind=kind,
        occurred_on=date(2025, 3, 10),
        description=f"Test expense {id}",
    )


@pytest.fixture
def incomes():
    return [make_income("A", 300000), make_income("B", 200000)]


class TestComputeSettlement:
    """End-to-end computation from incomes and expenses."""

    def test_household_expense_paid_by_one_member(self, incomes):
        expenses = [make_expense(1, "A", 50000)]

        result = compute_settlement("home", MONTH, incomes, expenses, Policy())

        assert {s.member_id: s.share_amount for s in result.shares} == {
            "A": 30000,
            "B": 20000,
        }
        assert {b.member_id: b.balance for b in result.balances} == {
            "A": 20000,
            "B": -20000,
        }
        assert [(t.from_member_id, t.to_member_id, t.amount) for t in result.transfers] == [
            ("B", "A", 20000)
        ]

    def test_personal_expense_added_to_balance(self, incomes):
        """A also paid 5000 for something that was B's alone."""
        expenses = [make_expense(1, "A", 50000), make_expense(2, "A", 5000, "B")]

        result = compute_settlement("home", MONTH, incomes, expenses, Policy())

        assert [t.amount for t in result.transfers] == [25000]
        assert result.summary.total_household_expense == 50000
        assert result.summary.total_personal_expense == 5000
        assert result.summary.participant_count == 2
        assert result.summary.transfer_count == 1

    def test_payments_matching_shares_need_no_transfers(self, incomes):
        expenses = [make_expense(1, "A", 30000), make_expense(2, "B", 20000)]

        result = compute_settlement("home", MONTH, incomes, expenses, Policy())

        assert result.transfers == []
        assert all(b.balance == 0 for b in result.balances)

    def test_income_transactions_are_ignored(self, incomes):
        expenses = [
            make_expense(1, "A", 50000),
            make_expense(2, "B", 999999, kind=EntryKind.INCOME),
        ]

        result = compute_settlement("home", MONTH, incomes, expenses, Policy())

        assert result.summary.total_household_expense == 50000
        assert [t.amount for t in result.transfers] == [20000]

    def test_payer_without_income_is_reimbursed(self):
        """D has no income record but paid a household bill."""
        incomes = [make_income("A", 100), make_income("B", 100)]

        result = compute_settlement(
            "home", MONTH, incomes, [make_expense(1, "D", 1000)], Policy()
        )

        assert [(t.from_member_id, t.to_member_id, t.amount) for t in result.transfers] == [
            ("A", "D", 500),
            ("B", "D", 500),
        ]
        assert result.summary.participant_count == 3

    def test_no_expenses(self, incomes):
        result = compute_settlement("home", MONTH, incomes, [], Policy())

        assert result.transfers == []
        assert result.summary.total_household_expense == 0

    def test_empty_incomes_rejected(self):
        with pytest.raises(InvalidInputError):
            compute_settlement("home", MONTH, [], [make_expense(1, "A", 100)], Policy())

    def test_non_positive_amount_rejected(self, incomes):
        with pytest.raises(InvalidInputError, match="positive amount"):
            compute_settlement("home", MONTH, incomes, [make_expense(1, "A", 0)], Policy())

    def test_personal_expense_without_owner_rejected(self, incomes):
        entry = make_expense(1, "A", 100).model_copy(
            update={"responsibility": Responsibility.PERSONAL}
        )

        with pytest.raises(InvalidInputError, match="no owing member"):
            compute_settlement("home", MONTH, incomes, [entry], Policy())


class TestIdempotence:
    """Repeated runs on unchanged data are identical."""

    def test_two_runs_identical(self):
        incomes = [make_income("A", 333333), make_income("B", 333333), make_income("C", 333334)]
        expenses = [
            make_expense(1, "A", 101),
            make_expense(2, "B", 57, "C"),
            make_expense(3, "C", 3333),
        ]

        first = compute_settlement("home", MONTH, incomes, expenses, Policy())
        second = compute_settlement("home", MONTH, incomes, expenses, Policy())

        assert first.model_dump() == second.model_dump()

    def test_input_order_does_not_change_result(self):
        incomes = [make_income("A", 1), make_income("B", 1), make_income("C", 1)]
        expenses = [make_expense(1, "A", 100), make_expense(2, "B", 10, "A")]

        first = compute_settlement("home", MONTH, incomes, expenses, Policy())
        second = compute_settlement(
            "home", MONTH, list(reversed(incomes)), list(reversed(expenses)), Policy()
        )

        assert first.model_dump() == second.model_dump()


class TestFingerprint:
    """Fingerprints identify a set of transfer lines."""

    LINES = [
        Transfer(from_member_id="B", to_member_id="A", amount=100),
        Transfer(from_member_id="C", to_member_id="A", amount=50),
    ]

    def test_same_lines_same_fingerprint(self):
        assert compute_fingerprint("home", MONTH, self.LINES) == compute_fingerprint(
            "home", MONTH, list(reversed(self.LINES))
        )

    def test_amount_change_changes_fingerprint(self):
        changed = [self.LINES[0].model_copy(update={"amount": 101}), self.LINES[1]]

        assert compute_fingerprint("home", MONTH, self.LINES) != compute_fingerprint(
            "home", MONTH, changed
        )

    def test_month_is_part_of_fingerprint(self):
        assert compute_fingerprint("home", MONTH, self.LINES) != compute_fingerprint(
            "home", MONTH.next_month(), self.LINES
        )

    def test_format(self):
        fingerprint = compute_fingerprint("home", MONTH, [])

        assert len(fingerprint) == 64
        assert all(c in "0123456789abcdef" for c in fingerprint)


class TestSettlementEngine:
    """The engine pulls its inputs from a data source."""

    def test_fetches_period_from_source(self, incomes):
        source = MagicMock()
        source.fetch_incomes.return_value = incomes
        source.fetch_expenses.return_value = [make_expense(1, "A", 50000)]

        result = SettlementEngine(source).compute("home", MONTH, Policy())

        source.fetch_incomes.assert_called_once_with("home", MONTH)
        source.fetch_expenses.assert_called_once_with("home", MONTH)
        assert result.household_id == "home"
        assert result.month == MONTH
        assert result.summary.transfer_count == 1
