"""Settlement engine: turns a month of incomes and expenses into transfers.

The computation is a pure function of its inputs. Members are sorted by id
before apportioning so repeated runs on unchanged data produce identical
shares, balances and transfers.
"""

import hashlib
import logging
from typing import Protocol

from .apportioner import apportion
from .balances import aggregate
from .exceptions import InvalidInputError
from .models import (
    EntryKind,
    ExpenseEntry,
    IncomeRecord,
    Policy,
    Responsibility,
    SettlementComputation,
    SettlementSummary,
    Transfer,
    YearMonth,
)
from .netting import net

logger = logging.getLogger(__name__)


class SettlementDataSource(Protocol):
    """Read-only feeds the engine pulls its inputs from."""

    def fetch_incomes(self, household_id: str, month: YearMonth) -> list[IncomeRecord]:
        ...

    def fetch_expenses(self, household_id: str, month: YearMonth) -> list[ExpenseEntry]:
        ...


def validate_expenses(expenses: list[ExpenseEntry]) -> None:
    """Reject expenses with non-positive amounts or no owing member."""
    for entry in expenses:
        if entry.amount <= 0:
            raise InvalidInputError(
                f"Expense {entry.id} must have a positive amount, got {entry.amount}",
                member_ids=[entry.payer_member_id],
            )
        if entry.responsibility == Responsibility.PERSONAL and not entry.owing_member_id:
            raise InvalidInputError(
                f"Personal expense {entry.id} has no owing member",
                member_ids=[entry.payer_member_id],
            )


def compute_settlement(
    household_id: str,
    month: YearMonth,
    incomes: list[IncomeRecord],
    expenses: list[ExpenseEntry],
    policy: Policy,
) -> SettlementComputation:
    """
    Compute shares, balances and transfers for one household month.

    Args:
        household_id: Household being settled
        month: Month being settled
        incomes: Income records for the month
        expenses: Transactions for the month (INCOME entries are ignored)
        policy: Apportionment policy

    Returns:
        The full computation result

    Raises:
        InvalidInputError: On invalid incomes, expenses or policy
        InternalInvariantViolation: If a conservation check fails
    """
    expense_entries = [e for e in expenses if e.kind == EntryKind.EXPENSE]
    if len(expense_entries) != len(expenses):
        logger.debug(
            f"Ignoring {len(expenses) - len(expense_entries)} income transactions"
        )
    validate_expenses(expense_entries)

    household = [
        e for e in expense_entries if e.responsibility == Responsibility.HOUSEHOLD
    ]
    personal = [
        e for e in expense_entries if e.responsibility == Responsibility.PERSONAL
    ]
    total_household = sum(e.amount for e in household)
    total_personal = sum(e.amount for e in personal)

    income_allocations = {
        record.member_id: record.allocatable_amount for record in incomes
    }
    shares = apportion(
        total_household,
        [(record.member_id, record.allocatable_amount) for record in incomes],
        policy,
    )

    paid_amounts: dict[str, int] = {}
    for entry in expense_entries:
        paid_amounts[entry.payer_member_id] = (
            paid_amounts.get(entry.payer_member_id, 0) + entry.amount
        )

    personal_owed: dict[str, int] = {}
    for entry in personal:
        owing = entry.owing_member_id or entry.payer_member_id
        personal_owed[owing] = personal_owed.get(owing, 0) + entry.amount

    balances = aggregate(shares, personal_owed, paid_amounts, income_allocations)
    transfers = net(balances)

    summary = SettlementSummary(
        total_household_expense=total_household,
        total_personal_expense=total_personal,
        participant_count=len(balances),
        transfer_count=len(transfers),
    )

    logger.info(
        f"Computed settlement for {household_id} {month}: "
        f"{summary.participant_count} participants, "
        f"{summary.transfer_count} transfers, "
        f"household total {total_household}"
    )

    return SettlementComputation(
        household_id=household_id,
        month=month,
        policy=policy,
        shares=shares,
        balances=balances,
        transfers=transfers,
        summary=summary,
    )


def compute_fingerprint(household_id: str, month: YearMonth, lines: list[Transfer]) -> str:
    """
    Compute a stable hash of a settlement's transfer lines.

    Identical inputs always yield the same fingerprint, so a recompute can be
    recognised as a no-op.
    """
    parts = [f"{household_id}|{month}"]
    for line in sorted(lines, key=lambda t: (t.from_member_id, t.to_member_id)):
        parts.append(f"{line.from_member_id}>{line.to_member_id}:{line.amount}")

    combined = "|".join(parts)
    return hashlib.sha256(combined.encode()).hexdigest()


class SettlementEngine:
    """Pulls a month of data from a source and computes its settlement."""

    def __init__(self, source: SettlementDataSource):
        """Initialize the engine with a data source."""
        self.source = source

    def compute(
        self, household_id: str, month: YearMonth, policy: Policy
    ) -> SettlementComputation:
        """Fetch inputs for the period and compute the settlement."""
        incomes = self.source.fetch_incomes(household_id, month)
        expenses = self.source.fetch_expenses(household_id, month)

        logger.info(
            f"Loaded {len(incomes)} incomes and {len(expenses)} transactions "
            f"for {household_id} {month}"
        )

        return compute_settlement(household_id, month, incomes, expenses, policy)
