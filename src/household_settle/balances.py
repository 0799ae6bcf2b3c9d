"""Per-member net balance aggregation."""

import logging

from .exceptions import InternalInvariantViolation
from .models import MemberShare, NetBalance

logger = logging.getLogger(__name__)


def aggregate(
    shares: list[MemberShare],
    personal_expenses: dict[str, int],
    paid_amounts: dict[str, int],
    income_allocations: dict[str, int],
) -> list[NetBalance]:
    """
    Combine shares, personal debts and payments into net balances.

    balance = paid - household share - personal amount owed

    Positive means the member is owed money, negative means they owe.
    Every member appearing in any input gets a balance, including members
    whose only link to the month is an income record.

    Args:
        shares: Household shares from the apportioner
        personal_expenses: member_id -> personal expense amount they owe
        paid_amounts: member_id -> amount they actually paid (household + personal)
        income_allocations: member_id -> allocatable income for the month

    Returns:
        Net balances sorted by member id

    Raises:
        InternalInvariantViolation: If balances do not sum to zero
    """
    share_by_member = {share.member_id: share.share_amount for share in shares}

    member_ids = sorted(
        set(share_by_member)
        | set(personal_expenses)
        | set(paid_amounts)
        | set(income_allocations)
    )

    balances = [
        NetBalance(
            member_id=member_id,
            balance=paid_amounts.get(member_id, 0)
            - share_by_member.get(member_id, 0)
            - personal_expenses.get(member_id, 0),
        )
        for member_id in member_ids
    ]

    total = sum(b.balance for b in balances)
    if total != 0:
        state = {
            "shares": share_by_member,
            "personal_expenses": personal_expenses,
            "paid_amounts": paid_amounts,
            "balances": {b.member_id: b.balance for b in balances},
        }
        logger.error(f"Balance invariant violated (sum={total}): {state}")
        raise InternalInvariantViolation(
            f"Net balances sum to {total}, expected 0", state=state
        )

    return balances
