"""Greedy minimum-transfer netting of signed balances.

Repeatedly match the largest outstanding debt with the largest outstanding
credit and transfer the smaller of the two. For ``n`` members with a nonzero
balance this never needs more than ``n - 1`` transfers. It is not guaranteed
to be the global minimum in every case (a subset-sum search can sometimes do
better); greedy matching is kept for its predictability.
"""

import heapq
import logging

from .exceptions import InvalidInputError
from .models import NetBalance, Transfer

logger = logging.getLogger(__name__)


def net(balances: list[NetBalance]) -> list[Transfer]:
    """
    Compute transfers that bring every balance to zero.

    Ties between equal magnitudes are broken by ascending member id, so the
    output is deterministic for a given set of balances.

    Args:
        balances: Net balances, which must sum to zero

    Returns:
        Transfers from debtors to creditors, in the order they were matched

    Raises:
        InvalidInputError: If balances do not sum to zero or repeat a member
    """
    seen: set[str] = set()
    duplicates = []
    for b in balances:
        if b.member_id in seen:
            duplicates.append(b.member_id)
        seen.add(b.member_id)
    if duplicates:
        duplicates = sorted(set(duplicates))
        raise InvalidInputError(
            f"Duplicate balances for members: {', '.join(duplicates)}",
            member_ids=duplicates,
        )

    total = sum(b.balance for b in balances)
    if total != 0:
        raise InvalidInputError(
            f"Balances must sum to zero to be netted, got {total}",
            member_ids=sorted(b.member_id for b in balances if b.balance != 0),
        )

    # Min-heaps keyed on (-magnitude, member_id): largest first, then lowest id
    debtors = [(b.balance, b.member_id) for b in balances if b.balance < 0]
    creditors = [(-b.balance, b.member_id) for b in balances if b.balance > 0]
    heapq.heapify(debtors)
    heapq.heapify(creditors)

    transfers: list[Transfer] = []
    while debtors and creditors:
        neg_debt, debtor = heapq.heappop(debtors)
        neg_credit, creditor = heapq.heappop(creditors)
        debt, credit = -neg_debt, -neg_credit

        amount = min(debt, credit)
        transfers.append(
            Transfer(from_member_id=debtor, to_member_id=creditor, amount=amount)
        )

        if debt > amount:
            heapq.heappush(debtors, (amount - debt, debtor))
        if credit > amount:
            heapq.heappush(creditors, (amount - credit, creditor))

    logger.debug(
        f"Netted {sum(1 for b in balances if b.balance != 0)} nonzero balances "
        f"into {len(transfers)} transfers"
    )
    return transfers
