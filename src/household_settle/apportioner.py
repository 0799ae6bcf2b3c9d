"""Income-proportional apportionment of a household expense total.

Each member's ideal share is ``total * income / total_income``. Ideal shares
are rounded according to the policy's rounding mode, then the residual
(``total - sum(rounded)``) is handed out one unit at a time so that shares
always sum to the total exactly.

All arithmetic is on integers: an ideal share is kept as a quotient and a
remainder over the common denominator, so fractional parts compare exactly.
"""

import logging

from .exceptions import InternalInvariantViolation, InvalidInputError
from .models import MemberShare, Policy, RoundingMode, ZeroIncomePolicy

logger = logging.getLogger(__name__)


def validate_policy(policy: Policy) -> None:
    """Reject policies with out-of-range settings."""
    if not 0 <= policy.min_share_percent <= 100:
        raise InvalidInputError(
            f"min_share_percent must be between 0 and 100, "
            f"got {policy.min_share_percent}"
        )


def validate_incomes(incomes: list[tuple[str, int]]) -> None:
    """Reject empty, duplicated or negative income lists."""
    if not incomes:
        raise InvalidInputError("Cannot apportion without any income records")

    seen: set[str] = set()
    duplicates = []
    negatives = []
    for member_id, amount in incomes:
        if member_id in seen:
            duplicates.append(member_id)
        seen.add(member_id)
        if amount < 0:
            negatives.append(member_id)

    if duplicates:
        raise InvalidInputError(
            f"Duplicate income records for members: {', '.join(sorted(duplicates))}",
            member_ids=sorted(duplicates),
        )
    if negatives:
        raise InvalidInputError(
            f"Negative allocatable income for members: {', '.join(sorted(negatives))}",
            member_ids=sorted(negatives),
        )


def round_quotient(quotient: int, remainder: int, denominator: int, mode: RoundingMode) -> int:
    """
    Round the non-negative value ``quotient + remainder / denominator``.

    Args:
        quotient: Integer part
        remainder: Fractional numerator, ``0 <= remainder < denominator``
        denominator: Fractional denominator (positive)
        mode: Rounding mode

    Returns:
        Rounded integer
    """
    if remainder == 0:
        return quotient

    if mode == RoundingMode.FLOOR:
        return quotient
    elif mode == RoundingMode.CEILING:
        return quotient + 1
    elif mode == RoundingMode.ROUND:
        return quotient + 1 if 2 * remainder >= denominator else quotient
    elif mode == RoundingMode.BANKERS:
        if 2 * remainder > denominator:
            return quotient + 1
        if 2 * remainder == denominator:
            return quotient + (quotient % 2)
        return quotient
    else:
        raise InvalidInputError(f"Unknown rounding mode: {mode}")


def split_proportionally(
    total: int, weights: list[tuple[str, int]], mode: RoundingMode
) -> dict[str, int]:
    """
    Split ``total`` across members in proportion to integer weights.

    Steps:
    1. Round each ideal share according to ``mode``
    2. Compute residual = total - sum of rounded shares
    3. Positive residual: +1 to members rounded below their ideal share,
       largest fractional remainder first
    4. Negative residual: -1 from members rounded above their ideal share,
       smallest fractional remainder first
    Ties are broken by ascending member id.

    Args:
        total: Amount to split (non-negative)
        weights: (member_id, weight) pairs sorted by member id; weights sum > 0
        mode: Rounding mode for the initial pass

    Returns:
        Dict mapping member_id to share
    """
    denominator = sum(weight for _, weight in weights)

    shares: dict[str, int] = {}
    floors: dict[str, int] = {}
    remainders: dict[str, int] = {}
    for member_id, weight in weights:
        quotient, remainder = divmod(total * weight, denominator)
        shares[member_id] = round_quotient(quotient, remainder, denominator, mode)
        floors[member_id] = quotient
        remainders[member_id] = remainder

    residual = total - sum(shares.values())

    if residual > 0:
        # Rounded down: share is the floor of a non-integer ideal share
        below = [
            m for m in shares if remainders[m] > 0 and shares[m] == floors[m]
        ]
        below.sort(key=lambda m: (-remainders[m], m))
        for member_id in below[:residual]:
            shares[member_id] += 1
    elif residual < 0:
        above = [m for m in shares if remainders[m] > 0 and shares[m] > floors[m]]
        above.sort(key=lambda m: (remainders[m], m))
        for member_id in above[:-residual]:
            shares[member_id] -= 1

    if residual != 0:
        logger.debug(f"Distributed rounding residual of {residual} across members")

    return shares


def apportion(
    total_amount: int,
    incomes: list[tuple[str, int]],
    policy: Policy,
) -> list[MemberShare]:
    """
    Apportion a household expense total across members by income.

    Args:
        total_amount: Total to apportion (non-negative, minor units)
        incomes: (member_id, allocatable_amount) pairs
        policy: Rounding and zero-income policy

    Returns:
        One MemberShare per member, sorted by member id, summing to total_amount

    Raises:
        InvalidInputError: On empty/negative/duplicate incomes, negative total,
            bad policy, or no proportional base under EXCLUDE
        InternalInvariantViolation: If shares fail to sum to the total
    """
    validate_policy(policy)
    validate_incomes(incomes)
    if total_amount < 0:
        raise InvalidInputError(f"Total amount must be non-negative, got {total_amount}")

    ordered = sorted(incomes)
    shares = {member_id: 0 for member_id, _ in ordered}

    if total_amount == 0:
        return [MemberShare(member_id=m, share_amount=0) for m in shares]

    zero_income = [member_id for member_id, amount in ordered if amount == 0]
    earning = [(member_id, amount) for member_id, amount in ordered if amount > 0]

    if policy.zero_income_policy == ZeroIncomePolicy.EXCLUDE:
        if not earning:
            raise InvalidInputError(
                "All members have zero allocatable income; "
                "no proportional base exists under EXCLUDE policy",
                member_ids=zero_income,
            )
        shares.update(split_proportionally(total_amount, earning, policy.rounding_mode))

    elif policy.zero_income_policy == ZeroIncomePolicy.MIN_SHARE:
        minimum = policy.min_share_percent * total_amount // 100
        reserved = minimum * len(zero_income)
        if reserved > total_amount:
            raise InvalidInputError(
                f"Minimum shares ({reserved}) exceed the total amount ({total_amount})",
                member_ids=zero_income,
            )
        for member_id in zero_income:
            shares[member_id] = minimum

        remaining = total_amount - reserved
        # No income anywhere: everyone weighs the same
        weights = earning or [(member_id, 1) for member_id, _ in ordered]
        proportional = split_proportionally(remaining, weights, policy.rounding_mode)
        for member_id, amount in proportional.items():
            shares[member_id] += amount

    else:
        raise InvalidInputError(
            f"Unknown zero income policy: {policy.zero_income_policy}"
        )

    result = [MemberShare(member_id=m, share_amount=a) for m, a in shares.items()]

    apportioned = sum(share.share_amount for share in result)
    if apportioned != total_amount or any(s.share_amount < 0 for s in result):
        state = {
            "total_amount": total_amount,
            "incomes": ordered,
            "policy": policy.model_dump(mode="json"),
            "shares": shares,
        }
        logger.error(f"Apportionment invariant violated: {state}")
        raise InternalInvariantViolation(
            f"Apportioned shares sum to {apportioned}, expected {total_amount}",
            state=state,
        )

    return result
