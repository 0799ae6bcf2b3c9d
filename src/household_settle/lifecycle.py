"""Settlement lifecycle: DRAFT --finalize--> FINALIZED (terminal).

A DRAFT may be recomputed or deleted. A FINALIZED settlement is immutable;
every action on it is refused with IllegalTransitionError. Transitions
return new Settlement objects and never mutate their argument.
"""

from datetime import datetime

from .engine import compute_fingerprint
from .exceptions import IllegalTransitionError
from .models import Settlement, SettlementComputation, SettlementStatus

# action -> states it is allowed from
ALLOWED_ACTIONS: dict[str, frozenset[SettlementStatus]] = {
    "recompute": frozenset({SettlementStatus.DRAFT}),
    "finalize": frozenset({SettlementStatus.DRAFT}),
    "delete": frozenset({SettlementStatus.DRAFT}),
}


def ensure_allowed(settlement: Settlement, action: str) -> None:
    """Raise IllegalTransitionError unless ``action`` is allowed."""
    if settlement.status not in ALLOWED_ACTIONS[action]:
        raise IllegalTransitionError(
            settlement_id=settlement.id,
            status=settlement.status.value,
            action=action,
        )


def new_draft(computation: SettlementComputation, computed_at: datetime) -> Settlement:
    """Create a DRAFT settlement from a computation."""
    return Settlement(
        household_id=computation.household_id,
        month=computation.month,
        status=SettlementStatus.DRAFT,
        computed_at=computed_at,
        lines=list(computation.transfers),
        summary=computation.summary,
        policy=computation.policy,
        fingerprint=compute_fingerprint(
            computation.household_id, computation.month, computation.transfers
        ),
    )


def recompute(
    settlement: Settlement, computation: SettlementComputation, computed_at: datetime
) -> Settlement:
    """Replace a DRAFT's lines and summary, keeping its identity."""
    ensure_allowed(settlement, "recompute")
    replacement = new_draft(computation, computed_at)
    return replacement.model_copy(update={"id": settlement.id})


def finalize(
    settlement: Settlement, acting_member_id: str, finalized_at: datetime
) -> Settlement:
    """Lock a DRAFT settlement, stamping who finalized it and when."""
    ensure_allowed(settlement, "finalize")
    return settlement.model_copy(
        update={
            "status": SettlementStatus.FINALIZED,
            "finalized_by": acting_member_id,
            "finalized_at": finalized_at,
        }
    )
