"""Service layer that runs settlements against the database.

Wraps the pure engine and lifecycle functions with persistence: every
read-compute-write sequence runs inside a single write-locked transaction,
and finalization is a compare-and-set on DRAFT.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from . import lifecycle
from .config import Settings
from .db import Database
from .engine import SettlementEngine
from .exceptions import (
    IllegalTransitionError,
    InvalidInputError,
    SettlementNotFoundError,
)
from .models import Policy, Settlement, SettlementComputation, YearMonth

logger = logging.getLogger(__name__)


class SettlementService:
    """Service for computing, finalizing and querying monthly settlements."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the settlement service."""
        self.settings = settings
        self.db = database
        self.engine = SettlementEngine(database)
        self.clock = clock

    def resolve_policy(self, household_id: str, policy: Policy | None = None) -> Policy:
        """Explicit policy, else the household's stored policy, else the default."""
        if policy is not None:
            return policy
        return self.db.get_policy(household_id) or self.settings.default_policy()

    def preview_settlement(
        self, household_id: str, month: YearMonth, policy: Policy | None = None
    ) -> SettlementComputation:
        """
        Compute a settlement without persisting anything.

        Returns:
            The full computation, including shares and balances
        """
        return self.engine.compute(
            household_id, month, self.resolve_policy(household_id, policy)
        )

    def compute_settlement(
        self, household_id: str, month: YearMonth, policy: Policy | None = None
    ) -> Settlement:
        """
        Compute (or recompute) the DRAFT settlement for a household month.

        Args:
            household_id: Household to settle
            month: Month to settle
            policy: Optional policy override

        Returns:
            The persisted DRAFT settlement

        Raises:
            IllegalTransitionError: If the month is already FINALIZED
            InvalidInputError: If the month's data cannot be settled
        """
        with self.db.transaction():
            existing = self.db.get_settlement_by_month(household_id, month)
            if existing:
                lifecycle.ensure_allowed(existing, "recompute")

            computation = self.engine.compute(
                household_id, month, self.resolve_policy(household_id, policy)
            )
            computed_at = self.clock()

            if existing:
                settlement = lifecycle.recompute(existing, computation, computed_at)
                if settlement.fingerprint == existing.fingerprint:
                    logger.info(f"Recomputed settlement {existing.id}: lines unchanged")
                else:
                    logger.info(f"Recomputed settlement {existing.id}: lines replaced")
            else:
                settlement = lifecycle.new_draft(computation, computed_at)

            saved = self.db.save_settlement(settlement)

        logger.info(
            f"Saved DRAFT settlement {saved.id} for {household_id} {month} "
            f"({len(saved.lines)} lines, hash: {saved.fingerprint[:8]}...)"
        )
        return saved

    def finalize_settlement(self, settlement_id: int, acting_member_id: str) -> Settlement:
        """
        Finalize a DRAFT settlement.

        Raises:
            SettlementNotFoundError: If the settlement does not exist
            InvalidInputError: If the acting member is not in the household
            IllegalTransitionError: If the settlement is already FINALIZED
        """
        with self.db.transaction():
            settlement = self.get_settlement(settlement_id)

            members = self.db.get_members(settlement.household_id)
            if members and acting_member_id not in {m.id for m in members}:
                raise InvalidInputError(
                    f"Member {acting_member_id} does not belong to household "
                    f"{settlement.household_id}",
                    member_ids=[acting_member_id],
                )

            finalized_at = self.clock()
            finalized = lifecycle.finalize(settlement, acting_member_id, finalized_at)

            if not self.db.mark_finalized(settlement_id, acting_member_id, finalized_at):
                raise IllegalTransitionError(
                    settlement_id=settlement_id,
                    status=settlement.status.value,
                    action="finalize",
                    message=f"Settlement {settlement_id} was finalized concurrently",
                )

        logger.info(f"Finalized settlement {settlement_id} by {acting_member_id}")
        return finalized

    def delete_settlement(self, settlement_id: int) -> None:
        """
        Delete a DRAFT settlement.

        Raises:
            SettlementNotFoundError: If the settlement does not exist
            IllegalTransitionError: If the settlement is FINALIZED
        """
        with self.db.transaction():
            settlement = self.get_settlement(settlement_id)
            lifecycle.ensure_allowed(settlement, "delete")
            self.db.delete_settlement(settlement_id)

        logger.info(f"Deleted DRAFT settlement {settlement_id}")

    def get_settlement(self, settlement_id: int) -> Settlement:
        """Get a settlement by id, raising if it does not exist."""
        settlement = self.db.get_settlement(settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(f"Settlement {settlement_id} not found")
        return settlement

    def find_by_month(self, household_id: str, month: YearMonth) -> Settlement | None:
        """Get the settlement for a household month, if one exists."""
        return self.db.get_settlement_by_month(household_id, month)

    def list_settlements(self, household_id: str) -> list[Settlement]:
        """All settlements for a household, newest month first."""
        return self.db.list_settlements(household_id)
