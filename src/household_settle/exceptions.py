"""Custom exceptions for household-settle."""

from typing import Any


class HouseholdSettleError(Exception):
    """Base exception for all household-settle errors."""

    pass


class ConfigurationError(HouseholdSettleError):
    """Raised when configuration is invalid or missing."""

    pass


class InvalidInputError(HouseholdSettleError):
    """Raised when caller-supplied data cannot be settled.

    ``member_ids`` lists the offending members, if any, so the caller can
    explain the failure.
    """

    def __init__(self, message: str, member_ids: list[str] | None = None):
        self.member_ids = list(member_ids or [])
        super().__init__(message)


class IllegalTransitionError(HouseholdSettleError):
    """Raised when a settlement action is not allowed in its current status."""

    def __init__(
        self,
        settlement_id: int | None,
        status: str,
        action: str,
        message: str | None = None,
    ):
        self.settlement_id = settlement_id
        self.status = status
        self.action = action
        super().__init__(
            message
            or f"Cannot {action} settlement {settlement_id}: it is {status}"
        )


class SettlementNotFoundError(HouseholdSettleError):
    """Raised when a requested settlement does not exist."""

    pass


class InternalInvariantViolation(HouseholdSettleError):
    """Raised when a computed result breaks a conservation invariant.

    This indicates a logic error, not bad data. ``state`` holds the values
    that were being checked.
    """

    def __init__(self, message: str, state: dict[str, Any] | None = None):
        self.state = dict(state or {})
        super().__init__(message)
