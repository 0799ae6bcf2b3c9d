"""Pydantic domain models for household-settle."""

import re
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Enums
# ============================================================================


class RoundingMode(str, Enum):
    """How ideal (fractional) shares are turned into integers."""

    ROUND = "ROUND"  # nearest, ties away from zero
    FLOOR = "FLOOR"
    CEILING = "CEILING"
    BANKERS = "BANKERS"  # round-half-to-even


class ZeroIncomePolicy(str, Enum):
    """What happens to members with no allocatable income."""

    EXCLUDE = "EXCLUDE"
    MIN_SHARE = "MIN_SHARE"


class Responsibility(str, Enum):
    """Who is responsible for an expense."""

    HOUSEHOLD = "HOUSEHOLD"
    PERSONAL = "PERSONAL"


class EntryKind(str, Enum):
    """Transaction kind. Only expenses take part in settlement."""

    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class SettlementStatus(str, Enum):
    """Settlement lifecycle states."""

    DRAFT = "DRAFT"
    FINALIZED = "FINALIZED"


# ============================================================================
# Household Models
# ============================================================================

_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")


class YearMonth(BaseModel):
    """A calendar month, e.g. 2025-03."""

    model_config = ConfigDict(frozen=True)

    year: int
    month: int = Field(ge=1, le=12)

    @classmethod
    def parse(cls, value: str) -> "YearMonth":
        """Parse a ``YYYY-MM`` string."""
        match = _YEAR_MONTH_RE.match(value.strip())
        if not match:
            raise ValueError(f"Invalid month {value!r}, expected YYYY-MM")
        return cls(year=int(match.group(1)), month=int(match.group(2)))

    @classmethod
    def of(cls, day: date) -> "YearMonth":
        """Month containing the given date."""
        return cls(year=day.year, month=day.month)

    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def next_month(self) -> "YearMonth":
        if self.month == 12:
            return YearMonth(year=self.year + 1, month=1)
        return YearMonth(year=self.year, month=self.month + 1)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


class Member(BaseModel):
    """A household participant."""

    id: str
    household_id: str
    name: str


class IncomeRecord(BaseModel):
    """A member's allocatable income for one month (minor units)."""

    member_id: str
    month: YearMonth
    allocatable_amount: int


class ExpenseEntry(BaseModel):
    """A recorded transaction for a household.

    HOUSEHOLD expenses are apportioned across all members. PERSONAL expenses
    are attributed entirely to ``owing_member_id`` regardless of who paid.
    """

    id: int | None = None
    payer_member_id: str
    amount: int  # positive, minor units
    responsibility: Responsibility = Responsibility.HOUSEHOLD
    owing_member_id: str | None = None
    kind: EntryKind = EntryKind.EXPENSE
    occurred_on: date
    description: str = ""


class Policy(BaseModel):
    """Household apportionment policy."""

    rounding_mode: RoundingMode = RoundingMode.ROUND
    zero_income_policy: ZeroIncomePolicy = ZeroIncomePolicy.EXCLUDE
    min_share_percent: int = 0  # only used with MIN_SHARE


# ============================================================================
# Computation Models
# ============================================================================


class MemberShare(BaseModel):
    """A member's portion of the apportioned household total."""

    member_id: str
    share_amount: int


class NetBalance(BaseModel):
    """Signed net position: positive = is owed money, negative = owes."""

    member_id: str
    balance: int


class Transfer(BaseModel):
    """A single money transfer between two members."""

    from_member_id: str
    to_member_id: str
    amount: int
    description: str = "Settlement transfer"


class SettlementSummary(BaseModel):
    """Headline figures for a settlement."""

    total_household_expense: int = 0
    total_personal_expense: int = 0
    participant_count: int = 0
    transfer_count: int = 0


class SettlementComputation(BaseModel):
    """Transient output of one engine run.

    Only ``transfers`` and ``summary`` are persisted (as a Settlement); the
    shares and balances are kept for display and diagnosis.
    """

    household_id: str
    month: YearMonth
    policy: Policy
    shares: list[MemberShare]
    balances: list[NetBalance]
    transfers: list[Transfer]
    summary: SettlementSummary


class Settlement(BaseModel):
    """The persisted settlement for one household and one month.

    fingerprint: SHA256 of (household, month, transfers). Recomputing with
    unchanged inputs yields the same fingerprint.
    """

    id: int | None = None
    household_id: str
    month: YearMonth
    status: SettlementStatus = SettlementStatus.DRAFT
    computed_at: datetime = Field(default_factory=datetime.now)
    lines: list[Transfer] = Field(default_factory=list)
    summary: SettlementSummary = Field(default_factory=SettlementSummary)
    policy: Policy = Field(default_factory=Policy)
    fingerprint: str = ""
    finalized_by: str | None = None
    finalized_at: datetime | None = None

    @property
    def is_finalized(self) -> bool:
        return self.status == SettlementStatus.FINALIZED
