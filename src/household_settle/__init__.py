"""household-settle - Monthly income-proportional expense settlement for households."""

__version__ = "0.1.0"

from .apportioner import apportion
from .balances import aggregate
from .config import Settings, load_settings
from .db import Database
from .engine import SettlementEngine, compute_settlement
from .models import (
    ExpenseEntry,
    IncomeRecord,
    MemberShare,
    NetBalance,
    Policy,
    Settlement,
    SettlementStatus,
    Transfer,
    YearMonth,
)
from .netting import net
from .service import SettlementService

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "apportion",
    "aggregate",
    "net",
    "compute_settlement",
    "SettlementEngine",
    "SettlementService",
    "ExpenseEntry",
    "IncomeRecord",
    "MemberShare",
    "NetBalance",
    "Policy",
    "Settlement",
    "SettlementStatus",
    "Transfer",
    "YearMonth",
]
