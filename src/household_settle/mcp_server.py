"""MCP server for household-settle: exposes the settlement workflow as tools."""

import logging
from dataclasses import dataclass

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .db import Database
from .exceptions import HouseholdSettleError, InternalInvariantViolation
from .models import Settlement, YearMonth
from .service import SettlementService

logger = logging.getLogger(__name__)

mcp_app = FastMCP("household-settle")

# ---------------------------------------------------------------------------
# Session state: one MCP server process = one conversation
# ---------------------------------------------------------------------------

WORKFLOW_INSTRUCTIONS = """\
You are managing monthly household settlements. Follow this workflow:

1. DISCOVER: Call list_settlements to see existing settlements.

2. RUN: Call run_settlement with a month (YYYY-MM). This computes the
   transfers and saves them as a DRAFT. Running again replaces the DRAFT.
   Show the user the transfers and the summary.

3. FINALIZE: Only when the user explicitly confirms, call
   finalize_settlement with the settlement id and the member acting.
   A finalized settlement can never be recomputed or deleted.

Amounts are integer minor units. Each transfer reads "from -> to".\
"""


@dataclass
class SessionState:
    """Holds state between MCP tool calls within a single conversation."""

    service: SettlementService | None = None
    db: Database | None = None


_state = SessionState()


def _ensure_service() -> SettlementService:
    """Lazily initialize the SettlementService (loads .env config)."""
    if _state.service is None:
        settings = load_settings()
        _state.db = Database(settings.database_path)
        _state.service = SettlementService(settings, _state.db)
    return _state.service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_settlement(settlement: Settlement) -> str:
    """Render a settlement as plain text."""
    lines = [
        f"Settlement {settlement.id} | {settlement.household_id} {settlement.month} "
        f"| {settlement.status.value}"
    ]
    if settlement.finalized_at:
        lines.append(
            f"Finalized {settlement.finalized_at:%Y-%m-%d %H:%M} by {settlement.finalized_by}"
        )
    if not settlement.lines:
        lines.append("No transfers needed.")
    for line in settlement.lines:
        lines.append(f"  {line.from_member_id} -> {line.to_member_id}: {line.amount:,}")

    summary = settlement.summary
    lines.append(
        f"Household expenses: {summary.total_household_expense:,} | "
        f"Personal expenses: {summary.total_personal_expense:,} | "
        f"Participants: {summary.participant_count} | "
        f"Transfers: {summary.transfer_count}"
    )
    return "\n".join(lines)


def _error(action: str, e: Exception) -> str:
    if isinstance(e, InternalInvariantViolation):
        return f"Failed to {action}: internal error (details logged)."
    if isinstance(e, HouseholdSettleError | ValueError):
        return f"Error: {e}"
    logger.exception(f"Unexpected failure during {action}")
    return f"Failed to {action}: {e}"


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def list_settlements(household_id: str | None = None) -> str:
    """List settlements for a household, newest month first.

    Args:
        household_id: Household id. Defaults to the configured household.
    """
    try:
        service = _ensure_service()
        household = household_id or service.settings.household_id
        settlements = service.list_settlements(household)

        if not settlements:
            return f"No settlements found for {household}."

        lines = ["Settlements:"]
        for s in settlements:
            lines.append(
                f"[{s.id}] {s.month} | {s.status.value} | "
                f"{s.summary.transfer_count} transfers"
            )
        return "\n".join(lines)
    except Exception as e:
        return _error("list settlements", e)


@mcp_app.tool()
def run_settlement(month: str, household_id: str | None = None) -> str:
    """Compute the settlement for a month and save it as a DRAFT.

    Args:
        month: Month to settle, formatted YYYY-MM.
        household_id: Household id. Defaults to the configured household.
    """
    try:
        service = _ensure_service()
        household = household_id or service.settings.household_id
        settlement = service.compute_settlement(household, YearMonth.parse(month))
        return _format_settlement(settlement)
    except Exception as e:
        return _error("run settlement", e)


@mcp_app.tool()
def show_settlement(settlement_id: int) -> str:
    """Show a settlement and its transfers.

    Args:
        settlement_id: Settlement id from list_settlements.
    """
    try:
        service = _ensure_service()
        return _format_settlement(service.get_settlement(settlement_id))
    except Exception as e:
        return _error("show settlement", e)


@mcp_app.tool()
def finalize_settlement(settlement_id: int, acting_member_id: str) -> str:
    """Finalize a DRAFT settlement. Irreversible; confirm with the user first.

    Args:
        settlement_id: Settlement id from list_settlements.
        acting_member_id: Member performing the finalization.
    """
    try:
        service = _ensure_service()
        settlement = service.finalize_settlement(settlement_id, acting_member_id)
        return _format_settlement(settlement)
    except Exception as e:
        return _error("finalize settlement", e)


@mcp_app.prompt()
def settlement_workflow() -> str:
    """Instructions for running a monthly settlement."""
    return WORKFLOW_INSTRUCTIONS


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")
