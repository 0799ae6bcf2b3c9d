"""Tests for the MCP tool functions."""

from datetime import date

import pytest

from household_settle import mcp_server
from household_settle.config import Settings
from household_settle.db import Database
from household_settle.models import ExpenseEntry, IncomeRecord, Member, YearMonth
from household_settle.service import SettlementService

MARCH = YearMonth(year=2025, month=3)


@pytest.fixture
def state(tmp_path, monkeypatch):
    """Install a session backed by a temporary database."""
    settings = Settings(database_path=tmp_path / "mcp.db", household_id="home")
    db = Database(settings.database_path)
    for member_id, name in (("A", "Alice"), ("B", "Bob")):
        db.save_member(Member(id=member_id, household_id="home", name=name))
    db.save_income("home", IncomeRecord(member_id="A", month=MARCH, allocatable_amount=300000))
    db.save_income("home", IncomeRecord(member_id="B", month=MARCH, allocatable_amount=200000))
    db.save_expense(
        "home",
        ExpenseEntry(payer_member_id="A", amount=50000, occurred_on=date(2025, 3, 2)),
    )

    session = mcp_server.SessionState(service=SettlementService(settings, db), db=db)
    monkeypatch.setattr(mcp_server, "_state", session)
    yield session
    db.close()


class TestTools:
    def test_list_empty(self, state):
        assert mcp_server.list_settlements() == "No settlements found for home."

    def test_run_and_list(self, state):
        output = mcp_server.run_settlement("2025-03")

        assert "Settlement 1 | home 2025-03 | DRAFT" in output
        assert "  B -> A: 20,000" in output
        assert "Transfers: 1" in output
        assert "[1] 2025-03 | DRAFT | 1 transfers" in mcp_server.list_settlements()

    def test_show(self, state):
        mcp_server.run_settlement("2025-03")

        assert "B -> A" in mcp_server.show_settlement(1)

    def test_finalize_locks_month(self, state):
        mcp_server.run_settlement("2025-03")

        output = mcp_server.finalize_settlement(1, "B")

        assert "FINALIZED" in output
        assert "by B" in output
        assert mcp_server.run_settlement("2025-03").startswith("Error: Cannot recompute")

    def test_no_transfers_needed(self, state):
        state.db.save_expense(
            "home",
            ExpenseEntry(payer_member_id="B", amount=40000, occurred_on=date(2025, 3, 3)),
        )
        state.db.save_expense(
            "home",
            ExpenseEntry(payer_member_id="A", amount=10000, occurred_on=date(2025, 3, 4)),
        )

        assert "No transfers needed." in mcp_server.run_settlement("2025-03")


class TestErrors:
    def test_bad_month(self, state):
        assert mcp_server.run_settlement("2025/03").startswith("Error: Invalid month")

    def test_missing_settlement(self, state):
        assert mcp_server.show_settlement(99) == "Error: Settlement 99 not found"

    def test_unknown_member(self, state):
        mcp_server.run_settlement("2025-03")

        assert "does not belong" in mcp_server.finalize_settlement(1, "Z")

    def test_workflow_prompt(self):
        assert "finalize_settlement" in mcp_server.settlement_workflow()
