"""SQLite database operations for household-settle."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from .models import (
    EntryKind,
    ExpenseEntry,
    IncomeRecord,
    Member,
    Policy,
    Responsibility,
    Settlement,
    SettlementStatus,
    SettlementSummary,
    Transfer,
    YearMonth,
)


class Database:
    """SQLite database manager.

    Also serves as the settlement engine's data source (``fetch_incomes`` /
    ``fetch_expenses``).
    """

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        # Autocommit mode; multi-statement work goes through transaction()
        self.conn = sqlite3.connect(str(db_path), isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS members (
                household_id TEXT NOT NULL,
                id TEXT NOT NULL,
                name TEXT NOT NULL,
                PRIMARY KEY (household_id, id)
            )
        """
        )

        # One income record per member per month
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS incomes (
                household_id TEXT NOT NULL,
                member_id TEXT NOT NULL,
                year INTEGER NOT NULL,
                month INTEGER NOT NULL,
                allocatable_amount INTEGER NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (household_id, member_id, year, month)
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                household_id TEXT NOT NULL,
                payer_member_id TEXT NOT NULL,
                amount INTEGER NOT NULL,
                responsibility TEXT NOT NULL,
                owing_member_id TEXT,
                kind TEXT NOT NULL DEFAULT 'EXPENSE',
                occurred_on DATE NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                deleted_at TIMESTAMP
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS policies (
                household_id TEXT PRIMARY KEY,
                rounding_mode TEXT NOT NULL,
                zero_income_policy TEXT NOT NULL,
                min_share_percent INTEGER NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        # At most one settlement per household and month
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settlements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                household_id TEXT NOT NULL,
                year INTEGER NOT NULL,
                month INTEGER NOT NULL,
                status TEXT NOT NULL,
                computed_at TIMESTAMP NOT NULL,
                summary TEXT NOT NULL,
                policy TEXT NOT NULL,
                fingerprint TEXT NOT NULL,
                finalized_by TEXT,
                finalized_at TIMESTAMP,
                UNIQUE (household_id, year, month)
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS settlement_lines (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                settlement_id INTEGER NOT NULL REFERENCES settlements(id),
                position INTEGER NOT NULL,
                from_member_id TEXT NOT NULL,
                to_member_id TEXT NOT NULL,
                amount INTEGER NOT NULL,
                description TEXT NOT NULL
            )
        """
        )

        # Finalized settlements are immutable at the storage level too
        cursor.execute(
            """
            CREATE TRIGGER IF NOT EXISTS settlements_finalized_no_update
            BEFORE UPDATE ON settlements
            WHEN OLD.status = 'FINALIZED'
            BEGIN
                SELECT RAISE(ABORT, 'finalized settlement is immutable');
            END
        """
        )
        cursor.execute(
            """
            CREATE TRIGGER IF NOT EXISTS settlements_finalized_no_delete
            BEFORE DELETE ON settlements
            WHEN OLD.status = 'FINALIZED'
            BEGIN
                SELECT RAISE(ABORT, 'finalized settlement cannot be deleted');
            END
        """
        )
        for event, ref in (("INSERT", "NEW"), ("UPDATE", "OLD"), ("DELETE", "OLD")):
            cursor.execute(
                f"""
                CREATE TRIGGER IF NOT EXISTS settlement_lines_finalized_no_{event.lower()}
                BEFORE {event} ON settlement_lines
                WHEN (SELECT status FROM settlements WHERE id = {ref}.settlement_id)
                     = 'FINALIZED'
                BEGIN
                    SELECT RAISE(ABORT, 'lines of a finalized settlement are immutable');
                END
            """
            )

    def close(self):
        """Close database connection."""
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run a block inside one write-locked transaction.

        ``BEGIN IMMEDIATE`` takes the write lock up front, so a
        read-compute-write sequence cannot interleave with another writer.
        Nested calls join the outer transaction.
        """
        if self.conn.in_transaction:
            yield
            return

        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")

    # ========================================================================
    # Member operations
    # ========================================================================

    def save_member(self, member: Member):
        """Insert or rename a member."""
        self.conn.execute(
            """
            INSERT INTO members (household_id, id, name) VALUES (?, ?, ?)
            ON CONFLICT(household_id, id) DO UPDATE SET name = excluded.name
            """,
            (member.household_id, member.id, member.name),
        )

    def get_members(self, household_id: str) -> list[Member]:
        """Get all members of a household, ordered by id."""
        cursor = self.conn.execute(
            "SELECT household_id, id, name FROM members "
            "WHERE household_id = ? ORDER BY id",
            (household_id,),
        )
        return [
            Member(id=row["id"], household_id=row["household_id"], name=row["name"])
            for row in cursor.fetchall()
        ]

    # ========================================================================
    # Income and expense operations
    # ========================================================================

    def save_income(self, household_id: str, income: IncomeRecord):
        """Insert or replace a member's income for a month."""
        self.conn.execute(
            """
            INSERT INTO incomes (
                household_id, member_id, year, month, allocatable_amount, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(household_id, member_id, year, month) DO UPDATE SET
                allocatable_amount = excluded.allocatable_amount,
                updated_at = excluded.updated_at
            """,
            (
                household_id,
                income.member_id,
                income.month.year,
                income.month.month,
                income.allocatable_amount,
                datetime.now().isoformat(),
            ),
        )

    def fetch_incomes(self, household_id: str, month: YearMonth) -> list[IncomeRecord]:
        """Get income records for a household month, ordered by member id."""
        cursor = self.conn.execute(
            """
            SELECT member_id, allocatable_amount FROM incomes
            WHERE household_id = ? AND year = ? AND month = ?
            ORDER BY member_id
            """,
            (household_id, month.year, month.month),
        )
        return [
            IncomeRecord(
                member_id=row["member_id"],
                month=month,
                allocatable_amount=row["allocatable_amount"],
            )
            for row in cursor.fetchall()
        ]

    def save_expense(self, household_id: str, entry: ExpenseEntry) -> int:
        """Save an expense record."""
        cursor = self.conn.execute(
            """
            INSERT INTO expenses (
                household_id, payer_member_id, amount, responsibility,
                owing_member_id, kind, occurred_on, description
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                household_id,
                entry.payer_member_id,
                entry.amount,
                entry.responsibility.value,
                entry.owing_member_id,
                entry.kind.value,
                entry.occurred_on.isoformat(),
                entry.description,
            ),
        )
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Failed to insert expense record")
        return row_id

    def delete_expense(self, expense_id: int) -> bool:
        """Soft-delete an expense. Returns False if it did not exist."""
        cursor = self.conn.execute(
            "UPDATE expenses SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
            (datetime.now().isoformat(), expense_id),
        )
        return cursor.rowcount == 1

    def fetch_expenses(self, household_id: str, month: YearMonth) -> list[ExpenseEntry]:
        """Get live transactions that occurred within a household month."""
        cursor = self.conn.execute(
            """
            SELECT id, payer_member_id, amount, responsibility, owing_member_id,
                   kind, occurred_on, description
            FROM expenses
            WHERE household_id = ?
              AND occurred_on >= ? AND occurred_on < ?
              AND deleted_at IS NULL
            ORDER BY id
            """,
            (
                household_id,
                month.first_day().isoformat(),
                month.next_month().first_day().isoformat(),
            ),
        )
        return [
            ExpenseEntry(
                id=row["id"],
                payer_member_id=row["payer_member_id"],
                amount=row["amount"],
                responsibility=Responsibility(row["responsibility"]),
                owing_member_id=row["owing_member_id"],
                kind=EntryKind(row["kind"]),
                occurred_on=date.fromisoformat(row["occurred_on"]),
                description=row["description"],
            )
            for row in cursor.fetchall()
        ]

    # ========================================================================
    # Policy operations
    # ========================================================================

    def get_policy(self, household_id: str) -> Policy | None:
        """Get a household's stored policy, if any."""
        cursor = self.conn.execute(
            """
            SELECT rounding_mode, zero_income_policy, min_share_percent
            FROM policies WHERE household_id = ?
            """,
            (household_id,),
        )
        row = cursor.fetchone()
        if not row:
            return None

        return Policy(
            rounding_mode=row["rounding_mode"],
            zero_income_policy=row["zero_income_policy"],
            min_share_percent=row["min_share_percent"],
        )

    def save_policy(self, household_id: str, policy: Policy):
        """Set a household's policy."""
        self.conn.execute(
            """
            INSERT INTO policies (
                household_id, rounding_mode, zero_income_policy,
                min_share_percent, updated_at
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(household_id) DO UPDATE SET
                rounding_mode = excluded.rounding_mode,
                zero_income_policy = excluded.zero_income_policy,
                min_share_percent = excluded.min_share_percent,
                updated_at = excluded.updated_at
            """,
            (
                household_id,
                policy.rounding_mode.value,
                policy.zero_income_policy.value,
                policy.min_share_percent,
                datetime.now().isoformat(),
            ),
        )

    # ========================================================================
    # Settlement operations
    # ========================================================================

    def save_settlement(self, settlement: Settlement) -> Settlement:
        """
        Insert a new settlement or overwrite an existing DRAFT, replacing its lines.

        Returns:
            The settlement with its id set
        """
        values = (
            settlement.status.value,
            settlement.computed_at.isoformat(),
            settlement.summary.model_dump_json(),
            settlement.policy.model_dump_json(),
            settlement.fingerprint,
            settlement.finalized_by,
            settlement.finalized_at.isoformat() if settlement.finalized_at else None,
        )

        with self.transaction():
            if settlement.id is None:
                cursor = self.conn.execute(
                    """
                    INSERT INTO settlements (
                        household_id, year, month, status, computed_at, summary,
                        policy, fingerprint, finalized_by, finalized_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (settlement.household_id, settlement.month.year, settlement.month.month)
                    + values,
                )
                settlement_id = cursor.lastrowid
                if settlement_id is None:
                    raise RuntimeError("Failed to insert settlement record")
            else:
                settlement_id = settlement.id
                self.conn.execute(
                    """
                    UPDATE settlements SET
                        status = ?, computed_at = ?, summary = ?, policy = ?,
                        fingerprint = ?, finalized_by = ?, finalized_at = ?
                    WHERE id = ?
                    """,
                    values + (settlement_id,),
                )
                self.conn.execute(
                    "DELETE FROM settlement_lines WHERE settlement_id = ?",
                    (settlement_id,),
                )

            self.conn.executemany(
                """
                INSERT INTO settlement_lines (
                    settlement_id, position, from_member_id, to_member_id,
                    amount, description
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        settlement_id,
                        position,
                        line.from_member_id,
                        line.to_member_id,
                        line.amount,
                        line.description,
                    )
                    for position, line in enumerate(settlement.lines)
                ],
            )

        return settlement.model_copy(update={"id": settlement_id})

    def mark_finalized(
        self, settlement_id: int, finalized_by: str, finalized_at: datetime
    ) -> bool:
        """
        Compare-and-set a settlement from DRAFT to FINALIZED.

        Returns:
            True if this call performed the transition, False if the
            settlement was not a DRAFT (or does not exist)
        """
        cursor = self.conn.execute(
            """
            UPDATE settlements
            SET status = 'FINALIZED', finalized_by = ?, finalized_at = ?
            WHERE id = ? AND status = 'DRAFT'
            """,
            (finalized_by, finalized_at.isoformat(), settlement_id),
        )
        return cursor.rowcount == 1

    def delete_settlement(self, settlement_id: int) -> bool:
        """Delete a DRAFT settlement and its lines."""
        with self.transaction():
            self.conn.execute(
                "DELETE FROM settlement_lines WHERE settlement_id = ?",
                (settlement_id,),
            )
            cursor = self.conn.execute(
                "DELETE FROM settlements WHERE id = ?", (settlement_id,)
            )
        return cursor.rowcount == 1

    def get_settlement(self, settlement_id: int) -> Settlement | None:
        """Get a settlement by id."""
        cursor = self.conn.execute(
            "SELECT * FROM settlements WHERE id = ?", (settlement_id,)
        )
        row = cursor.fetchone()
        return self._settlement_from_row(row) if row else None

    def get_settlement_by_month(
        self, household_id: str, month: YearMonth
    ) -> Settlement | None:
        """Get the settlement for a household month, if any."""
        cursor = self.conn.execute(
            """
            SELECT * FROM settlements
            WHERE household_id = ? AND year = ? AND month = ?
            """,
            (household_id, month.year, month.month),
        )
        row = cursor.fetchone()
        return self._settlement_from_row(row) if row else None

    def list_settlements(self, household_id: str) -> list[Settlement]:
        """Get all settlements for a household, newest month first."""
        cursor = self.conn.execute(
            """
            SELECT * FROM settlements
            WHERE household_id = ?
            ORDER BY year DESC, month DESC
            """,
            (household_id,),
        )
        return [self._settlement_from_row(row) for row in cursor.fetchall()]

    def _get_lines(self, settlement_id: int) -> list[Transfer]:
        cursor = self.conn.execute(
            """
            SELECT from_member_id, to_member_id, amount, description
            FROM settlement_lines
            WHERE settlement_id = ?
            ORDER BY position
            """,
            (settlement_id,),
        )
        return [
            Transfer(
                from_member_id=row["from_member_id"],
                to_member_id=row["to_member_id"],
                amount=row["amount"],
                description=row["description"],
            )
            for row in cursor.fetchall()
        ]

    def _settlement_from_row(self, row: sqlite3.Row) -> Settlement:
        return Settlement(
            id=row["id"],
            household_id=row["household_id"],
            month=YearMonth(year=row["year"], month=row["month"]),
            status=SettlementStatus(row["status"]),
            computed_at=datetime.fromisoformat(row["computed_at"]),
            lines=self._get_lines(row["id"]),
            summary=SettlementSummary.model_validate_json(row["summary"]),
            policy=Policy.model_validate_json(row["policy"]),
            fingerprint=row["fingerprint"],
            finalized_by=row["finalized_by"],
            finalized_at=(
                datetime.fromisoformat(row["finalized_at"])
                if row["finalized_at"]
                else None
            ),
        )
