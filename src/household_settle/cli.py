"""CLI for household-settle using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .db import Database
from .exceptions import HouseholdSettleError, InternalInvariantViolation
from .models import (
    EntryKind,
    ExpenseEntry,
    IncomeRecord,
    Member,
    Policy,
    Responsibility,
    RoundingMode,
    Settlement,
    SettlementComputation,
    YearMonth,
    ZeroIncomePolicy,
)
from .service import SettlementService
from .ui import confirm_finalize, select_member_interactive

app = typer.Typer(
    name="household-settle",
    help="Monthly income-proportional expense settlement for households",
)

console = Console()

HouseholdOption = typer.Option(
    None, "--household", "-H", help="Household id (defaults to SETTLE_HOUSEHOLD_ID)"
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Verbose output")


def setup_logging(verbose: bool = False, level: str = "INFO"):
    """Setup logging configuration."""
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool) -> Iterator[SettlementService]:
    """Load settings, open the database and report errors consistently."""
    db = None
    try:
        settings = load_settings()
        setup_logging(verbose, settings.log_level)
        db = Database(settings.database_path)
        yield SettlementService(settings, db)
    except InternalInvariantViolation:
        # Full state has already been logged where the violation was detected
        console.print(
            "\n[bold red]Error:[/bold red] the settlement could not be computed "
            "because of an internal error. Details were written to the log."
        )
        if verbose:
            raise
        sys.exit(1)
    except (HouseholdSettleError, ValueError) as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def format_amount(amount: int, use_color: bool = True) -> str:
    """
    Format minor units in accounting style.

    Negative amounts use parentheses: (1,500)
    Positive amounts have spaces:      1,500
    """
    if amount < 0:
        if use_color:
            return f"([red]{abs(amount):,}[/red])"
        return f"({abs(amount):,})"
    if use_color:
        return f" [green]{amount:,}[/green] "
    return f" {amount:,} "


def _names(service: SettlementService, household_id: str) -> dict[str, str]:
    return {m.id: m.name for m in service.db.get_members(household_id)}


def display_settlement(settlement: Settlement, names: dict[str, str]):
    """Display a settlement and its transfer lines."""
    status_style = "green" if settlement.is_finalized else "yellow"
    console.print(
        f"\n[bold]Settlement {settlement.id}[/bold] "
        f"({settlement.household_id} {settlement.month}) "
        f"[{status_style}]{settlement.status.value}[/{status_style}]"
    )
    console.print(f"  Computed: {settlement.computed_at:%Y-%m-%d %H:%M}")
    console.print(
        f"  Policy: {settlement.policy.rounding_mode.value} / "
        f"{settlement.policy.zero_income_policy.value}"
        + (
            f" ({settlement.policy.min_share_percent}%)"
            if settlement.policy.zero_income_policy == ZeroIncomePolicy.MIN_SHARE
            else ""
        )
    )
    if settlement.finalized_at:
        console.print(
            f"  Finalized: {settlement.finalized_at:%Y-%m-%d %H:%M} "
            f"by {settlement.finalized_by}"
        )
    console.print()

    table = Table(title="Transfers", show_header=True, header_style="bold magenta")
    table.add_column("From", style="cyan")
    table.add_column("To", style="cyan")
    table.add_column("Amount", justify="right", width=14)

    for line in settlement.lines:
        table.add_row(
            names.get(line.from_member_id, line.from_member_id),
            names.get(line.to_member_id, line.to_member_id),
            format_amount(line.amount),
        )

    console.print(table)

    summary = settlement.summary
    console.print()
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Household expenses: {format_amount(summary.total_household_expense)}")
    console.print(f"  Personal expenses:  {format_amount(summary.total_personal_expense)}")
    console.print(f"  Participants: {summary.participant_count}")
    console.print(f"  Transfers: {summary.transfer_count}")


def display_computation(computation: SettlementComputation, names: dict[str, str]):
    """Display per-member shares and balances of a computation."""
    shares = {s.member_id: s.share_amount for s in computation.shares}

    table = Table(title="Members", show_header=True, header_style="bold magenta")
    table.add_column("Member", style="cyan")
    table.add_column("Household share", justify="right", width=16)
    table.add_column("Net balance", justify="right", width=16)

    for balance in computation.balances:
        table.add_row(
            names.get(balance.member_id, balance.member_id),
            format_amount(shares.get(balance.member_id, 0)),
            format_amount(balance.balance),
        )

    console.print(table)

    # Verification
    if sum(shares.values()) == computation.summary.total_household_expense:
        console.print("  [green]✓ Shares match household total (no rounding leakage)[/green]")


@app.command("add-member")
def add_member(
    member_id: str = typer.Argument(..., help="Stable member id"),
    name: str = typer.Argument(..., help="Display name"),
    household: str | None = HouseholdOption,
    verbose: bool = VerboseOption,
):
    """Register (or rename) a household member."""
    with open_service(verbose) as service:
        household_id = household or service.settings.household_id
        service.db.save_member(Member(id=member_id, household_id=household_id, name=name))
        console.print(f"[green]✓ Saved member {member_id} ({name})[/green]")


@app.command("add-income")
def add_income(
    member_id: str = typer.Argument(..., help="Member id"),
    month: str = typer.Argument(..., help="Month (YYYY-MM)"),
    amount: int = typer.Argument(..., help="Allocatable income in minor units"),
    household: str | None = HouseholdOption,
    verbose: bool = VerboseOption,
):
    """Record a member's allocatable income for a month."""
    with open_service(verbose) as service:
        household_id = household or service.settings.household_id
        if amount < 0:
            raise ValueError("Allocatable income cannot be negative")
        income = IncomeRecord(
            member_id=member_id,
            month=YearMonth.parse(month),
            allocatable_amount=amount,
        )
        service.db.save_income(household_id, income)
        console.print(f"[green]✓ Saved income for {member_id} in {income.month}[/green]")


@app.command("add-expense")
def add_expense(
    payer: str = typer.Option(..., "--payer", "-p", help="Member who paid"),
    amount: int = typer.Option(..., "--amount", "-a", help="Amount in minor units"),
    occurred_on: str | None = typer.Option(
        None, "--date", "-d", help="Date (YYYY-MM-DD), defaults to today"
    ),
    personal_for: str | None = typer.Option(
        None, "--personal-for", help="Attribute the whole expense to this member"
    ),
    income: bool = typer.Option(
        False, "--income", help="Record an income transaction (ignored by settlement)"
    ),
    description: str = typer.Option("", "--description", "-m", help="Description"),
    household: str | None = HouseholdOption,
    verbose: bool = VerboseOption,
):
    """Record a household or personal expense."""
    with open_service(verbose) as service:
        household_id = household or service.settings.household_id
        if amount <= 0:
            raise ValueError("Amount must be positive")
        entry = ExpenseEntry(
            payer_member_id=payer,
            amount=amount,
            responsibility=(
                Responsibility.PERSONAL if personal_for else Responsibility.HOUSEHOLD
            ),
            owing_member_id=personal_for,
            kind=EntryKind.INCOME if income else EntryKind.EXPENSE,
            occurred_on=date.fromisoformat(occurred_on) if occurred_on else date.today(),
            description=description,
        )
        expense_id = service.db.save_expense(household_id, entry)
        console.print(f"[green]✓ Saved expense {expense_id}[/green]")


@app.command("remove-expense")
def remove_expense(
    expense_id: int = typer.Argument(..., help="Expense id"),
    verbose: bool = VerboseOption,
):
    """Remove a recorded expense (it stops counting in future runs)."""
    with open_service(verbose) as service:
        if service.db.delete_expense(expense_id):
            console.print(f"[green]✓ Removed expense {expense_id}[/green]")
        else:
            console.print(f"[yellow]Expense {expense_id} not found.[/yellow]")


@app.command("set-policy")
def set_policy(
    rounding: RoundingMode = typer.Option(
        RoundingMode.ROUND, "--rounding", help="Rounding mode for shares"
    ),
    zero_income: ZeroIncomePolicy = typer.Option(
        ZeroIncomePolicy.EXCLUDE, "--zero-income", help="Zero-income member policy"
    ),
    min_share: int = typer.Option(
        0, "--min-share", help="Minimum share percent (MIN_SHARE only)"
    ),
    household: str | None = HouseholdOption,
    verbose: bool = VerboseOption,
):
    """Set the household's apportionment policy."""
    with open_service(verbose) as service:
        household_id = household or service.settings.household_id
        if not 0 <= min_share <= 100:
            raise ValueError("--min-share must be between 0 and 100")
        policy = Policy(
            rounding_mode=rounding,
            zero_income_policy=zero_income,
            min_share_percent=min_share,
        )
        service.db.save_policy(household_id, policy)
        console.print(f"[green]✓ Saved policy for {household_id}[/green]")


@app.command()
def run(
    month: str = typer.Argument(..., help="Month to settle (YYYY-MM)"),
    preview: bool = typer.Option(
        False, "--preview", help="Show the computation without saving a draft"
    ),
    household: str | None = HouseholdOption,
    verbose: bool = VerboseOption,
):
    """
    Compute the month's settlement and save it as a DRAFT.

    Re-running replaces an existing DRAFT. A FINALIZED month is refused.
    """
    with open_service(verbose) as service:
        household_id = household or service.settings.household_id
        period = YearMonth.parse(month)
        names = _names(service, household_id)

        console.print(f"\n[bold blue]Computing settlement for {period}...[/bold blue]")
        if preview:
            computation = service.preview_settlement(household_id, period)
            display_computation(computation, names)
            console.print("\n[yellow]Preview only, nothing saved.[/yellow]")
            return

        settlement = service.compute_settlement(household_id, period)
        display_computation(
            service.preview_settlement(household_id, period, settlement.policy), names
        )
        display_settlement(settlement, names)

        console.print("\n[bold green]✓ Draft saved![/bold green]")
        console.print(
            f"\n[bold]To lock this settlement, run:[/bold]\n"
            f"  [cyan]household-settle finalize {settlement.id}[/cyan]\n"
        )


@app.command()
def show(
    month: str = typer.Argument(..., help="Month (YYYY-MM)"),
    household: str | None = HouseholdOption,
    verbose: bool = VerboseOption,
):
    """Show the saved settlement for a month."""
    with open_service(verbose) as service:
        household_id = household or service.settings.household_id
        period = YearMonth.parse(month)
        settlement = service.find_by_month(household_id, period)
        if settlement is None:
            console.print(f"[yellow]No settlement for {period}.[/yellow]")
            return
        display_settlement(settlement, _names(service, household_id))


@app.command("list")
def list_settlements(
    household: str | None = HouseholdOption,
    verbose: bool = VerboseOption,
):
    """List all settlements for the household, newest first."""
    with open_service(verbose) as service:
        household_id = household or service.settings.household_id
        settlements = service.list_settlements(household_id)

        if not settlements:
            console.print("[yellow]No settlements found.[/yellow]")
            return

        table = Table(title="Settlements", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=6)
        table.add_column("Month")
        table.add_column("Status")
        table.add_column("Transfers", justify="right")
        table.add_column("Household total", justify="right")

        for settlement in settlements:
            table.add_row(
                str(settlement.id),
                str(settlement.month),
                settlement.status.value,
                str(settlement.summary.transfer_count),
                format_amount(settlement.summary.total_household_expense),
            )

        console.print(table)


@app.command()
def finalize(
    settlement_id: int = typer.Argument(..., help="Settlement id"),
    acting_member: str | None = typer.Option(
        None, "--as", help="Member finalizing the settlement"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = VerboseOption,
):
    """Finalize a DRAFT settlement. This cannot be undone."""
    with open_service(verbose) as service:
        settlement = service.get_settlement(settlement_id)

        if acting_member is None:
            console.print("\n[bold blue]Who is finalizing?[/bold blue]")
            acting_member = select_member_interactive(
                service.db.get_members(settlement.household_id)
            )
            if acting_member is None:
                console.print("[yellow]No member selected.[/yellow]")
                return

        if not yes and not confirm_finalize(settlement, acting_member):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        finalized = service.finalize_settlement(settlement_id, acting_member)
        display_settlement(finalized, _names(service, finalized.household_id))
        console.print("\n[bold green]✓ Settlement finalized![/bold green]")


@app.command()
def delete(
    settlement_id: int = typer.Argument(..., help="Settlement id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = VerboseOption,
):
    """Delete a DRAFT settlement."""
    with open_service(verbose) as service:
        if not yes and not typer.confirm(f"Delete settlement {settlement_id}?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        service.delete_settlement(settlement_id)
        console.print(f"[green]✓ Deleted settlement {settlement_id}[/green]")


@app.command()
def mcp():
    """Start the MCP server exposing settlement tools."""
    from .mcp_server import run_server

    run_server()


if __name__ == "__main__":
    app()
