# carbonledger/cli/main.py
"""
CLI for minting, transferring, retiring and auditing carbon credits.
"""

import os
import logging
import sqlite3
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from carbonledger.core.canon import canonical_json_str
from carbonledger.core.errors import LedgerError
from carbonledger.core.hashing import credit_digest
from carbonledger.core.types import CreditStatus
from carbonledger.registry.ledger import CreditLedger
from carbonledger.storage import SQLiteStorage
from carbonledger.verify.verifier import LedgerVerifier

app = typer.Typer(
    name="carbon-ledger",
    help="Mint, transfer, retire and audit tokenized carbon credits",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

STATUS_STYLE = {CreditStatus.ACTIVE: "green", CreditStatus.RETIRED: "dim"}


def get_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. CARBON_LEDGER_DB_PATH environment variable
    3. Default: ~/.carbonledger/credits.db
    """
    if db_flag:
        path = db_flag.resolve()
    else:
        env_path = os.environ.get("CARBON_LEDGER_DB_PATH")
        if env_path:
            path = Path(env_path).resolve()
        else:
            path = Path.home() / ".carbonledger" / "credits.db"

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def open_ledger(db: Optional[Path], must_exist: bool = True) -> CreditLedger:
    db_path = get_db_path(db)

    if must_exist and not db_path.exists():
        console.print(f"[red]Database file not found: {db_path}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • Mint a credit first: carbon-ledger mint 100 20240129 --as wallet_1")
        console.print("  • Set env var: export CARBON_LEDGER_DB_PATH=/path/to/your.db")
        raise typer.Exit(1)

    storage = open_storage(db_path)
    try:
        return CreditLedger(storage=storage)
    except Exception as e:
        storage.close()
        console.print(f"[red]Failed to open database: {str(e)}[/]")
        console.print("[yellow]The file may be corrupted or not a carbon-ledger database.[/]")
        raise typer.Exit(1)


def open_storage(db_path: Path) -> SQLiteStorage:
    try:
        return SQLiteStorage(db_path)
    except sqlite3.Error as e:
        console.print(f"[red]Failed to open database: {str(e)}[/]")
        raise typer.Exit(1)


def report_rejection(err: Exception) -> None:
    """Print a red one-liner naming the failure and exit with code 1."""
    label = type(err).__name__ if isinstance(err, LedgerError) else "Storage error"
    console.print(f"[red]✗ {label}: {err}[/]")
    raise typer.Exit(1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log ledger activity at DEBUG level"),
):
    """Manage a carbon-credit ledger."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def mint(
    amount: int = typer.Argument(..., help="Quantity of the credit (tonnes CO2e)"),
    vintage: int = typer.Argument(..., help="Issuance date as YYYYMMDD"),
    caller: str = typer.Option(..., "--as", help="Principal minting (and owning) the credit"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Mint a new credit owned by the caller.

    Options go before the positional arguments; put `--` ahead of a value that
    starts with a dash, e.g. `carbon-ledger mint --as wallet_1 -- -5 20240129`.
    """
    with open_ledger(db, must_exist=False) as ledger:
        try:
            credit_id = ledger.mint(amount, vintage, caller)
        except (LedgerError, sqlite3.Error, RuntimeError) as e:
            report_rejection(e)
    console.print(f"[green]✓ Minted credit {credit_id}[/] ({amount} @ {vintage}) for {caller}")


@app.command()
def transfer(
    credit_id: int = typer.Argument(..., help="Credit id"),
    new_owner: str = typer.Argument(..., help="Principal receiving the credit"),
    caller: str = typer.Option(..., "--as", help="Current owner"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Transfer an active credit to another principal."""
    with open_ledger(db) as ledger:
        try:
            ledger.transfer(credit_id, new_owner, caller)
        except (LedgerError, sqlite3.Error, RuntimeError) as e:
            report_rejection(e)
    console.print(f"[green]✓ Credit {credit_id} transferred to {new_owner}[/]")


@app.command()
def retire(
    credit_id: int = typer.Argument(..., help="Credit id"),
    caller: str = typer.Option(..., "--as", help="Current owner"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Retire a credit permanently."""
    with open_ledger(db) as ledger:
        try:
            ledger.retire(credit_id, caller)
        except (LedgerError, sqlite3.Error, RuntimeError) as e:
            report_rejection(e)
    console.print(f"[green]✓ Credit {credit_id} retired[/]")


@app.command()
def show(
    credit_id: int = typer.Argument(..., help="Credit id"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Show one credit and its history."""
    with open_ledger(db) as ledger:
        try:
            credit = ledger.get(credit_id)
        except LedgerError as e:
            report_rejection(e)
        events = ledger.history(credit_id)

    style = STATUS_STYLE[credit.status]
    console.print(f"[bold cyan]Credit {credit.id}[/]  [{style}]{credit.status.value}[/]")
    console.print(f"  amount:  {credit.amount}")
    console.print(f"  vintage: {credit.vintage}")
    console.print(f"  owner:   {credit.owner}")
    console.print(f"  digest:  {credit_digest(credit)}")
    for event in events:
        target = f" → {event.new_owner}" if event.kind == "transfer" else ""
        console.print(f"  {event.sequence:4d} | {event.kind:8} | {event.caller}{target}")


@app.command("list")
def list_credits(
    owner: Optional[str] = typer.Option(None, "--owner", help="Only credits held by this principal"),
    status: Optional[CreditStatus] = typer.Option(None, "--status", help="active or retired"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """List credits."""
    with open_ledger(db) as ledger:
        rows = ledger.credits(owner=owner, status=status)

    if not rows:
        console.print("[yellow]No credits found.[/]")
        return

    table = Table(title="Carbon Credits")
    table.add_column("ID", justify="right")
    table.add_column("Amount", justify="right")
    table.add_column("Vintage")
    table.add_column("Owner")
    table.add_column("Status")

    for credit in rows:
        style = STATUS_STYLE[credit.status]
        table.add_row(
            str(credit.id), str(credit.amount), str(credit.vintage),
            credit.owner, f"[{style}]{credit.status.value}[/]",
        )

    console.print(table)


@app.command()
def history(
    credit_id: Optional[int] = typer.Argument(None, help="Restrict to one credit"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Show the mutation journal."""
    with open_ledger(db) as ledger:
        events = ledger.history(credit_id)

    if not events:
        console.print("[yellow]No events recorded.[/]")
        return

    for event in events:
        detail = ""
        if event.kind == "mint":
            detail = f"{event.amount} @ {event.vintage}"
        elif event.kind == "transfer":
            detail = f"→ {event.new_owner}"
        console.print(
            f"[bold cyan]{event.sequence:4d} | {event.kind.upper():8} | credit {event.credit_id:<4d} | {event.caller}[/] {detail}"
        )


@app.command()
def verify(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Audit the ledger: id sequence, journal hash chain and replay."""
    db_path = get_db_path(db)

    if not db_path.exists():
        console.print(f"[red]Database file not found: {db_path}[/]")
        raise typer.Exit(1)

    with open_storage(db_path) as storage:
        result = LedgerVerifier().verify_from_storage(storage)

    if result.is_valid:
        console.print("[green]✓ Ledger is valid[/]")
        console.print(f"  {result.message}")
    else:
        console.print("[red]✗ Ledger verification failed[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {failure.message}")
        raise typer.Exit(1)


@app.command()
def export(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
    output: Path = typer.Option(Path("credits.jsonl"), "--output", "-o", help="Output file"),
):
    """Export all credits as JSONL (one canonical credit per line)."""
    with open_ledger(db) as ledger:
        rows = ledger.credits()

    if not rows:
        console.print("[yellow]No credits to export.[/]")
        raise typer.Exit(0)

    with open(output, "w", encoding="utf-8") as f:
        for credit in rows:
            f.write(canonical_json_str(credit.to_dict()))
            f.write("\n")

    console.print(f"[green]Exported {len(rows)} credits to {output}[/]")


if __name__ == "__main__":
    app()
