"""
Event Journal Audit Tool — independent integrity verification.

Connects directly to the journal database, recomputes every hash in the
chain, then replays the recorded Transfer events and checks that balances
are non-negative and sum to the total supply.

Usage:
    python -m cmtat_ledger.ledger.audit
    python -m cmtat_ledger.ledger.audit --journal-url sqlite:///cmtat_journal.db
    python -m cmtat_ledger.ledger.audit --verbose
"""

from __future__ import annotations

import argparse
import sys
import time

from rich.console import Console
from rich.table import Table

from cmtat_ledger.config import settings
from cmtat_ledger.ledger.journal import EventJournal

console = Console()


def check_conservation(journal: EventJournal) -> tuple[bool, str]:
    """Replay Transfer events and check supply conservation."""
    balances, supply = journal.replay_balances()
    negative = sorted(account for account, balance in balances.items() if balance < 0)
    if negative:
        return False, f"Negative replayed balance for {', '.join(negative)}"
    total = sum(balances.values())
    if total != supply:
        return False, f"Sum of balances {total} != total supply {supply}"
    return True, f"{len(balances)} holders, total supply {supply}"


def run_audit(journal_url: str, verbose: bool = False) -> bool:
    """
    Run a full journal audit.

    Args:
        journal_url: SQLAlchemy URL of the journal database.
        verbose: Print every entry if True.

    Returns:
        True if the chain and the replayed balances are valid.
    """
    console.print("\n[bold blue]═══ Token Event Journal Audit ═══[/bold blue]\n")

    journal = EventJournal(journal_url)

    count = journal.get_entry_count()
    console.print(f"  Entries in journal: [bold]{count}[/bold]")

    if count == 0:
        console.print("[yellow]⚠ Journal is empty — no entries to verify[/yellow]")
        journal.close()
        return True

    console.print("  Verifying hash chain...", end=" ")
    start_time = time.time()
    is_valid, entries_verified, message = journal.verify_chain()
    elapsed = time.time() - start_time

    if is_valid:
        console.print("[bold green]✓ VALID[/bold green]")
        console.print(f"  Entries verified: [bold]{entries_verified}[/bold]")
        console.print(f"  Verification time: {elapsed:.3f}s")
    else:
        console.print("[bold red]✗ INVALID[/bold red]")
        console.print(f"  Failure at entry: {entries_verified}")
        console.print(f"  Reason: {message}")

    console.print("  Replaying balances...", end=" ")
    conserved, detail = check_conservation(journal)
    if conserved:
        console.print("[bold green]✓ CONSERVED[/bold green]")
    else:
        console.print("[bold red]✗ VIOLATED[/bold red]")
    console.print(f"  {detail}")

    if verbose:
        console.print("\n[bold]Detailed Entry Listing:[/bold]")
        table = Table(show_lines=True)
        table.add_column("Seq", style="cyan", width=6)
        table.add_column("Event", style="green", width=20)
        table.add_column("Entry point", style="yellow", width=24)
        table.add_column("Accounts", width=30)
        table.add_column("Hash (first 16)", style="dim", width=18)
        table.add_column("Timestamp", width=22)

        for entry in reversed(journal.get_latest_entries(limit=count)):
            table.add_row(
                str(entry.sequence_number),
                entry.event_name,
                entry.entrypoint,
                ", ".join(entry.accounts) or "—",
                entry.entry_hash[:16] + "...",
                str(entry.timestamp)[:19],
            )
        console.print(table)

    journal.close()
    console.print("\n[bold blue]═══ Audit Complete ═══[/bold blue]\n")
    return is_valid and conserved


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="CMTAT token event journal auditor")
    parser.add_argument(
        "--journal-url",
        default=None,
        help="SQLAlchemy URL of the journal (defaults to CMTAT_JOURNAL_URL)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed entry listing",
    )
    args = parser.parse_args(argv)

    journal_url = args.journal_url or settings.journal_url
    is_valid = run_audit(journal_url, verbose=args.verbose)
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    main()
