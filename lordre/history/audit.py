"""
Action History Viewer — operator listing of the audit trail.

Connects directly to the store with the service role and prints the most
recent history entries, newest first, with the same type and text filters the
member-facing history page offers.

Usage:
    lordre-history
    lordre-history --type alert_changed
    lordre-history --search luna --limit 50
    lordre-history --database-url postgresql+psycopg2://...
"""

from __future__ import annotations

import argparse
import sys

from rich.console import Console
from rich.table import Table

from lordre.config import settings
from lordre.domain.schema import ActionType, HistoryFilter
from lordre.errors import LOrdreError
from lordre.governance.policies import Actor
from lordre.history.logger import ActionHistoryLogger
from lordre.store.database import Database
from lordre.store.gateway import StoreGateway

console = Console()


def show_history(
    database_url: str,
    action_type: ActionType | None = None,
    search: str | None = None,
    limit: int | None = None,
) -> int:
    """
    Print recent history entries.

    Returns:
        Number of entries printed.
    """
    database = Database(database_url)
    try:
        gateway = StoreGateway(database)
        history = ActionHistoryLogger(gateway, page_limit=settings.history_page_limit)

        total = gateway.history_count()
        entries = history.query(
            Actor.service(),
            HistoryFilter(action_type=action_type, search_text=search),
            limit=limit,
        )
    finally:
        database.dispose()

    console.print("\n[bold blue]═══ Historique des actions ═══[/bold blue]")
    console.print(f"  Entries in store: [bold]{total}[/bold]")

    if not entries:
        console.print("[yellow]⚠ No matching entries[/yellow]\n")
        return 0

    table = Table(show_lines=False)
    table.add_column("Seq", style="cyan", width=6)
    table.add_column("Date", width=19)
    table.add_column("Type", style="green", width=18)
    table.add_column("Acteur", style="yellow", width=20)
    table.add_column("Description")

    for entry in entries:
        table.add_row(
            str(entry.sequence_number),
            str(entry.created_at)[:19],
            entry.action_label,
            entry.actor_name or "—",
            entry.description,
        )
    console.print(table)
    console.print(f"  Showing [bold]{len(entries)}[/bold] entries\n")
    return len(entries)


def main() -> None:
    parser = argparse.ArgumentParser(description="L'Ordre action history viewer")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to .env settings)",
    )
    parser.add_argument(
        "--type",
        dest="action_type",
        choices=[t.value for t in ActionType],
        default=None,
        help="Only show entries of this type",
    )
    parser.add_argument("--search", "-s", default=None, help="Case-insensitive text filter")
    parser.add_argument("--limit", "-n", type=int, default=None, help="Page size (max 200)")
    args = parser.parse_args()

    db_url = args.database_url or settings.database_url_sync
    try:
        show_history(
            db_url,
            action_type=ActionType(args.action_type) if args.action_type else None,
            search=args.search,
            limit=args.limit,
        )
    except LOrdreError as exc:
        console.print(f"[bold red]✗ {exc.message}[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
