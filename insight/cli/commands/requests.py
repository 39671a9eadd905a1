"""Inspect and tidy the service request ledger."""
from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from insight.storage import RequestLedger

console = Console()

_STATUS_STYLES = {"completed": "green", "error": "red", "processing": "blue", "pending": "yellow"}


@click.command(name="requests")
@click.option("--limit", type=int, default=20, help="Number of requests to show")
@click.option("--cleanup", is_flag=True, help="Remove requests past their retention period first")
def requests_command(limit: int, cleanup: bool):
    """Show recent OCR and AI requests."""
    ledger = RequestLedger()
    if cleanup:
        removed = ledger.cleanup()
        console.print(f"[green]✓[/green] Removed {removed} old request(s)")

    rows = ledger.recent(limit=limit)
    if not rows:
        console.print("[dim]No requests recorded.[/dim]")
        return

    table = Table(title="Service Requests", show_header=True, header_style="bold cyan", border_style="cyan")
    table.add_column("ID", justify="right", style="yellow")
    table.add_column("Kind")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Created")
    table.add_column("Result / Error")

    for row in rows:
        style = _STATUS_STYLES.get(row["status"], "white")
        summary = (row["error_message"] if row["status"] == "error" else row["result"]) or ""
        table.add_row(
            str(row["id"]),
            row["kind"],
            row["service"],
            f"[{style}]{row['status']}[/{style}]",
            (row["created_at"] or "")[:19],
            summary[:60],
        )
    console.print(table)
