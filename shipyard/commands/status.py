"""Status command implementation."""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from shipyard.build.models import TicketStatus
from shipyard.build.sorter import sort_tickets
from shipyard.build.ticket_store import TicketStore, TicketStoreError
from shipyard.core.config import DEFAULT_TICKETS_FILE, Config
from shipyard.utils.path_resolver import (
    PathResolutionError,
    resolve_directory,
    resolve_tickets_file,
)

console = Console()

STATUS_STYLES = {
    TicketStatus.TODO: "white",
    TicketStatus.IN_PROGRESS: "cyan",
    TicketStatus.DONE: "green",
    TicketStatus.ERROR: "red",
}


def command(
    directory: Optional[str] = typer.Option(
        None, "--directory", "-d", help="Project directory (default: current directory)"
    ),
    tickets: Optional[str] = typer.Option(
        None, "--tickets", "-t", help="Tickets file, relative to the project directory"
    ),
):
    """Show tickets in processing order with their status."""
    config = Config()
    try:
        workspace = resolve_directory(directory)
        tickets_path = resolve_tickets_file(
            tickets or config.get("build.tickets_file", DEFAULT_TICKETS_FILE),
            workspace,
        )
        tickets_file = TicketStore(tickets_path).load()
    except (PathResolutionError, TicketStoreError) as e:
        console.print(f"[red]ERROR:[/red] {e}")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Tickets ({tickets_file.total_tickets})")
    table.add_column("ID", style="bold")
    table.add_column("Type")
    table.add_column("Effort", justify="right")
    table.add_column("Status")
    table.add_column("Title")

    for ticket in sort_tickets(tickets_file.tickets):
        style = STATUS_STYLES[ticket.status]
        table.add_row(
            ticket.id,
            ticket.type.value,
            str(ticket.estimated_effort),
            f"[{style}]{ticket.status.value}[/{style}]",
            ticket.title,
        )

    console.print(table)

    errors = [t for t in tickets_file.tickets if t.status == TicketStatus.ERROR]
    for ticket in errors:
        console.print(f"[red]{ticket.id}:[/red] {ticket.error or 'unknown error'}")
