"""Event consumers that react to the engine's BuildEvents.

Consumers own every side effect the engine deliberately does not perform:
persisting ticket status to the TicketStore, committing finished tickets,
asking the user before continuing, and deciding whether a failure halts the
batch. Two consumers are provided:

- TerminalConsumer: interactive rich console output, stops on first failure by
  default (unattended CLI runs should not burn resources on a broken workspace)
- JsonLinesConsumer: writes one JSON object per event for a remote client and
  never halts

A commit happens after the engine reported the ticket as a success. When the
commit fails the consumer marks the ticket Error and moves it from the success
to the failure count of the BuildCompleteEvent it reports.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Iterable, Optional, TextIO

from rich.console import Console
from rich.prompt import Confirm

from shipyard.build.collaborators import Committer
from shipyard.build.cost import CostTotals, format_cost
from shipyard.build.events import (
    BuildCompleteEvent,
    BuildEvent,
    ErrorEvent,
    StatusEvent,
    TicketCompleteEvent,
    TicketStartEvent,
    event_to_dict,
)
from shipyard.build.git_operations import GitError
from shipyard.build.models import Ticket, TicketStatus
from shipyard.build.ticket_store import TicketStore, TicketStoreError

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Build interrupted"


@dataclass
class BuildSummary:
    """What a consumer observed over one run."""

    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    stopped_early: bool = False
    stop_reason: Optional[str] = None
    paused: bool = False
    result: Optional[BuildCompleteEvent] = None

    @property
    def success(self) -> bool:
        return not self.failed


class _StatusRecorder:
    """Persists ticket status transitions reported by the engine."""

    def __init__(self, store: TicketStore):
        self.store = store
        self.in_flight: Optional[Ticket] = None
        self.commit_failures = 0

    def _record_start(self, event: TicketStartEvent) -> None:
        self.in_flight = event.ticket
        self.store.update_status(event.ticket.id, TicketStatus.IN_PROGRESS)

    def _record_complete(self, event: TicketCompleteEvent) -> None:
        self.in_flight = None
        if event.skipped:
            # Restore what the ticket had before it was dequeued
            self.store.update_status(
                event.ticket.id, event.ticket.status, event.ticket.error
            )
        elif event.success:
            self.store.update_status(event.ticket.id, TicketStatus.DONE)
        else:
            self.store.update_status(event.ticket.id, TicketStatus.ERROR, event.error)

    def _record_commit_failure(self, ticket: Ticket, error: GitError) -> str:
        message = f"Commit failed: {error}"
        self.store.update_status(ticket.id, TicketStatus.ERROR, message)
        self.in_flight = None
        self.commit_failures += 1
        return message

    def _settle(self, event: BuildCompleteEvent) -> BuildCompleteEvent:
        """Count tickets whose commit failed as failures in the final totals."""
        if not self.commit_failures:
            return event
        return replace(
            event,
            success_count=event.success_count - self.commit_failures,
            failed_count=event.failed_count + self.commit_failures,
        )

    def mark_interrupted(self, message: str = INTERRUPTED_MESSAGE) -> Optional[str]:
        """Best-effort Error status for the ticket in flight when a run is cut short.

        Returns:
            ID of the ticket that was marked, or None
        """
        ticket = self.in_flight
        if ticket is None:
            return None
        try:
            self.store.update_status(ticket.id, TicketStatus.ERROR, message)
        except (OSError, TicketStoreError) as e:
            logger.error(f"Could not record interruption for {ticket.id}: {e}")
            return None
        self.in_flight = None
        return ticket.id


class TerminalConsumer(_StatusRecorder):
    """Interactive terminal consumer.

    Persists status, commits each successful ticket (optionally after asking),
    optionally asks before moving to the next ticket, and halts the batch on the
    first failure when ``stop_on_failure`` is set.
    """

    def __init__(
        self,
        store: TicketStore,
        workspace: Path,
        committer: Optional[Committer] = None,
        console: Optional[Console] = None,
        ask_commit: bool = False,
        ask_confirm: bool = False,
        stop_on_failure: bool = True,
        confirm: Optional[Callable[[str], bool]] = None,
    ):
        """Initialize the consumer.

        Args:
            store: Ticket store receiving status updates
            workspace: Directory committed after each successful ticket
            committer: Committer for finished tickets (None disables commits)
            console: Rich console for output
            ask_commit: Ask before committing each ticket
            ask_confirm: Ask before proceeding to the next ticket
            stop_on_failure: Halt the batch on the first failed ticket
            confirm: Yes/no prompt, defaults to rich's Confirm.ask
        """
        super().__init__(store)
        self.workspace = workspace
        self.committer = committer
        self.console = console or Console()
        self.ask_commit = ask_commit
        self.ask_confirm = ask_confirm
        self.stop_on_failure = stop_on_failure
        self.confirm = confirm or (lambda message: Confirm.ask(message, console=self.console))
        self._index = 0
        self._total = 0

    def consume(self, events: Iterable[BuildEvent]) -> BuildSummary:
        """Consume events until the build completes or the batch is halted."""
        summary = BuildSummary()

        for event in events:
            if isinstance(event, TicketStartEvent):
                self._on_ticket_start(event)
            elif isinstance(event, StatusEvent):
                self.console.print(f"   [dim]{event.message}[/dim]")
            elif isinstance(event, TicketCompleteEvent):
                if not self._on_ticket_complete(event, summary):
                    break
            elif isinstance(event, ErrorEvent):
                label = event.ticket.id if event.ticket else "build"
                self.console.print(f"[red]✗ Failed to process {label}:[/red] {event.message}")
                if self.stop_on_failure:
                    summary.stopped_early = True
                    summary.stop_reason = f"Build stopped due to failure of {label}"
                    break
            elif isinstance(event, BuildCompleteEvent):
                summary.result = self._settle(event)
                self._print_result(summary.result)

        if summary.stopped_early and summary.stop_reason:
            self.console.print(f"\n[red]{summary.stop_reason}[/red]")
            self.console.print(
                "[yellow]Hint:[/yellow] Run build again to resume from remaining tickets"
            )
        return summary

    def _on_ticket_start(self, event: TicketStartEvent) -> None:
        self._index = event.index
        self._total = event.total
        self.console.rule(
            f"[bold]Ticket {event.index + 1}/{event.total}: {event.ticket.id}[/bold]"
        )
        self.console.print(f"[bold]{event.ticket.title}[/bold]")
        self._record_start(event)

    def _on_ticket_complete(
        self, event: TicketCompleteEvent, summary: BuildSummary
    ) -> bool:
        """Handle a finished ticket.

        Returns:
            False if the batch should halt
        """
        ticket = event.ticket
        cost = format_cost(CostTotals(tokens=event.tokens_used, cost=event.cost))

        if event.skipped:
            self._record_complete(event)
            summary.skipped.append(ticket.id)
            self.console.print(f"[yellow]⊘ Skipped {ticket.id}[/yellow]")
            return True

        if not event.success:
            self._record_complete(event)
            summary.failed.append(ticket.id)
            self.console.print(f"[dim]Cost: {cost}[/dim]")
            return True

        self.console.print(f"[green]✓ {ticket.id} implemented successfully[/green]")
        self.console.print(f"[dim]Cost: {cost}[/dim]")

        try:
            self._commit(ticket)
        except GitError as e:
            message = self._record_commit_failure(ticket, e)
            summary.failed.append(ticket.id)
            self.console.print(f"[red]✗ {ticket.id}: {message}[/red]")
            if self.stop_on_failure:
                summary.stopped_early = True
                summary.stop_reason = f"Build stopped due to failure of {ticket.id}"
                return False
            return True

        self._record_complete(event)
        summary.completed.append(ticket.id)

        is_last = self._index >= self._total - 1
        if self.ask_confirm and not is_last:
            if not self.confirm("Proceed to next ticket?"):
                summary.paused = True
                self.console.print("\n[yellow]Build paused by user[/yellow]")
                self.console.print(
                    f"[dim]Progress: {self._index + 1}/{self._total} tickets completed[/dim]"
                )
                return False
        return True

    def _commit(self, ticket: Ticket) -> None:
        if self.committer is None:
            return
        if self.ask_commit and not self.confirm(f"Commit changes for {ticket.id}?"):
            self.console.print("   [dim]Skipped commit[/dim]")
            return
        self.committer.commit(ticket, self.workspace)
        self.console.print(f"   [green]Committed {ticket.id}[/green]")

    def _print_result(self, event: BuildCompleteEvent) -> None:
        totals = CostTotals(tokens=event.total_tokens_used, cost=event.total_cost)
        self.console.print("\n[bold]Build Summary:[/bold]")
        self.console.print(f"  ✓ Completed: [green]{event.success_count}[/green]")
        if event.failed_count:
            self.console.print(f"  ✗ Failed: [red]{event.failed_count}[/red]")
        if event.skipped_count:
            self.console.print(f"  ⊘ Skipped: [yellow]{event.skipped_count}[/yellow]")
        self.console.print(f"  Total tickets: {event.total_tickets}")
        self.console.print(f"  Total cost: {format_cost(totals)}")


class JsonLinesConsumer(_StatusRecorder):
    """Headless consumer writing each event as one JSON line.

    Status is persisted like the terminal consumer; the batch is never halted
    so the remote client always receives a full report.
    """

    def __init__(
        self,
        store: TicketStore,
        stream: TextIO,
        workspace: Optional[Path] = None,
        committer: Optional[Committer] = None,
    ):
        super().__init__(store)
        self.stream = stream
        self.workspace = workspace
        self.committer = committer

    def write(self, event: BuildEvent) -> None:
        self.stream.write(json.dumps(event_to_dict(event)) + "\n")
        self.stream.flush()

    def consume(self, events: Iterable[BuildEvent]) -> BuildSummary:
        summary = BuildSummary()

        for event in events:
            if isinstance(event, BuildCompleteEvent):
                event = self._settle(event)
            self.write(event)
            if isinstance(event, TicketStartEvent):
                self._record_start(event)
            elif isinstance(event, TicketCompleteEvent):
                self._on_ticket_complete(event, summary)
            elif isinstance(event, BuildCompleteEvent):
                summary.result = event

        return summary

    def _on_ticket_complete(
        self, event: TicketCompleteEvent, summary: BuildSummary
    ) -> None:
        if event.skipped:
            summary.skipped.append(event.ticket.id)
            self._record_complete(event)
            return

        if event.success and self.committer is not None and self.workspace is not None:
            try:
                self.committer.commit(event.ticket, self.workspace)
            except GitError as e:
                message = self._record_commit_failure(event.ticket, e)
                summary.failed.append(event.ticket.id)
                self.write(ErrorEvent(message=message, ticket=event.ticket))
                return

        self._record_complete(event)
        if event.success:
            summary.completed.append(event.ticket.id)
        else:
            summary.failed.append(event.ticket.id)
