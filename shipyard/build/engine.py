"""Ticket build engine.

This module provides the BuildEngine class that drives an already-sorted list
of tickets through their lifecycle and reports every transition as a
BuildEvent. The engine never persists ticket status, commits, or prompts the
user: those are reactions of the event consumer.

Per ticket the engine runs this state machine:

    Todo/Error --dequeue--> InProgress --(implement, lint[, review])--> Done | Error
    test tickets:           InProgress --(test, fix, test, ...)------> Done | Error

Tickets are processed strictly one at a time because every implementation
step mutates the shared workspace. A ticket failure is recorded and the engine
moves on; the stream always ends with exactly one BuildCompleteEvent.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Generator, Iterable, Iterator, Optional

from shipyard.build.collaborators import Collaborators
from shipyard.build.cost import DEFAULT_RATES, CostAccumulator, RateTable
from shipyard.build.events import (
    BuildCompleteEvent,
    BuildEvent,
    ErrorEvent,
    StatusEvent,
    TicketCompleteEvent,
    TicketStartEvent,
    dispatch_event,
)
from shipyard.build.models import (
    BuildOptions,
    Ticket,
    TicketStatus,
    TicketType,
    TokenUsage,
)
from shipyard.build.retry import RetryCoordinator
from shipyard.build.sorter import phase_of

logger = logging.getLogger(__name__)

SCHEMA_PHASE = 1


class ConfigurationError(Exception):
    """Raised before any ticket is processed when the run cannot start."""

    pass


class BuildCancelled(Exception):
    """Raised at a collaborator boundary after cancel() was requested."""

    pass


@dataclass
class _TicketOutcome:
    """Mutable result of processing one ticket."""

    success: bool = True
    error: Optional[str] = None
    tokens: TokenUsage = field(default_factory=TokenUsage)
    attempts: int = 1

    def fail(self, error: str) -> _TicketOutcome:
        self.success = False
        self.error = error
        return self


def is_schema_ticket(ticket: Ticket) -> bool:
    return ticket.type == TicketType.SCHEMA or phase_of(ticket.id) == SCHEMA_PHASE


class BuildEngine:
    """Sequential ticket build engine emitting BuildEvents.

    Collaborators are injected; run-level options are an explicit BuildOptions
    value. Nothing is read from the environment.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        options: BuildOptions,
        rates: RateTable = DEFAULT_RATES,
    ):
        """Initialize the engine.

        Args:
            collaborators: Implementer, linter, reviewer and tester
            options: Run-level options
            rates: Rate table used to price token usage
        """
        self.collaborators = collaborators
        self.options = options
        self.rates = rates
        self.retry = RetryCoordinator(
            implementer=collaborators.implementer,
            tester=collaborators.tester,
            max_attempts=options.max_test_attempts,
        )
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Request cancellation; honoured at the next collaborator boundary."""
        self._cancelled.set()

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise BuildCancelled("Build cancelled")

    def _validate_options(self) -> None:
        workspace = self.options.workspace
        if not workspace.exists():
            raise ConfigurationError(f"Directory not found: {workspace}")
        if not workspace.is_dir():
            raise ConfigurationError(f"Path is not a directory: {workspace}")

    def process(self, tickets: Iterable[Ticket]) -> Iterator[BuildEvent]:
        """Process tickets in the given order.

        Configuration is validated eagerly, so a ConfigurationError is raised
        by this call rather than on first iteration.

        Args:
            tickets: Tickets already sorted into processing order

        Returns:
            Iterator of BuildEvents ending with exactly one BuildCompleteEvent

        Raises:
            ConfigurationError: If the workspace is missing or not a directory
        """
        self._validate_options()
        return self._events(list(tickets))

    def run(self, tickets: Iterable[Ticket], listener: Any) -> BuildCompleteEvent:
        """Process tickets, dispatching every event to a listener's callbacks.

        Returns:
            The terminal BuildCompleteEvent
        """
        final: Optional[BuildCompleteEvent] = None
        for event in self.process(tickets):
            dispatch_event(listener, event)
            if isinstance(event, BuildCompleteEvent):
                final = event
        if final is None:
            raise RuntimeError("Build ended without a BuildCompleteEvent")
        return final

    def _events(self, tickets: list[Ticket]) -> Generator[BuildEvent, None, None]:
        total = len(tickets)
        accumulator = CostAccumulator(self.rates)
        success_count = 0
        failed_count = 0
        skipped_count = 0

        logger.info(f"Starting build of {total} ticket(s) in {self.options.workspace}")

        for index, queued in enumerate(tickets):
            self._check_cancelled()
            ticket = replace(queued, status=TicketStatus.IN_PROGRESS, error=None)
            logger.info(
                f"Ticket {ticket.id}: {queued.status.value} -> {ticket.status.value}"
            )
            yield TicketStartEvent(ticket=ticket, index=index, total=total)

            if ticket.is_test and not self.options.test:
                skipped_count += 1
                yield StatusEvent(
                    message=f"Testing disabled, skipping {ticket.id}", ticket=ticket
                )
                yield TicketCompleteEvent(
                    ticket=replace(ticket, status=queued.status, error=queued.error),
                    success=True,
                    attempts=0,
                    skipped=True,
                )
                continue

            if ticket.is_test:
                outcome = yield from self._run_test_ticket(ticket)
            else:
                outcome = yield from self._run_implementation_ticket(ticket)

            increment = accumulator.add(outcome.tokens)

            if outcome.success:
                success_count += 1
                finished = replace(ticket, status=TicketStatus.DONE, error=None)
                logger.info(f"Ticket {ticket.id}: InProgress -> Done")
                yield TicketCompleteEvent(
                    ticket=finished,
                    success=True,
                    tokens_used=increment.tokens,
                    cost=increment.cost,
                    attempts=outcome.attempts,
                )
            else:
                failed_count += 1
                error = outcome.error or "Ticket failed"
                finished = replace(ticket, status=TicketStatus.ERROR, error=error)
                logger.error(f"Ticket {ticket.id}: InProgress -> Error - {error}")
                yield TicketCompleteEvent(
                    ticket=finished,
                    success=False,
                    error=error,
                    tokens_used=increment.tokens,
                    cost=increment.cost,
                    attempts=outcome.attempts,
                )
                yield ErrorEvent(message=error, ticket=finished)

        logger.info(
            f"Build complete: {success_count} succeeded, {failed_count} failed, "
            f"{skipped_count} skipped"
        )
        yield BuildCompleteEvent(
            success_count=success_count,
            failed_count=failed_count,
            skipped_count=skipped_count,
            total_tickets=total,
            total_tokens_used=accumulator.total.tokens,
            total_cost=accumulator.total.cost,
        )

    def _run_implementation_ticket(
        self, ticket: Ticket
    ) -> Generator[BuildEvent, None, _TicketOutcome]:
        outcome = _TicketOutcome()
        workspace = self.options.workspace
        collaborators = self.collaborators

        yield StatusEvent(message=f"Implementing {ticket.id}", ticket=ticket)
        self._check_cancelled()
        try:
            implementation = collaborators.implementer.implement(ticket, workspace)
        except Exception as e:
            logger.error(f"Implementer raised for {ticket.id}: {e}")
            return outcome.fail(str(e))

        outcome.tokens = outcome.tokens + implementation.tokens_used
        logger.debug(f"Implementer reported cost ${implementation.cost:.4f} for {ticket.id}")
        if not implementation.success:
            return outcome.fail(implementation.error or "Implementation failed")

        yield StatusEvent(message=f"Linting workspace for {ticket.id}", ticket=ticket)
        self._check_cancelled()
        try:
            lint = collaborators.linter.lint(workspace)
            logger.info(f"Linting applied {lint.fix_count} fix(es) for {ticket.id}")
        except Exception as e:
            logger.warning(f"Linting failed for {ticket.id}, continuing: {e}")

        if not self.options.review:
            return outcome
        if is_schema_ticket(ticket):
            logger.info(f"Skipping review for schema ticket {ticket.id}")
            return outcome

        yield StatusEvent(message=f"Reviewing changes for {ticket.id}", ticket=ticket)
        self._check_cancelled()
        try:
            review = collaborators.reviewer.review(workspace, ticket)
        except Exception as e:
            logger.error(f"Reviewer raised for {ticket.id}: {e}")
            return outcome.fail(str(e))

        outcome.tokens = outcome.tokens + review.tokens_used
        yield StatusEvent(
            message=(
                f"Review found {review.issues_found} issue(s), "
                f"applied {review.fixes_applied} fix(es)"
            ),
            ticket=ticket,
        )
        return outcome

    def _run_test_ticket(
        self, ticket: Ticket
    ) -> Generator[BuildEvent, None, _TicketOutcome]:
        loop = self.retry.attempts(ticket, self.options, self._check_cancelled)
        while True:
            try:
                message = next(loop)
            except StopIteration as stop:
                result = stop.value
                break
            yield StatusEvent(message=message, ticket=ticket)

        outcome = _TicketOutcome(tokens=result.tokens_used, attempts=result.attempts)
        if not result.success:
            outcome.fail(result.error or "Tests failed")
        return outcome
