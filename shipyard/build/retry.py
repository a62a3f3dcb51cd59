"""Bounded test/fix loop for end-to-end test tickets.

The coordinator runs the tester; when a run fails and attempts remain, it turns
the failure into a corrective ticket (the tester output plus the original
ticket description), hands it to the implementer, and tests again. It stops on
the first passing run or after ``max_attempts`` tester invocations, whichever
comes first. Every ticket gets a fresh budget.
"""

from __future__ import annotations

import logging
from typing import Callable, Generator, Optional

from shipyard.build.collaborators import Implementer, Tester
from shipyard.build.models import (
    BuildOptions,
    RetryResult,
    TestResult,
    Ticket,
    TicketType,
    TokenUsage,
)
from shipyard.core.prompts import build_test_prompt

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


def build_corrective_ticket(ticket: Ticket, attempt: int, failure_output: str) -> Ticket:
    """Synthesize an implementation ticket that fixes a failed test run.

    Args:
        ticket: The test ticket that failed
        attempt: Number of the failed attempt (1-based)
        failure_output: Raw tester output for that attempt

    Returns:
        A new Todo ticket in the implementation role
    """
    role = TicketType.SCHEMA if ticket.type == TicketType.DB_TEST else TicketType.FRONTEND
    description = (
        f"The end-to-end test for {ticket.id} failed on attempt {attempt}.\n\n"
        f"**Test output:**\n{failure_output or '(no output)'}\n\n"
        f"**Original ticket requirements:**\n{ticket.description}\n\n"
        "Find the root cause of the failure and make minimal, targeted changes "
        "so the requirements above are met."
    )
    return Ticket(
        id=f"{ticket.id}-FIX-{attempt}",
        title=f"Fix test failures for {ticket.id}: {ticket.title}",
        description=description,
        type=role,
        estimated_effort=ticket.estimated_effort,
        category=ticket.category,
    )


class RetryCoordinator:
    """Runs a test ticket with a bounded number of corrective attempts."""

    def __init__(
        self,
        implementer: Implementer,
        tester: Tester,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """Initialize the coordinator.

        Args:
            implementer: Collaborator that applies corrective tickets
            tester: Collaborator that runs the end-to-end check
            max_attempts: Tester invocations allowed per ticket (at least 1)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.implementer = implementer
        self.tester = tester
        self.max_attempts = max_attempts

    def _run_tester(self, prompt: str, ticket: Ticket) -> TestResult:
        try:
            return self.tester.test(prompt, ticket)
        except Exception as e:
            logger.error(f"Tester raised for {ticket.id}: {e}")
            return TestResult(success=False, output=str(e), error=str(e))

    def attempts(
        self,
        ticket: Ticket,
        options: BuildOptions,
        check_cancelled: Optional[Callable[[], None]] = None,
    ) -> Generator[str, None, RetryResult]:
        """Drive the loop, yielding a progress message before each step.

        The generator's return value is the RetryResult.

        Args:
            ticket: Test ticket to run
            options: Run-level options (workspace for corrective implementation)
            check_cancelled: Optional callback raising if the run was cancelled;
                called before every collaborator call
        """
        checkpoint = check_cancelled or (lambda: None)
        prompt = build_test_prompt(ticket)

        tokens = TokenUsage()
        corrective_tickets: list[Ticket] = []
        fixes_applied = 0
        last_result: Optional[TestResult] = None
        attempt = 0

        for attempt in range(1, self.max_attempts + 1):
            yield f"Test attempt {attempt}/{self.max_attempts} for {ticket.id}"
            checkpoint()
            last_result = self._run_tester(prompt, ticket)
            tokens = tokens + last_result.tokens_used

            if last_result.success:
                logger.info(f"Tests passed for {ticket.id} on attempt {attempt}")
                return RetryResult(
                    success=True,
                    attempts=attempt,
                    tokens_used=tokens,
                    corrective_tickets=corrective_tickets,
                    fixes_applied=fixes_applied,
                    output=last_result.output,
                )

            logger.warning(f"Test attempt {attempt} failed for {ticket.id}")
            if attempt == self.max_attempts:
                break

            corrective = build_corrective_ticket(ticket, attempt, last_result.output)
            corrective_tickets.append(corrective)
            yield f"Applying corrective ticket {corrective.id}"

            checkpoint()
            try:
                fix = self.implementer.implement(corrective, options.workspace)
            except Exception as e:
                logger.error(f"Corrective implementation raised for {corrective.id}: {e}")
                continue

            tokens = tokens + fix.tokens_used
            if fix.success:
                fixes_applied += fix.fix_count
            else:
                logger.warning(
                    f"Corrective implementation failed for {corrective.id}: {fix.error}"
                )

        yield f"Tests failed after {attempt} attempts for {ticket.id}"

        output = last_result.output if last_result else ""
        error = (last_result.error if last_result else None) or output
        return RetryResult(
            success=False,
            attempts=attempt,
            tokens_used=tokens,
            corrective_tickets=corrective_tickets,
            fixes_applied=fixes_applied,
            output=output,
            error=error or f"Tests failed after {attempt} attempts",
        )

    def run(
        self,
        ticket: Ticket,
        options: BuildOptions,
        on_status: Optional[Callable[[str], None]] = None,
        check_cancelled: Optional[Callable[[], None]] = None,
    ) -> RetryResult:
        """Run the loop to completion, passing progress messages to ``on_status``."""
        loop = self.attempts(ticket, options, check_cancelled)
        while True:
            try:
                message = next(loop)
            except StopIteration as stop:
                return stop.value
            if on_status is not None:
                on_status(message)
