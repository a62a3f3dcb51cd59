"""Collaborator protocols and their concrete implementations.

The engine never implements a step itself. It calls five collaborators through
the protocols below and reacts to their success/failure signals:

- Implementer: produces code changes for one ticket
- Linter: validates/normalizes the workspace, best-effort, never fails a ticket
- Reviewer: inspects the uncommitted diff against the ticket intent
- Tester: runs an end-to-end check and reports pass/fail
- Committer: records workspace changes (used by event consumers, not the engine)

The Claude-backed implementations spawn the Claude CLI through ClaudeRunner and
parse the JSON object each prompt asks the model to end its reply with.
"""

from __future__ import annotations

import json
import logging
import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence

from rich.console import Console

from shipyard.build.git_operations import GitError, GitOperations
from shipyard.build.models import (
    ImplementationResult,
    LintResult,
    ReviewResult,
    TestResult,
    Ticket,
)
from shipyard.core.claude import ClaudeRunner
from shipyard.core.prompts import PromptBuilder

logger = logging.getLogger(__name__)

LINT_TIMEOUT = 600


class Implementer(Protocol):
    def implement(self, ticket: Ticket, workspace: Path) -> ImplementationResult: ...


class Linter(Protocol):
    def lint(self, workspace: Path) -> LintResult: ...


class Reviewer(Protocol):
    def review(self, workspace: Path, ticket: Ticket) -> ReviewResult: ...


class Tester(Protocol):
    def test(self, prompt: str, ticket: Ticket) -> TestResult: ...


class Committer(Protocol):
    def commit(self, ticket: Ticket, workspace: Path) -> None: ...


@dataclass
class Collaborators:
    """Bundle of the collaborators an engine run needs."""

    implementer: Implementer
    linter: Linter
    reviewer: Reviewer
    tester: Tester


def parse_json_block(text: str) -> dict[str, Any]:
    """Parse the last JSON object embedded in free-form model output.

    Raises:
        ValueError: If no valid JSON object is found
    """
    # Nested up to three levels deep
    matches = re.findall(
        r"\{(?:[^{}]|(?:\{(?:[^{}]|(?:\{[^{}]*\}))*\}))*\}", text, re.DOTALL
    )
    if not matches:
        raise ValueError("No JSON object found in output")

    try:
        data = json.loads(matches[-1])
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON format: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("JSON output is not an object")
    return data


class ClaudeImplementer:
    """Implements tickets by running Claude in the workspace."""

    def __init__(
        self,
        runner: ClaudeRunner,
        prompts: Optional[PromptBuilder] = None,
        max_turns: int = 40,
        console: Optional[Console] = None,
    ):
        self.runner = runner
        self.prompts = prompts or PromptBuilder()
        self.max_turns = max_turns
        self.console = console

    def implement(self, ticket: Ticket, workspace: Path) -> ImplementationResult:
        prompt = self.prompts.build_implementation(ticket)
        result = self.runner.run(
            prompt, cwd=workspace, max_turns=self.max_turns, console=self.console
        )

        if not result.success:
            return ImplementationResult(
                success=False,
                tokens_used=result.tokens_used,
                cost=result.cost,
                error=result.error or "Implementation failed",
            )

        # A missing summary is not a failure; the model did run to completion
        try:
            summary = parse_json_block(result.response)
        except ValueError:
            logger.warning(f"No implementation summary for {ticket.id}")
            summary = {}

        success = bool(summary.get("success", True))
        return ImplementationResult(
            success=success,
            tokens_used=result.tokens_used,
            cost=result.cost,
            error=None if success else str(summary.get("error") or "Implementation failed"),
            fix_count=int(summary.get("files_changed", 0) or 0),
        )


class ClaudeReviewer:
    """Reviews and fixes the uncommitted diff with Claude."""

    def __init__(
        self,
        runner: ClaudeRunner,
        prompts: Optional[PromptBuilder] = None,
        max_turns: int = 30,
        console: Optional[Console] = None,
    ):
        self.runner = runner
        self.prompts = prompts or PromptBuilder()
        self.max_turns = max_turns
        self.console = console

    def review(self, workspace: Path, ticket: Ticket) -> ReviewResult:
        """Run the review.

        Raises:
            RuntimeError: If the review run fails; the engine turns this into a
                ticket failure
        """
        prompt = self.prompts.build_review(ticket)
        result = self.runner.run(
            prompt, cwd=workspace, max_turns=self.max_turns, console=self.console
        )
        if not result.success:
            raise RuntimeError(result.error or "Review failed")

        try:
            summary = parse_json_block(result.response)
        except ValueError:
            logger.warning(f"No review summary for {ticket.id}")
            summary = {}

        return ReviewResult(
            fixes_applied=int(summary.get("fixes_applied", 0) or 0),
            issues_found=int(summary.get("issues_found", 0) or 0),
            tokens_used=result.tokens_used,
            cost=result.cost,
        )


class ClaudeTester:
    """Runs end-to-end checks through Claude and reports pass/fail."""

    def __init__(
        self,
        runner: ClaudeRunner,
        workspace: Path,
        prompts: Optional[PromptBuilder] = None,
        url: Optional[str] = None,
        headless: bool = True,
        max_turns: int = 50,
        console: Optional[Console] = None,
    ):
        self.runner = runner
        self.workspace = workspace
        self.prompts = prompts or PromptBuilder()
        self.url = url
        self.headless = headless
        self.max_turns = max_turns
        self.console = console

    def test(self, prompt: str, ticket: Ticket) -> TestResult:
        full_prompt = self.prompts.build_test(
            prompt, ticket, url=self.url, headless=self.headless
        )
        result = self.runner.run(
            full_prompt,
            cwd=self.workspace,
            max_turns=self.max_turns,
            console=self.console,
        )

        if not result.success:
            return TestResult(
                success=False,
                output=result.response,
                tokens_used=result.tokens_used,
                cost=result.cost,
                error=result.error or "Test run failed",
            )

        try:
            summary = parse_json_block(result.response)
        except ValueError as e:
            return TestResult(
                success=False,
                output=result.response,
                tokens_used=result.tokens_used,
                cost=result.cost,
                error=f"Unreadable test report: {e}",
            )

        success = bool(summary.get("success", False))
        output = str(summary.get("output") or result.response)
        return TestResult(
            success=success,
            output=output,
            tokens_used=result.tokens_used,
            cost=result.cost,
            error=None if success else output,
        )


class CommandLinter:
    """Runs configured lint/format/typecheck commands in the workspace.

    Best-effort: command failures are logged and never raised. The fix count is
    the number of files that became dirty while the commands ran.
    """

    def __init__(self, commands: Sequence[str], timeout: int = LINT_TIMEOUT):
        self.commands = list(commands)
        self.timeout = timeout

    def _changed_files(self, git: GitOperations) -> set[str]:
        try:
            return git.changed_files()
        except GitError as e:
            logger.debug(f"Could not read git status: {e}")
            return set()

    def lint(self, workspace: Path) -> LintResult:
        if not self.commands:
            return LintResult(fix_count=0)

        git = GitOperations(workspace)
        before = self._changed_files(git)

        for command in self.commands:
            logger.info(f"Running lint command: {command}")
            try:
                result = subprocess.run(
                    shlex.split(command),
                    cwd=workspace,
                    capture_output=True,
                    text=True,
                    check=False,
                    timeout=self.timeout,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.warning(f"Lint command '{command}' could not run: {e}")
                continue

            if result.returncode != 0:
                logger.warning(
                    f"Lint command '{command}' exited with {result.returncode}: "
                    f"{result.stderr.strip() or result.stdout.strip()}"
                )

        after = self._changed_files(git)
        return LintResult(fix_count=len(after - before))


class GitCommitter:
    """Stages all workspace changes and commits them for a ticket."""

    def commit(self, ticket: Ticket, workspace: Path) -> None:
        """Commit workspace changes as ``feat: {id} - {title}``.

        Raises:
            GitError: If staging or committing fails
        """
        git = GitOperations(workspace)
        if not git.has_changes():
            logger.info(f"No changes to commit for {ticket.id}")
            return

        git.stage_all()
        sha = git.commit(commit_message(ticket))
        logger.info(f"Committed {ticket.id}: {sha}")


def commit_message(ticket: Ticket) -> str:
    return f"feat: {ticket.id} - {ticket.title}"
