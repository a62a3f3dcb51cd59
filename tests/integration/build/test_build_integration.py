"""Integration tests for a full build against a real git repository."""

import io
import subprocess
from pathlib import Path

import pytest
from rich.console import Console

from shipyard.build.collaborators import Collaborators, CommandLinter, GitCommitter
from shipyard.build.consumers import TerminalConsumer
from shipyard.build.engine import BuildEngine
from shipyard.build.models import (
    BuildOptions,
    ImplementationResult,
    ReviewResult,
    TestResult,
    Ticket,
    TicketStatus,
    TicketType,
    TokenUsage,
)
from shipyard.build.sorter import select_tickets_to_process
from shipyard.build.ticket_store import TicketStore


@pytest.fixture
def git_repo(tmp_path):
    """Create a temporary git repository with an initial commit."""
    repo_path = tmp_path / "test_repo"
    repo_path.mkdir()

    for args in (
        ["git", "init"],
        ["git", "config", "user.name", "Test User"],
        ["git", "config", "user.email", "test@example.com"],
    ):
        subprocess.run(args, cwd=repo_path, check=True, capture_output=True)

    (repo_path / "README.md").write_text("# Test Repository\n")
    subprocess.run(["git", "add", "README.md"], cwd=repo_path, check=True, capture_output=True)
    subprocess.run(
        ["git", "commit", "-m", "Initial commit"],
        cwd=repo_path,
        check=True,
        capture_output=True,
    )
    return repo_path


class FileWritingImplementer:
    """Implementer that writes one file per ticket."""

    def __init__(self):
        self.implemented = []

    def implement(self, ticket: Ticket, workspace: Path) -> ImplementationResult:
        self.implemented.append(ticket.id)
        (workspace / f"{ticket.id.lower()}.txt").write_text(ticket.description or ticket.title)
        return ImplementationResult(success=True, tokens_used=TokenUsage(input=1000, output=200))


class NoopReviewer:
    def review(self, workspace: Path, ticket: Ticket) -> ReviewResult:
        return ReviewResult(tokens_used=TokenUsage(input=300))


class FlakyTester:
    """Tester that fails a fixed number of times before passing."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    def test(self, prompt: str, ticket: Ticket) -> TestResult:
        self.calls += 1
        if self.calls <= self.failures:
            return TestResult(success=False, output="login button missing", error="login button missing")
        return TestResult(success=True, output="login works")


def git_log(repo_path):
    result = subprocess.run(
        ["git", "log", "--format=%s"], cwd=repo_path, check=True, capture_output=True, text=True
    )
    return result.stdout.splitlines()


class TestBuildIntegration:
    """Run engine and terminal consumer end to end."""

    def test_build_commits_each_ticket(self, git_repo):
        store = TicketStore(git_repo / ".shipyard" / "tickets.json")
        store.write_new(
            [
                Ticket(id="WEB-TEST-1", title="Login works", type=TicketType.WEB_TEST),
                Ticket(id="BACKEND-1", title="Add API"),
                Ticket(id="SCHEMA-1", title="Add tables", type=TicketType.SCHEMA),
            ]
        )
        implementer = FileWritingImplementer()
        tester = FlakyTester(failures=1)
        collaborators = Collaborators(
            implementer=implementer,
            linter=CommandLinter([]),
            reviewer=NoopReviewer(),
            tester=tester,
        )
        engine = BuildEngine(collaborators, BuildOptions(workspace=git_repo))
        consumer = TerminalConsumer(
            store,
            git_repo,
            committer=GitCommitter(),
            console=Console(file=io.StringIO()),
        )

        summary = consumer.consume(engine.process(select_tickets_to_process(store.load())))

        assert summary.success
        assert summary.completed == ["SCHEMA-1", "BACKEND-1", "WEB-TEST-1"]
        assert implementer.implemented == ["SCHEMA-1", "BACKEND-1", "WEB-TEST-1-FIX-1"]
        assert tester.calls == 2
        assert all(t.status == TicketStatus.DONE for t in store.load().tickets)
        assert git_log(git_repo)[:3] == [
            "feat: WEB-TEST-1 - Login works",
            "feat: BACKEND-1 - Add API",
            "feat: SCHEMA-1 - Add tables",
        ]
        assert summary.result.total_tokens_used == TokenUsage(input=3300, output=600)

    def test_failed_ticket_is_retried_next_run(self, git_repo):
        store = TicketStore(git_repo / "tickets.json")
        store.write_new([Ticket(id="WEB-TEST-1", title="Login", type=TicketType.WEB_TEST)])
        collaborators = Collaborators(
            implementer=FileWritingImplementer(),
            linter=CommandLinter([]),
            reviewer=NoopReviewer(),
            tester=FlakyTester(failures=3),
        )
        console = Console(file=io.StringIO())

        first = TerminalConsumer(store, git_repo, committer=GitCommitter(), console=console)
        engine = BuildEngine(collaborators, BuildOptions(workspace=git_repo))
        summary = first.consume(engine.process(select_tickets_to_process(store.load())))

        assert summary.failed == ["WEB-TEST-1"]
        ticket = store.find("WEB-TEST-1")
        assert ticket.status == TicketStatus.ERROR
        assert ticket.error == "login button missing"

        second = TerminalConsumer(store, git_repo, committer=GitCommitter(), console=console)
        engine = BuildEngine(collaborators, BuildOptions(workspace=git_repo))
        summary = second.consume(engine.process(select_tickets_to_process(store.load())))

        assert summary.success
        assert store.find("WEB-TEST-1").status == TicketStatus.DONE
