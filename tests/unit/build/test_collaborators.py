"""Unit tests for the Claude-backed and command collaborators."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from shipyard.build.collaborators import (
    ClaudeImplementer,
    ClaudeReviewer,
    ClaudeTester,
    CommandLinter,
    GitCommitter,
    commit_message,
    parse_json_block,
)
from shipyard.build.git_operations import GitError
from shipyard.build.models import Ticket, TicketType, TokenUsage
from shipyard.core.claude import ClaudeResult


@pytest.fixture
def ticket():
    return Ticket(id="BACKEND-1", title="Add API", description="Expose /users")


@pytest.fixture
def runner():
    return MagicMock()


class TestParseJsonBlock:
    """Test extraction of the trailing JSON summary."""

    def test_last_object_wins(self):
        text = 'I considered {"success": false} first.\nFinal: {"success": true, "files_changed": 2}'

        assert parse_json_block(text) == {"success": True, "files_changed": 2}

    def test_nested_object(self):
        text = 'Done. {"success": true, "details": {"a": {"b": 1}}}'

        assert parse_json_block(text)["details"] == {"a": {"b": 1}}

    def test_no_json(self):
        with pytest.raises(ValueError, match="No JSON object"):
            parse_json_block("nothing here")

    def test_invalid_json(self):
        with pytest.raises(ValueError, match="Invalid JSON"):
            parse_json_block("{not: valid}")


class TestClaudeImplementer:
    """Test ClaudeImplementer result mapping."""

    def test_success(self, runner, ticket, tmp_path):
        runner.run.return_value = ClaudeResult(
            success=True,
            response='Implemented.\n{"success": true, "files_changed": 3}',
            tokens_used=TokenUsage(input=100, output=20),
            cost=0.01,
        )

        result = ClaudeImplementer(runner).implement(ticket, tmp_path)

        assert result.success
        assert result.fix_count == 3
        assert result.tokens_used == TokenUsage(input=100, output=20)
        prompt = runner.run.call_args.args[0]
        assert "BACKEND-1" in prompt
        assert runner.run.call_args.kwargs["cwd"] == tmp_path
        assert runner.run.call_args.kwargs["max_turns"] == 40

    def test_reported_failure(self, runner, ticket, tmp_path):
        runner.run.return_value = ClaudeResult(
            success=True, response='{"success": false, "error": "tests do not compile"}'
        )

        result = ClaudeImplementer(runner).implement(ticket, tmp_path)

        assert not result.success
        assert result.error == "tests do not compile"

    def test_missing_summary_is_success(self, runner, ticket, tmp_path):
        runner.run.return_value = ClaudeResult(success=True, response="All done.")

        assert ClaudeImplementer(runner).implement(ticket, tmp_path).success

    def test_runner_failure(self, runner, ticket, tmp_path):
        runner.run.return_value = ClaudeResult(
            success=False, error="exit code 1", tokens_used=TokenUsage(input=5)
        )

        result = ClaudeImplementer(runner).implement(ticket, tmp_path)

        assert not result.success
        assert result.error == "exit code 1"
        assert result.tokens_used == TokenUsage(input=5)


class TestClaudeReviewer:
    """Test ClaudeReviewer result mapping."""

    def test_review_counts(self, runner, ticket, tmp_path):
        runner.run.return_value = ClaudeResult(
            success=True, response='{"issues_found": 4, "fixes_applied": 3}'
        )

        result = ClaudeReviewer(runner).review(tmp_path, ticket)

        assert (result.issues_found, result.fixes_applied) == (4, 3)
        assert "git diff" in runner.run.call_args.args[0]

    def test_review_failure_raises(self, runner, ticket, tmp_path):
        runner.run.return_value = ClaudeResult(success=False, error="timed out")

        with pytest.raises(RuntimeError, match="timed out"):
            ClaudeReviewer(runner).review(tmp_path, ticket)


class TestClaudeTester:
    """Test ClaudeTester pass/fail reporting."""

    def test_pass(self, runner, tmp_path):
        ticket = Ticket(id="WEB-TEST-1", title="Login", type=TicketType.WEB_TEST)
        runner.run.return_value = ClaudeResult(
            success=True, response='{"success": true, "output": "login works"}'
        )

        result = ClaudeTester(runner, tmp_path, url="http://localhost:3000").test(
            "Test login", ticket
        )

        assert result.success
        assert result.output == "login works"
        prompt = runner.run.call_args.args[0]
        assert "Test login" in prompt
        assert "http://localhost:3000" in prompt
        assert "headless" in prompt

    def test_fail_carries_output(self, runner, tmp_path):
        ticket = Ticket(id="WEB-TEST-1", title="Login", type=TicketType.WEB_TEST)
        runner.run.return_value = ClaudeResult(
            success=True, response='{"success": false, "output": "button missing"}'
        )

        result = ClaudeTester(runner, tmp_path).test("Test login", ticket)

        assert not result.success
        assert result.error == "button missing"

    def test_unreadable_report_fails(self, runner, tmp_path):
        ticket = Ticket(id="WEB-TEST-1", title="Login", type=TicketType.WEB_TEST)
        runner.run.return_value = ClaudeResult(success=True, response="looked fine to me")

        result = ClaudeTester(runner, tmp_path).test("Test login", ticket)

        assert not result.success
        assert "Unreadable test report" in result.error


class TestCommandLinter:
    """Test CommandLinter best-effort behaviour."""

    def test_no_commands(self, tmp_path):
        assert CommandLinter([]).lint(tmp_path).fix_count == 0

    @patch("shipyard.build.collaborators.GitOperations")
    @patch("subprocess.run")
    def test_counts_newly_dirty_files(self, mock_run, mock_git_class, tmp_path):
        mock_git_class.return_value.changed_files.side_effect = [
            {"src/a.ts"},
            {"src/a.ts", "src/b.ts", "src/c.ts"},
        ]
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=0, stdout="", stderr=""
        )

        result = CommandLinter(["npm run lint -- --fix"]).lint(tmp_path)

        assert result.fix_count == 2
        mock_run.assert_called_once_with(
            ["npm", "run", "lint", "--", "--fix"],
            cwd=tmp_path,
            capture_output=True,
            text=True,
            check=False,
            timeout=600,
        )

    @patch("shipyard.build.collaborators.GitOperations")
    @patch("subprocess.run")
    def test_failures_never_raise(self, mock_run, mock_git_class, tmp_path):
        mock_git_class.return_value.changed_files.side_effect = GitError("not a repo")
        mock_run.side_effect = [
            FileNotFoundError("npx"),
            subprocess.CompletedProcess(args=[], returncode=2, stdout="", stderr="lint errors"),
        ]

        result = CommandLinter(["npx prettier --write .", "npm run lint"]).lint(tmp_path)

        assert result.fix_count == 0
        assert mock_run.call_count == 2


class TestGitCommitter:
    """Test GitCommitter."""

    def test_commit_message(self, ticket):
        assert commit_message(ticket) == "feat: BACKEND-1 - Add API"

    @patch("shipyard.build.collaborators.GitOperations")
    def test_commits_changes(self, mock_git_class, ticket, tmp_path):
        git = mock_git_class.return_value
        git.has_changes.return_value = True
        git.commit.return_value = "abc123"

        GitCommitter().commit(ticket, tmp_path)

        mock_git_class.assert_called_once_with(tmp_path)
        git.stage_all.assert_called_once()
        git.commit.assert_called_once_with("feat: BACKEND-1 - Add API")

    @patch("shipyard.build.collaborators.GitOperations")
    def test_nothing_to_commit(self, mock_git_class, ticket, tmp_path):
        git = mock_git_class.return_value
        git.has_changes.return_value = False

        GitCommitter().commit(ticket, tmp_path)

        git.commit.assert_not_called()
