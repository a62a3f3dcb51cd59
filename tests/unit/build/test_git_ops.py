"""Unit tests for GitOperations with mocked subprocess calls."""

import subprocess
from unittest.mock import patch

import pytest

from shipyard.build.git_operations import GitError, GitOperations


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(
        args=["git"], returncode=returncode, stdout=stdout, stderr=stderr
    )


class TestRunGitCommand:
    """Test _run_git_command helper method."""

    @patch("subprocess.run")
    def test_successful_command(self, mock_run):
        mock_run.return_value = completed(stdout="output")

        result = GitOperations(repo_path="/path/to/repo")._run_git_command(["git", "status"])

        assert result.stdout == "output"
        mock_run.assert_called_once_with(
            ["git", "status"],
            cwd="/path/to/repo",
            capture_output=True,
            text=True,
            check=False,
        )

    @patch("subprocess.run")
    def test_failed_command_with_check(self, mock_run):
        mock_run.return_value = completed(returncode=128, stderr="fatal: bad")

        with pytest.raises(GitError, match="Exit code: 128"):
            GitOperations()._run_git_command(["git", "log"])

    @patch("subprocess.run")
    def test_failed_command_without_check(self, mock_run):
        mock_run.return_value = completed(returncode=1)

        assert GitOperations()._run_git_command(["git", "log"], check=False).returncode == 1

    @patch("subprocess.run")
    def test_git_missing(self, mock_run):
        mock_run.side_effect = FileNotFoundError("git")

        with pytest.raises(GitError, match="Git executable not found"):
            GitOperations()._run_git_command(["git", "status"])


class TestQueries:
    """Test read-only git queries."""

    @patch("subprocess.run")
    def test_is_repository(self, mock_run):
        mock_run.return_value = completed(stdout="true\n")

        assert GitOperations().is_repository()

    @patch("subprocess.run")
    def test_is_not_repository(self, mock_run):
        mock_run.return_value = completed(returncode=128, stderr="fatal: not a git repository")

        assert not GitOperations().is_repository()

    @patch("subprocess.run")
    def test_changed_files(self, mock_run):
        mock_run.return_value = completed(stdout=" M src/app.ts\n?? src/new.ts\nA  README.md\n")

        ops = GitOperations()

        assert ops.changed_files() == {"src/app.ts", "src/new.ts", "README.md"}
        assert ops.has_changes()

    @patch("subprocess.run")
    def test_clean_tree(self, mock_run):
        mock_run.return_value = completed(stdout="")

        assert not GitOperations().has_changes()


class TestCommit:
    """Test staging and committing."""

    @patch("subprocess.run")
    def test_stage_and_commit(self, mock_run):
        mock_run.side_effect = [completed(), completed(), completed(stdout="abc123\n")]
        ops = GitOperations(repo_path="/repo")

        ops.stage_all()
        sha = ops.commit("feat: BACKEND-1 - Add API")

        assert sha == "abc123"
        assert [c.args[0] for c in mock_run.call_args_list] == [
            ["git", "add", "-A"],
            ["git", "commit", "-m", "feat: BACKEND-1 - Add API"],
            ["git", "rev-parse", "HEAD"],
        ]

    @patch("subprocess.run")
    def test_commit_failure(self, mock_run):
        mock_run.return_value = completed(returncode=1, stdout="nothing to commit")

        with pytest.raises(GitError):
            GitOperations().commit("msg")
