"""Git operations wrapper using subprocess for committing ticket work.

This module provides a GitOperations class that wraps the git subprocess
commands needed after a ticket is built: detecting changes, staging, and
committing to the current branch.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional, Union


class GitError(Exception):
    """Exception raised when git operations fail."""

    pass


class GitOperations:
    """Wrapper for git subprocess commands with proper error handling."""

    def __init__(self, repo_path: Optional[Union[str, Path]] = None):
        """Initialize GitOperations.

        Args:
            repo_path: Path to git repository. If None, uses current directory.
        """
        self.repo_path = repo_path

    def _run_git_command(
        self, args: List[str], check: bool = True
    ) -> subprocess.CompletedProcess:
        """Run a git command with proper error handling.

        Args:
            args: Git command arguments (e.g., ["git", "status"])
            check: Whether to raise exception on non-zero exit code

        Returns:
            CompletedProcess object with command results

        Raises:
            GitError: If command fails and check=True
        """
        try:
            result = subprocess.run(
                args,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise GitError(f"Git executable not found: {e}") from e
        except OSError as e:
            raise GitError(f"Unexpected error running git command: {e}") from e

        if check and result.returncode != 0:
            raise GitError(
                f"Git command failed: {' '.join(args)}\n"
                f"Exit code: {result.returncode}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        return result

    def is_repository(self) -> bool:
        """Check whether repo_path is inside a git work tree."""
        try:
            result = self._run_git_command(
                ["git", "rev-parse", "--is-inside-work-tree"], check=False
            )
        except GitError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def changed_files(self) -> set[str]:
        """Return paths with uncommitted changes (tracked or untracked)."""
        result = self._run_git_command(["git", "status", "--porcelain"])
        files = set()
        for line in result.stdout.splitlines():
            if len(line) > 3:
                files.add(line[3:].strip())
        return files

    def has_changes(self) -> bool:
        return bool(self.changed_files())

    def stage_all(self) -> None:
        """Stage every change in the work tree."""
        self._run_git_command(["git", "add", "-A"])

    def commit(self, message: str) -> str:
        """Commit staged changes.

        Args:
            message: Commit message

        Returns:
            SHA of the new commit

        Raises:
            GitError: If the commit fails
        """
        self._run_git_command(["git", "commit", "-m", message])
        result = self._run_git_command(["git", "rev-parse", "HEAD"])
        return result.stdout.strip()
