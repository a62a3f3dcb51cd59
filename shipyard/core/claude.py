"""Claude CLI execution wrapper."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from rich.console import Console

from shipyard.build.models import TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3600


@dataclass(frozen=True)
class ClaudeResult:
    """Parsed outcome of one headless Claude CLI run."""

    success: bool
    response: str = ""
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    error: Optional[str] = None


class ClaudeRunner:
    """Executes the Claude CLI headlessly in a workspace.

    Runs ``claude -p --output-format json`` with the prompt on stdin and parses
    the JSON summary it prints (response text, usage, cost).
    """

    def __init__(
        self,
        cli_command: str = "claude",
        model: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        """Initialize the runner.

        Args:
            cli_command: Claude CLI executable
            model: Optional model override passed with --model
            timeout: Seconds before the subprocess is killed
        """
        self.cli_command = cli_command
        self.model = model
        self.timeout = timeout

    def _build_command(self, max_turns: Optional[int]) -> list[str]:
        cmd = [
            self.cli_command,
            "-p",
            "--output-format",
            "json",
            "--dangerously-skip-permissions",
        ]
        if self.model:
            cmd.extend(["--model", self.model])
        if max_turns:
            cmd.extend(["--max-turns", str(max_turns)])
        return cmd

    def run(
        self,
        prompt: str,
        cwd: Path,
        max_turns: Optional[int] = None,
        console: Optional[Console] = None,
    ) -> ClaudeResult:
        """Run one prompt to completion.

        Args:
            prompt: Complete prompt text (sent on stdin)
            cwd: Working directory for the subprocess
            max_turns: Optional per-call turn limit
            console: Optional Rich console for displaying a progress spinner

        Returns:
            ClaudeResult; failures (non-zero exit, timeout, unparsable output)
            are reported with success=False rather than raised

        Raises:
            RuntimeError: If the Claude CLI is not found in PATH
        """
        cmd = self._build_command(max_turns)
        run_kwargs: dict[str, Any] = {
            "input": prompt,
            "cwd": cwd,
            "capture_output": True,
            "text": True,
            "check": False,
            "timeout": self.timeout,
        }

        try:
            if console:
                with console.status(
                    "[bold cyan]Executing with Claude...[/bold cyan]",
                    spinner="bouncingBar",
                ):
                    result = subprocess.run(cmd, **run_kwargs)
            else:
                result = subprocess.run(cmd, **run_kwargs)
        except FileNotFoundError as e:
            raise RuntimeError(
                f"Claude CLI not found in PATH: {self.cli_command}\n"
                "Install Claude Code first: https://claude.com/claude-code"
            ) from e
        except subprocess.TimeoutExpired:
            return ClaudeResult(
                success=False, error=f"Claude timed out after {self.timeout} seconds"
            )

        if result.returncode != 0:
            logger.debug(f"Claude stderr: {result.stderr}")
            return ClaudeResult(
                success=False,
                error=(
                    f"Claude subprocess failed with exit code {result.returncode}: "
                    f"{result.stderr.strip()}"
                ),
            )

        try:
            return self.parse_output(result.stdout)
        except ValueError as e:
            return ClaudeResult(success=False, error=str(e))

    @staticmethod
    def parse_output(stdout: str) -> ClaudeResult:
        """Parse the JSON summary printed by ``--output-format json``.

        Raises:
            ValueError: If stdout is not a JSON object
        """
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON output from Claude: {e}") from e

        if not isinstance(data, dict):
            raise ValueError("Claude output is not a JSON object")

        usage = data.get("usage") or {}
        tokens = TokenUsage(
            input=int(usage.get("input_tokens", 0)),
            output=int(usage.get("output_tokens", 0)),
            cache_creation=int(usage.get("cache_creation_input_tokens", 0)),
            cache_read=int(usage.get("cache_read_input_tokens", 0)),
        )
        response = str(data.get("result", ""))
        is_error = bool(data.get("is_error", False))

        return ClaudeResult(
            success=not is_error,
            response=response,
            tokens_used=tokens,
            cost=float(data.get("total_cost_usd", 0.0)),
            error=response if is_error else None,
        )
