"""XDG-compliant configuration management for shipyard."""

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from shipyard.build.cost import RateTable

DEFAULT_TICKETS_FILE = "tickets.json"
DEFAULT_REQUIRED_ENV = ["ANTHROPIC_API_KEY"]


class Config:
    """Manages shipyard configuration following XDG Base Directory spec.

    Attributes:
        config_dir: Path to ~/.config/shipyard/
        config_file: Path to ~/.config/shipyard/config.toml
    """

    def __init__(self, config_file: Optional[Path] = None):
        """Initialize config paths using XDG Base Directory specification.

        Args:
            config_file: Explicit config file, overriding the XDG location
        """
        # Use XDG_CONFIG_HOME if set, otherwise default to ~/.config
        xdg_config = os.getenv("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
        self.config_dir = Path(xdg_config) / "shipyard"
        self.config_file = config_file or self.config_dir / "config.toml"

        self._config = self._load() if self.config_file.exists() else {}

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_file.exists()

    def _load(self) -> dict:
        """Load configuration from TOML file."""
        try:
            with open(self.config_file, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise RuntimeError(f"Failed to load config: {e}") from e

    def get(self, key: str, default=None):
        """Get configuration value by key (supports dot notation).

        Args:
            key: Configuration key (e.g., 'claude.cli_command')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        value: Any = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def rate_table(self) -> RateTable:
        """Build the pricing rate table from the [pricing] section."""
        return RateTable.from_mapping(self.get("pricing"))

    def lint_commands(self) -> list[str]:
        return list(self.get("lint.commands", []))

    def required_env(self) -> list[str]:
        return list(self.get("build.required_env", DEFAULT_REQUIRED_ENV))

    @staticmethod
    def get_default_config() -> str:
        """Return default configuration TOML template."""
        return """# Shipyard Configuration
# Location: ~/.config/shipyard/config.toml
# Follows XDG Base Directory Specification

[claude]
# Claude CLI command (override if using custom path)
cli_command = "claude"

# Model override (optional)
# model = "sonnet"

# Turn limit for every Claude call (optional, per-step defaults otherwise)
# max_turns = 40

# Subprocess timeout in seconds
timeout = 3600

[build]
# Ticket file, relative to the project directory
tickets_file = "tickets.json"

# Review each implementation ticket (schema tickets are never reviewed)
review = true

# Run end-to-end test tickets
test = true

# Tester invocations per test ticket
max_test_attempts = 3

# Environment variables that must be set before a build starts
required_env = ["ANTHROPIC_API_KEY"]

[lint]
# Commands run in the project directory after each implementation
commands = []
# commands = ["npm run format", "npm run lint -- --fix", "npm run typecheck"]

[pricing]
# USD per million tokens
input = 3.00
output = 15.00
cache_creation = 3.75
cache_read = 0.30
"""

    def create_default(self) -> Path:
        """Create default configuration file.

        Returns:
            Path to created config file

        Raises:
            FileExistsError: If config already exists
        """
        if self.config_file.exists():
            raise FileExistsError(
                f"Configuration already exists: {self.config_file}\n"
                "Remove it first or use --force to overwrite"
            )

        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(self.get_default_config())

        return self.config_file
