"""Init command implementation."""

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from shipyard.core.config import DEFAULT_TICKETS_FILE, Config

console = Console()


def settings_table(config: Config) -> Table:
    """Summarize the settings a build will run with."""
    rates = config.rate_table()
    lint = config.lint_commands()

    table = Table(title=f"Settings ({config.config_file})", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Claude CLI", config.get("claude.cli_command", "claude"))
    table.add_row("Model", config.get("claude.model") or "[dim]CLI default[/dim]")
    table.add_row("Tickets file", config.get("build.tickets_file", DEFAULT_TICKETS_FILE))
    table.add_row("Test attempts", str(config.get("build.max_test_attempts", 3)))
    table.add_row("Lint", "\n".join(lint) if lint else "[dim]none[/dim]")
    table.add_row("Required env", ", ".join(config.required_env()))
    table.add_row(
        "Pricing (USD/M)",
        f"in {rates.input} / out {rates.output} / "
        f"cache write {rates.cache_creation} / cache read {rates.cache_read}",
    )
    return table


def command(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite existing configuration"
    ),
    show_config: bool = typer.Option(
        False, "--show", help="Show the effective settings without writing anything"
    ),
):
    """Initialize shipyard configuration (XDG-compliant).

    Creates ~/.config/shipyard/config.toml with default settings.
    """
    config = Config()

    if show_config:
        console.print(settings_table(config))
        if not config.exists():
            console.print("[dim]No config file yet, defaults shown. Run init to create it.[/dim]")
        return

    if config.exists() and not force:
        console.print(
            Panel(
                f"[yellow]Configuration already exists:[/yellow]\n{config.config_file}\n\n"
                "Use [bold]--force[/bold] to reset it to defaults",
                title="Config Exists",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=1)

    try:
        config.config_file.unlink(missing_ok=True)
        config_path = config.create_default()
    except OSError as e:
        console.print(f"[red]ERROR:[/red] Failed to create configuration: {e}")
        raise typer.Exit(code=1) from e

    console.print(
        Panel(
            f"[green]Configuration created:[/green]\n{config_path}\n\n"
            "Edit [bold][lint] commands[/bold] to match your project's tooling.",
            title="✓ Initialized",
            border_style="green",
        )
    )
