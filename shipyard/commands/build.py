"""Build command implementation.

Processes every Todo and Error ticket in phase order, committing each one after
it succeeds. The CLI stops the batch on the first failed ticket unless
--continue-on-error is given; the engine itself always runs to completion.

Usage:
    shipyard build                         # Process and auto-commit all tickets
    shipyard build --ask-commit            # Ask before committing each ticket
    shipyard build --ask-confirm           # Ask before processing each next ticket
    shipyard build --reset                 # Reset all tickets to Todo first
    shipyard build --no-review --no-test   # Skip review and test tickets
    shipyard build --json                  # Emit events as JSON lines
"""

import logging
import os
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from shipyard.build.collaborators import (
    ClaudeImplementer,
    ClaudeReviewer,
    ClaudeTester,
    Collaborators,
    CommandLinter,
    GitCommitter,
)
from shipyard.build.consumers import JsonLinesConsumer, TerminalConsumer
from shipyard.build.engine import BuildCancelled, BuildEngine, ConfigurationError
from shipyard.build.git_operations import GitOperations
from shipyard.build.models import BuildOptions
from shipyard.build.sorter import select_tickets_to_process
from shipyard.build.ticket_store import TicketStore, TicketStoreError
from shipyard.core.claude import ClaudeRunner
from shipyard.core.config import DEFAULT_TICKETS_FILE, Config
from shipyard.utils.path_resolver import (
    PathResolutionError,
    resolve_directory,
    resolve_tickets_file,
)

console = Console()
logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG when verbose, WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fail(message: str, hint: Optional[str] = None) -> typer.Exit:
    console.print(f"[red]ERROR:[/red] {message}")
    if hint:
        console.print(f"[yellow]Hint:[/yellow] {hint}")
    return typer.Exit(code=1)


def _check_environment(required: list[str]) -> None:
    missing = [name for name in required if not os.getenv(name)]
    if missing:
        raise _fail(
            f"Missing required environment variable(s): {', '.join(missing)}",
            "Export the credentials before running build",
        )


def build_collaborators(
    config: Config, options: BuildOptions, console: Optional[Console] = None
) -> Collaborators:
    """Wire the Claude-backed collaborators from configuration."""
    runner = ClaudeRunner(
        cli_command=config.get("claude.cli_command", "claude"),
        model=config.get("claude.model"),
        timeout=int(config.get("claude.timeout", 3600)),
    )
    # A configured turn limit replaces each collaborator's own default
    turns = config.get("claude.max_turns")
    limits = {"max_turns": int(turns)} if turns else {}
    return Collaborators(
        implementer=ClaudeImplementer(runner, console=console, **limits),
        linter=CommandLinter(config.lint_commands()),
        reviewer=ClaudeReviewer(runner, console=console, **limits),
        tester=ClaudeTester(
            runner,
            workspace=options.workspace,
            url=options.url,
            headless=options.headless,
            console=console,
            **limits,
        ),
    )


def command(
    directory: Optional[str] = typer.Option(
        None, "--directory", "-d", help="Project directory (default: current directory)"
    ),
    tickets: Optional[str] = typer.Option(
        None, "--tickets", "-t", help="Tickets file, relative to the project directory"
    ),
    reset: bool = typer.Option(
        False, "--reset", help="Reset all tickets to Todo before processing"
    ),
    ask_confirm: bool = typer.Option(
        False, "--ask-confirm", help="Ask before proceeding to each next ticket"
    ),
    ask_commit: bool = typer.Option(
        False, "--ask-commit", help="Ask before committing each ticket"
    ),
    review: Optional[bool] = typer.Option(
        None, "--review/--no-review", help="Review each implementation ticket"
    ),
    test: Optional[bool] = typer.Option(
        None, "--test/--no-test", help="Run end-to-end test tickets"
    ),
    commit: bool = typer.Option(
        True, "--commit/--no-commit", help="Commit each successful ticket"
    ),
    continue_on_error: bool = typer.Option(
        False, "--continue-on-error", help="Keep going after a ticket fails"
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Write build events to stdout as JSON lines"
    ),
    url: Optional[str] = typer.Option(
        None, "--url", help="Base URL for end-to-end tests"
    ),
    headless: bool = typer.Option(
        True, "--headless/--headed", help="Run test browsers headless"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging"
    ),
):
    """Build all Todo and Error tickets sequentially."""
    configure_logging(verbose)
    # Keep stdout clean for event lines in --json mode
    notices = Console(stderr=True) if json_output else console
    config = Config()

    try:
        workspace = resolve_directory(directory)
        tickets_path = resolve_tickets_file(
            tickets or config.get("build.tickets_file", DEFAULT_TICKETS_FILE),
            workspace,
        )
    except PathResolutionError as e:
        raise _fail(str(e)) from e

    _check_environment(config.required_env())

    committer = None
    if commit:
        if not GitOperations(workspace).is_repository():
            raise _fail(
                f"Not a git repository: {workspace}",
                "Run inside a git repository or pass --no-commit",
            )
        committer = GitCommitter()

    store = TicketStore(tickets_path)
    try:
        if reset:
            reset_count = store.reset_all()
            notices.print(f"[yellow]Reset {reset_count} ticket(s) to Todo[/yellow]")
        tickets_to_process = select_tickets_to_process(store.load())
    except TicketStoreError as e:
        raise _fail(str(e), "Check that the tickets file is properly formatted") from e

    if not tickets_to_process:
        notices.print('[dim]No tickets found with status "Todo" or "Error"[/dim]')
        return

    logger.info(f"Building {len(tickets_to_process)} ticket(s) from {tickets_path}")

    options = BuildOptions(
        workspace=workspace,
        review=config.get("build.review", True) if review is None else review,
        test=config.get("build.test", True) if test is None else test,
        max_test_attempts=int(config.get("build.max_test_attempts", 3)),
        url=url,
        headless=headless,
    )

    if json_output:
        consumer = JsonLinesConsumer(
            store, sys.stdout, workspace=workspace, committer=committer
        )
        collaborators = build_collaborators(config, options)
    else:
        console.print(f"\n[bold]Building tickets in:[/bold] {workspace}")
        console.print(f"[dim]Tickets file: {tickets_path}[/dim]")
        for position, ticket in enumerate(tickets_to_process, start=1):
            console.print(f"  {position}. {ticket.id}: {ticket.title}")
        consumer = TerminalConsumer(
            store,
            workspace,
            committer=committer,
            console=console,
            ask_commit=ask_commit,
            ask_confirm=ask_confirm,
            stop_on_failure=not continue_on_error,
        )
        collaborators = build_collaborators(config, options, console=console)

    engine = BuildEngine(collaborators, options, rates=config.rate_table())

    try:
        summary = consumer.consume(engine.process(tickets_to_process))
    except (KeyboardInterrupt, BuildCancelled):
        marked = consumer.mark_interrupted()
        if marked:
            notices.print(f"\n[yellow]Build interrupted; {marked} marked as Error[/yellow]")
        else:
            notices.print("\n[yellow]Build interrupted[/yellow]")
        raise typer.Exit(code=INTERRUPTED_EXIT_CODE)
    except ConfigurationError as e:
        raise _fail(str(e)) from e
    except TicketStoreError as e:
        raise _fail(str(e), "The tickets file changed during the build") from e
    except RuntimeError as e:
        raise _fail(str(e)) from e

    if not summary.success:
        if summary.failed:
            notices.print(
                "[yellow]Hint:[/yellow] Fix the issue and run build again to retry failed tickets"
            )
        raise typer.Exit(code=1)
