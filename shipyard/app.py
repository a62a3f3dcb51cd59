"""Main Typer application instance."""

import typer
from shipyard.commands import build, init, status

app = typer.Typer(
    name="shipyard",
    help="Turn a backlog of tickets into implemented, reviewed, tested commits",
    add_completion=False
)

# Register commands
app.command(name="init")(init.command)
app.command(name="build")(build.command)
app.command(name="status")(status.command)


def main():
    """Entry point for pip-installed command."""
    app()


if __name__ == "__main__":
    main()
