"""Path resolution utilities for CLI arguments."""

from pathlib import Path
from typing import Optional

TICKET_FILE_SUFFIXES = (".json", ".yaml", ".yml")


class PathResolutionError(Exception):
    """Raised when path resolution fails."""
    pass


def resolve_directory(arg: Optional[str]) -> Path:
    """Resolve the project directory argument (default: current directory).

    Raises:
        PathResolutionError: If the path is missing or not a directory
    """
    directory = Path(arg).expanduser().resolve() if arg else Path.cwd()

    if not directory.exists():
        raise PathResolutionError(
            f"Directory not found: {directory}\n"
            f"Please provide a valid directory using --directory=<path>"
        )
    if not directory.is_dir():
        raise PathResolutionError(
            f"Path is not a directory: {directory}\n"
            f"Please provide a valid directory path."
        )
    return directory


def resolve_tickets_file(arg: str, directory: Path) -> Path:
    """Resolve the tickets file argument relative to the project directory.

    Handles:
    1. Line number notation (e.g., "tickets.json:12" -> "tickets.json")
    2. Directory inference (if the directory holds exactly one ticket file
       whose name contains "tickets")

    Args:
        arg: Raw argument string from CLI
        directory: Project directory used for relative paths

    Returns:
        Resolved Path object

    Raises:
        PathResolutionError: If path cannot be resolved
    """
    # Strip line number notation
    if ":" in arg and not Path(arg).exists():
        arg = arg.split(":", 1)[0]

    path = Path(arg).expanduser()
    if not path.is_absolute():
        path = directory / path

    if path.is_file():
        return path

    if path.is_dir():
        matching_files = [
            f for f in path.iterdir()
            if f.is_file()
            and "tickets" in f.name.lower()
            and f.suffix.lower() in TICKET_FILE_SUFFIXES
        ]

        if len(matching_files) == 0:
            raise PathResolutionError(
                f"Tickets file not found: No ticket files in directory: {path}"
            )
        elif len(matching_files) > 1:
            files_list = "\n  ".join(sorted(f.name for f in matching_files))
            raise PathResolutionError(
                f"Tickets file ambiguous: Multiple ticket files found in {path}:\n  {files_list}\n"
                f"Please specify the exact file."
            )

        return matching_files[0]

    raise PathResolutionError(
        f"Tickets file not found: {path}\n"
        f"Please generate tickets first or pass --tickets=<path>"
    )
