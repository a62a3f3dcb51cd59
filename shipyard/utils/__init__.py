"""Utility modules for shipyard CLI."""

from shipyard.utils.path_resolver import (
    PathResolutionError,
    resolve_directory,
    resolve_tickets_file,
)

__all__ = [
    "PathResolutionError",
    "resolve_directory",
    "resolve_tickets_file",
]
