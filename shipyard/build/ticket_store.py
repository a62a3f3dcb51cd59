"""Durable ticket file storage.

The store is the sole durable record of ticket status. It uses whole-file
read-modify-write semantics: every status update loads the full file, mutates
one ticket, and rewrites the full file atomically (temp file + rename). There
is no locking; a single writer per ticket file is assumed.

JSON is the default format. Files ending in ``.yaml`` or ``.yml`` are read and
written with PyYAML using the same document shape::

    {"generatedAt": "...", "totalTickets": 3, "tickets": [...]}
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from shipyard.build.models import Ticket, TicketsFile, TicketStatus

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")

DEFAULT_ERROR = "Ticket failed"


class TicketStoreError(Exception):
    """Raised when the ticket file is missing or cannot be parsed."""

    pass


class TicketStore:
    """Load, save and update tickets in a single ticket file."""

    def __init__(self, path: Path):
        """Initialize the store.

        Args:
            path: Path to the ticket file (JSON, or YAML by suffix)
        """
        self.path = Path(path)

    @property
    def is_yaml(self) -> bool:
        return self.path.suffix.lower() in YAML_SUFFIXES

    def load(self) -> TicketsFile:
        """Load the full ticket file.

        The stored ``totalTickets`` value is never trusted; the count is always
        derived from the ticket list.

        Returns:
            TicketsFile with all tickets

        Raises:
            TicketStoreError: If the file is missing or malformed
        """
        if not self.path.exists():
            raise TicketStoreError(
                f"Tickets file not found: {self.path}\n"
                f"Please generate tickets first."
            )

        try:
            content = self.path.read_text(encoding="utf-8")
            data = yaml.safe_load(content) if self.is_yaml else json.loads(content)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise TicketStoreError(f"Failed to parse tickets file: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("tickets"), list):
            raise TicketStoreError(
                f"Failed to parse tickets file: {self.path} has no 'tickets' list"
            )

        try:
            tickets = [Ticket.from_dict(entry) for entry in data["tickets"]]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise TicketStoreError(f"Invalid ticket in {self.path}: {e}") from e

        declared = data.get("totalTickets")
        if declared is not None and declared != len(tickets):
            logger.warning(
                f"{self.path}: totalTickets={declared} disagrees with "
                f"{len(tickets)} tickets, using the ticket list"
            )

        generated_at = data.get("generatedAt")
        if generated_at is None:
            return TicketsFile(tickets=tickets)
        return TicketsFile(tickets=tickets, generated_at=str(generated_at))

    def save(self, tickets_file: TicketsFile) -> None:
        """Write the full ticket file atomically with a recomputed count."""
        document = self._to_document(tickets_file)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=self.path.parent,
            delete=False,
            suffix=".tmp",
            encoding="utf-8",
        ) as f:
            if self.is_yaml:
                yaml.safe_dump(document, f, sort_keys=False, allow_unicode=True)
            else:
                json.dump(document, f, indent=2, ensure_ascii=False)
                f.write("\n")
            temp_path = f.name

        Path(temp_path).replace(self.path)

        logger.debug(f"Tickets saved to {self.path}")

    def write_new(self, tickets: Iterable[Ticket]) -> TicketsFile:
        """Create (or overwrite) the ticket file with a fresh timestamp."""
        tickets_file = TicketsFile(tickets=list(tickets))
        self.save(tickets_file)
        return tickets_file

    def find(self, ticket_id: str) -> Optional[Ticket]:
        return self.load().find(ticket_id)

    def update_status(
        self, ticket_id: str, status: TicketStatus, error: Optional[str] = None
    ) -> bool:
        """Update one ticket's status (load, mutate, rewrite).

        Args:
            ticket_id: ID of ticket to update
            status: New status
            error: Failure message, kept only when status is Error
                (DEFAULT_ERROR when omitted)

        Returns:
            True if the ticket was found and updated, False otherwise
        """
        tickets_file = self.load()
        ticket = tickets_file.find(ticket_id)

        if ticket is None:
            logger.warning(f"Ticket {ticket_id} not found, skipping status update")
            return False

        old_status = ticket.status
        ticket.status = status
        if status == TicketStatus.ERROR:
            ticket.error = error or DEFAULT_ERROR
        else:
            ticket.error = None

        self.save(tickets_file)
        logger.info(f"Ticket {ticket_id}: {old_status.value} -> {status.value}")
        return True

    def reset_all(self) -> int:
        """Reset every ticket to Todo and clear errors.

        Returns:
            Number of tickets whose status changed
        """
        tickets_file = self.load()
        reset_count = 0

        for ticket in tickets_file.tickets:
            if ticket.status != TicketStatus.TODO:
                ticket.status = TicketStatus.TODO
                reset_count += 1
            ticket.error = None

        self.save(tickets_file)
        logger.info(f"Reset {reset_count} ticket(s) to Todo in {self.path}")
        return reset_count

    @staticmethod
    def _to_document(tickets_file: TicketsFile) -> dict[str, Any]:
        return {
            "generatedAt": tickets_file.generated_at,
            "totalTickets": tickets_file.total_tickets,
            "tickets": [ticket.to_dict() for ticket in tickets_file.tickets],
        }
