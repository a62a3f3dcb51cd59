"""Deterministic processing order for pending tickets.

Later phases depend on artifacts produced by earlier ones (application code
assumes the schema migration already ran), so tickets are grouped by the
category encoded in their id and processed phase by phase:

    schema -> db validation -> engine -> backend -> frontend -> e2e test -> other

Generated backlogs come in batches named by an id prefix. A whole batch runs
before the next one starts (SCAFFOLD, then LOGIC, then PLAN, then unprefixed
tickets), and the phase order applies inside each batch.

Within a phase, tickets are ordered by the number in the trailing ``-N``
segment of the id. The sort is stable, so ties keep their input order.
"""

from __future__ import annotations

import re
from typing import Iterable

from shipyard.build.models import Ticket, TicketsFile, TicketStatus

BATCH_PREFIXES = ("SCAFFOLD", "LOGIC", "PLAN")

UNBATCHED = len(BATCH_PREFIXES)

# Checked in order; DB-TEST must win over the generic TEST segment.
_PHASE_PATTERNS: list[tuple[int, re.Pattern[str]]] = [
    (1, re.compile(r"(?:^|-)SCHEMA(?:-|$)")),
    (2, re.compile(r"(?:^|-)DB-TEST(?:-|$)")),
    (3, re.compile(r"(?:^|-)ENGINE(?:-|$)")),
    (4, re.compile(r"(?:^|-)BACKEND(?:-|$)")),
    (5, re.compile(r"(?:^|-)FRONTEND(?:-|$)")),
    (6, re.compile(r"(?:^|-)(?:WEB-TEST|TEST|E2E)(?:-|$)")),
]

UNKNOWN_PHASE = 7

_DIGITS = re.compile(r"[0-9]+")

PROCESSABLE_STATUSES = frozenset({TicketStatus.TODO, TicketStatus.ERROR})


def phase_of(ticket_id: str) -> int:
    """Return the phase rank for a ticket id (unrecognized ids sort last)."""
    upper = ticket_id.upper()
    for rank, pattern in _PHASE_PATTERNS:
        if pattern.search(upper):
            return rank
    return UNKNOWN_PHASE


def batch_of(ticket_id: str) -> int:
    """Return the batch rank from the leading id segment (unprefixed ids sort last)."""
    head = ticket_id.upper().split("-", 1)[0]
    if head in BATCH_PREFIXES:
        return BATCH_PREFIXES.index(head)
    return UNBATCHED


def ticket_number(ticket_id: str) -> int:
    """Parse the trailing ``-N`` segment, treating anything else as 0.

    >>> ticket_number("BACKEND-10")
    10
    >>> ticket_number("BACKEND-x")
    0
    """
    _, sep, tail = ticket_id.rpartition("-")
    if not sep or not _DIGITS.fullmatch(tail):
        return 0
    return int(tail)


def sort_tickets(tickets: Iterable[Ticket]) -> list[Ticket]:
    """Return tickets in processing order without modifying the input."""
    return sorted(
        tickets, key=lambda t: (batch_of(t.id), phase_of(t.id), ticket_number(t.id))
    )


def select_tickets_to_process(tickets_file: TicketsFile) -> list[Ticket]:
    """Pick Todo and Error tickets (errors are retried automatically) and sort them."""
    pending = [t for t in tickets_file.tickets if t.status in PROCESSABLE_STATUSES]
    return sort_tickets(pending)
