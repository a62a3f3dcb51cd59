"""Build events emitted by the engine.

Events are the only channel through which the engine reports progress. They
form a closed union discriminated by ``kind``::

    ticket_start -> status* -> ticket_complete [-> error]   (per ticket)
    build_complete                                           (exactly once, last)

Consumers that read serialized events must ignore unknown ``type`` values;
:func:`event_from_dict` returns None for them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, ClassVar, Optional, Protocol, Union

from shipyard.build.models import Ticket, TokenUsage


@dataclass(frozen=True)
class TicketStartEvent:
    """A ticket was dequeued and is about to be processed."""

    kind: ClassVar[str] = "ticket_start"

    ticket: Ticket
    index: int
    total: int


@dataclass(frozen=True)
class StatusEvent:
    """Free-form progress message, optionally tied to a ticket."""

    kind: ClassVar[str] = "status"

    message: str
    ticket: Optional[Ticket] = None


@dataclass(frozen=True)
class TicketCompleteEvent:
    """A ticket finished, successfully or not.

    ``tokens_used`` and ``cost`` include every collaborator call made for the
    ticket, failed attempts included.
    """

    kind: ClassVar[str] = "ticket_complete"

    ticket: Ticket
    success: bool
    error: Optional[str] = None
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    cost: Decimal = Decimal("0")
    attempts: int = 1
    skipped: bool = False


@dataclass(frozen=True)
class BuildCompleteEvent:
    """Terminal event with cumulative totals for the run."""

    kind: ClassVar[str] = "build_complete"

    success_count: int
    failed_count: int
    total_tickets: int
    total_tokens_used: TokenUsage = field(default_factory=TokenUsage)
    total_cost: Decimal = Decimal("0")
    skipped_count: int = 0


@dataclass(frozen=True)
class ErrorEvent:
    """A ticket failed; ``message`` is the raw collaborator error."""

    kind: ClassVar[str] = "error"

    message: str
    ticket: Optional[Ticket] = None


BuildEvent = Union[
    TicketStartEvent,
    StatusEvent,
    TicketCompleteEvent,
    BuildCompleteEvent,
    ErrorEvent,
]

EVENT_TYPES: dict[str, type] = {
    cls.kind: cls
    for cls in (
        TicketStartEvent,
        StatusEvent,
        TicketCompleteEvent,
        BuildCompleteEvent,
        ErrorEvent,
    )
}


def _ticket_or_none(data: Optional[dict[str, Any]]) -> Optional[Ticket]:
    return Ticket.from_dict(data) if data else None


def event_to_dict(event: BuildEvent) -> dict[str, Any]:
    """Serialize an event to its JSON wire shape (camelCase, ``type`` tag).

    Costs are written as strings to keep decimal precision.
    """
    if isinstance(event, TicketStartEvent):
        return {
            "type": event.kind,
            "ticket": event.ticket.to_dict(),
            "index": event.index,
            "total": event.total,
        }
    if isinstance(event, StatusEvent):
        data: dict[str, Any] = {"type": event.kind, "message": event.message}
        if event.ticket is not None:
            data["ticket"] = event.ticket.to_dict()
        return data
    if isinstance(event, TicketCompleteEvent):
        data = {
            "type": event.kind,
            "ticket": event.ticket.to_dict(),
            "success": event.success,
            "tokensUsed": event.tokens_used.to_dict(),
            "cost": str(event.cost),
            "attempts": event.attempts,
            "skipped": event.skipped,
        }
        if event.error is not None:
            data["error"] = event.error
        return data
    if isinstance(event, BuildCompleteEvent):
        return {
            "type": event.kind,
            "successCount": event.success_count,
            "failedCount": event.failed_count,
            "skippedCount": event.skipped_count,
            "totalTickets": event.total_tickets,
            "totalTokensUsed": event.total_tokens_used.to_dict(),
            "totalCost": str(event.total_cost),
        }
    if isinstance(event, ErrorEvent):
        data = {"type": event.kind, "message": event.message}
        if event.ticket is not None:
            data["ticket"] = event.ticket.to_dict()
        return data
    raise TypeError(f"Not a build event: {event!r}")


def event_from_dict(data: dict[str, Any]) -> Optional[BuildEvent]:
    """Parse a serialized event.

    Returns:
        The event, or None if ``type`` is not a known event kind
    """
    kind = data.get("type")
    if kind not in EVENT_TYPES:
        return None

    if kind == TicketStartEvent.kind:
        return TicketStartEvent(
            ticket=Ticket.from_dict(data["ticket"]),
            index=int(data["index"]),
            total=int(data["total"]),
        )
    if kind == StatusEvent.kind:
        return StatusEvent(
            message=data["message"], ticket=_ticket_or_none(data.get("ticket"))
        )
    if kind == TicketCompleteEvent.kind:
        return TicketCompleteEvent(
            ticket=Ticket.from_dict(data["ticket"]),
            success=bool(data["success"]),
            error=data.get("error"),
            tokens_used=TokenUsage.from_dict(data.get("tokensUsed")),
            cost=Decimal(str(data.get("cost", "0"))),
            attempts=int(data.get("attempts", 1)),
            skipped=bool(data.get("skipped", False)),
        )
    if kind == BuildCompleteEvent.kind:
        return BuildCompleteEvent(
            success_count=int(data["successCount"]),
            failed_count=int(data["failedCount"]),
            skipped_count=int(data.get("skippedCount", 0)),
            total_tickets=int(data["totalTickets"]),
            total_tokens_used=TokenUsage.from_dict(data.get("totalTokensUsed")),
            total_cost=Decimal(str(data.get("totalCost", "0"))),
        )
    return ErrorEvent(message=data["message"], ticket=_ticket_or_none(data.get("ticket")))


class BuildEventListener(Protocol):
    """Callback interface for consumers that prefer callbacks over iteration.

    Every method is optional in practice; :func:`dispatch_event` skips missing
    handlers.
    """

    def on_ticket_start(self, event: TicketStartEvent) -> None: ...

    def on_status(self, event: StatusEvent) -> None: ...

    def on_ticket_complete(self, event: TicketCompleteEvent) -> None: ...

    def on_build_complete(self, event: BuildCompleteEvent) -> None: ...

    def on_error(self, event: ErrorEvent) -> None: ...


_HANDLER_NAMES = {
    TicketStartEvent.kind: "on_ticket_start",
    StatusEvent.kind: "on_status",
    TicketCompleteEvent.kind: "on_ticket_complete",
    BuildCompleteEvent.kind: "on_build_complete",
    ErrorEvent.kind: "on_error",
}


def dispatch_event(listener: Any, event: BuildEvent) -> Any:
    """Call the listener method matching ``event.kind``, if it has one."""
    handler = getattr(listener, _HANDLER_NAMES[event.kind], None)
    if handler is None:
        return None
    return handler(event)
