"""Type-safe data models and status enums for the ticket build engine.

This module provides the foundational type system for the build: ticket
lifecycle statuses, ticket roles, token usage, collaborator results, and the
run-level options passed into the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""

    TODO = "Todo"
    IN_PROGRESS = "InProgress"
    DONE = "Done"
    ERROR = "Error"


class TicketType(str, Enum):
    """Ticket roles.

    The test roles are routed through the retry coordinator; every other role
    is an implementation ticket.
    """

    SCHEMA = "schema"
    ENGINE = "engine"
    BACKEND = "backend"
    FRONTEND = "frontend"
    TEST = "test"
    WEB_TEST = "web-test"
    DB_TEST = "db-test"

    @property
    def is_test(self) -> bool:
        return self in (TicketType.TEST, TicketType.WEB_TEST, TicketType.DB_TEST)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by a collaborator call."""

    input: int = 0
    output: int = 0
    cache_creation: int = 0
    cache_read: int = 0

    def __post_init__(self) -> None:
        for name in ("input", "output", "cache_creation", "cache_read"):
            if getattr(self, name) < 0:
                raise ValueError(f"Token count '{name}' must be non-negative")

    def __add__(self, other: TokenUsage) -> TokenUsage:
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            input=self.input + other.input,
            output=self.output + other.output,
            cache_creation=self.cache_creation + other.cache_creation,
            cache_read=self.cache_read + other.cache_read,
        )

    @property
    def total(self) -> int:
        return self.input + self.output + self.cache_creation + self.cache_read

    def to_dict(self) -> dict[str, int]:
        return {
            "input": self.input,
            "output": self.output,
            "cacheCreation": self.cache_creation,
            "cacheRead": self.cache_read,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> TokenUsage:
        data = data or {}
        return cls(
            input=int(data.get("input", 0)),
            output=int(data.get("output", 0)),
            cache_creation=int(data.get("cacheCreation", 0)),
            cache_read=int(data.get("cacheRead", 0)),
        )


@dataclass
class Ticket:
    """Ticket data model.

    ``error`` is only meaningful while ``status`` is ``Error``; the store
    drops it on every other status.
    """

    id: str
    title: str
    description: str = ""
    type: TicketType = TicketType.BACKEND
    estimated_effort: int = 1
    status: TicketStatus = TicketStatus.TODO
    error: Optional[str] = None
    category: Optional[str] = None

    @property
    def is_test(self) -> bool:
        return self.type.is_test

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase shape used by ticket files."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "estimatedEffort": self.estimated_effort,
            "status": self.status.value,
        }
        if self.category:
            data["category"] = self.category
        if self.status == TicketStatus.ERROR and self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Ticket:
        """Build a ticket from a ticket file entry.

        Raises:
            KeyError: If ``id`` or ``title`` is missing
            ValueError: If ``type`` or ``status`` is not a known value
        """
        status = TicketStatus(data.get("status") or TicketStatus.TODO.value)
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            description=str(data.get("description", "")),
            type=TicketType(data.get("type") or TicketType.BACKEND.value),
            estimated_effort=int(data.get("estimatedEffort", 1)),
            status=status,
            error=data.get("error") if status == TicketStatus.ERROR else None,
            category=data.get("category"),
        )


@dataclass
class TicketsFile:
    """In-memory form of a ticket file.

    ``total_tickets`` is always derived from ``tickets``.
    """

    tickets: list[Ticket] = field(default_factory=list)
    generated_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def total_tickets(self) -> int:
        return len(self.tickets)

    def find(self, ticket_id: str) -> Optional[Ticket]:
        for ticket in self.tickets:
            if ticket.id == ticket_id:
                return ticket
        return None


@dataclass(frozen=True)
class ImplementationResult:
    """Result of an implementer call."""

    success: bool
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    error: Optional[str] = None
    fix_count: int = 0


@dataclass(frozen=True)
class LintResult:
    """Result of a linter call."""

    fix_count: int = 0


@dataclass(frozen=True)
class ReviewResult:
    """Result of a reviewer call."""

    fixes_applied: int = 0
    issues_found: int = 0
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0


@dataclass(frozen=True)
class TestResult:
    """Result of a single tester call."""

    __test__ = False

    success: bool
    output: str = ""
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    error: Optional[str] = None


@dataclass(frozen=True)
class RetryResult:
    """Outcome of the bounded test/fix loop for one test ticket."""

    success: bool
    attempts: int
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    corrective_tickets: list[Ticket] = field(default_factory=list)
    fixes_applied: int = 0
    output: str = ""
    error: Optional[str] = None


@dataclass(frozen=True)
class BuildOptions:
    """Run-level options for one engine run.

    Attributes:
        workspace: Directory the collaborators operate on
        review: Run the reviewer after implementation (schema tickets never are)
        test: Run test tickets; when False they are reported as skipped
        max_test_attempts: Tester invocations allowed per test ticket
        url: Base URL the tester should exercise
        headless: Ask the tester to run browsers headless
    """

    workspace: Path
    review: bool = True
    test: bool = True
    max_test_attempts: int = 3
    url: Optional[str] = None
    headless: bool = True
