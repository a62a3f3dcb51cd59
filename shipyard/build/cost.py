"""Token usage and cost accumulation across a build run.

Cost is always derived from token usage through a :class:`RateTable`. Each
addition prices only the incremental usage and adds it to the running cost,
so the final total does not depend on the order in which tickets were summed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional

from shipyard.build.models import TokenUsage

ONE_MILLION = Decimal(1_000_000)


@dataclass(frozen=True)
class RateTable:
    """Per-million-token prices in USD."""

    input: Decimal = Decimal("3.00")
    output: Decimal = Decimal("15.00")
    cache_creation: Decimal = Decimal("3.75")
    cache_read: Decimal = Decimal("0.30")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> RateTable:
        """Build a rate table from config values, keeping defaults for missing keys.

        Values go through ``str`` so TOML floats keep their written precision.
        """
        if not data:
            return cls()
        defaults = cls()
        return cls(
            input=Decimal(str(data.get("input", defaults.input))),
            output=Decimal(str(data.get("output", defaults.output))),
            cache_creation=Decimal(
                str(data.get("cache_creation", defaults.cache_creation))
            ),
            cache_read=Decimal(str(data.get("cache_read", defaults.cache_read))),
        )


DEFAULT_RATES = RateTable()


def calculate_cost(usage: TokenUsage, rates: RateTable = DEFAULT_RATES) -> Decimal:
    """Price a token usage record."""
    return (
        usage.input * rates.input
        + usage.output * rates.output
        + usage.cache_creation * rates.cache_creation
        + usage.cache_read * rates.cache_read
    ) / ONE_MILLION


@dataclass(frozen=True)
class CostTotals:
    """Running token and cost totals."""

    tokens: TokenUsage = field(default_factory=TokenUsage)
    cost: Decimal = Decimal("0")

    def __add__(self, other: CostTotals) -> CostTotals:
        if not isinstance(other, CostTotals):
            return NotImplemented
        return CostTotals(tokens=self.tokens + other.tokens, cost=self.cost + other.cost)


ZERO = CostTotals()


def add(total: CostTotals, usage: TokenUsage, rates: RateTable = DEFAULT_RATES) -> CostTotals:
    """Return a new total with ``usage`` folded in.

    The cost of ``usage`` alone is computed and added to ``total.cost``; the
    grand total is never re-priced.
    """
    return CostTotals(
        tokens=total.tokens + usage,
        cost=total.cost + calculate_cost(usage, rates),
    )


class CostAccumulator:
    """Mutable holder for the running totals of one run."""

    def __init__(self, rates: RateTable = DEFAULT_RATES):
        self.rates = rates
        self.total = ZERO

    def add(self, usage: TokenUsage) -> CostTotals:
        """Fold ``usage`` into the running total.

        Returns:
            The priced increment (tokens and cost of ``usage`` alone)
        """
        increment = add(ZERO, usage, self.rates)
        self.total = self.total + increment
        return increment


def format_cost(totals: CostTotals) -> str:
    """Render totals as ``$0.1234 (1,000 input + 200 output tokens)``."""
    parts = []
    tokens = totals.tokens
    if tokens.input:
        parts.append(f"{tokens.input:,} input")
    if tokens.output:
        parts.append(f"{tokens.output:,} output")
    if tokens.cache_creation:
        parts.append(f"{tokens.cache_creation:,} cache write")
    if tokens.cache_read:
        parts.append(f"{tokens.cache_read:,} cache read")

    amount = f"${totals.cost:.4f}"
    if not parts:
        return amount
    return f"{amount} ({' + '.join(parts)} tokens)"
