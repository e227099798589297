"""
recurrence_kernel.domain.types -- Pure frozen dataclasses and enums.

ZERO I/O.  Frozen dataclasses with enum fields and tuples/frozensets for
immutable collections.  Stores convert ORM rows into these DTOs; services
and callers never hold ORM instances across a transaction boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from recurrence_kernel.domain.template import TransactionTemplate


# =============================================================================
# Enums
# =============================================================================


class Frequency(str, Enum):
    """Cadence of a recurring rule.

    ``biweekly`` and ``quarterly`` are normalizations of ``weekly`` and
    ``monthly`` with a fixed multiplier; ``custom`` is ``daily`` with the
    caller's interval.
    """

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"
    CUSTOM = "custom"


class TransactionType(str, Enum):
    """Monetary direction of a ledger entry."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class UpdateScope(str, Enum):
    """Breadth of entries an edit to a generated entry propagates to."""

    THIS_ONLY = "this_only"  # Pin the changed fields on one entry
    ALL = "all"  # Update template, clear every pin, re-sync everything
    ALL_FORWARD = "all_forward"  # Update template, clear + re-sync from the entry on


# =============================================================================
# Rule DTOs
# =============================================================================


@dataclass(frozen=True)
class Schedule:
    """Cadence and bounds of a rule, independent of its template.

    ``occurrence_count`` takes precedence over ``end_date`` when both are
    set.  With neither, generation stops at a horizon relative to today.
    """

    frequency: Frequency
    interval: int
    start_date: date
    end_date: date | None = None
    occurrence_count: int | None = None


@dataclass(frozen=True)
class RecurringRule:
    """Immutable snapshot of a recurring rule."""

    id: UUID
    user_id: UUID
    schedule: Schedule
    template: TransactionTemplate
    is_active: bool
    version: int
    last_materialized_date: date | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def frequency(self) -> Frequency:
        return self.schedule.frequency

    @property
    def interval(self) -> int:
        return self.schedule.interval

    @property
    def start_date(self) -> date:
        return self.schedule.start_date

    @property
    def end_date(self) -> date | None:
        return self.schedule.end_date

    @property
    def occurrence_count(self) -> int | None:
        return self.schedule.occurrence_count


# =============================================================================
# Entry DTOs
# =============================================================================


@dataclass(frozen=True)
class ProjectedEntry:
    """A ledger entry derived from a template for one occurrence.

    Used both as the draft the materializer persists and as the ephemeral
    forecast entry returned for dates after today.  Carries no identity.
    """

    user_id: UUID
    recurring_rule_id: UUID
    rule_version: int
    occurrence_date: date
    account_id: str
    type: TransactionType
    amount: Decimal
    name: str
    category_id: str | None = None
    subcategory_id: str | None = None
    liability_id: str | None = None
    description: str | None = None
    memo: str | None = None
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def date(self) -> date:
        return self.occurrence_date


@dataclass(frozen=True)
class LedgerEntryInfo:
    """Immutable snapshot of a persisted ledger entry."""

    id: UUID
    user_id: UUID
    account_id: str
    type: TransactionType
    amount: Decimal
    name: str
    date: date
    occurrence_date: date | None
    category_id: str | None
    subcategory_id: str | None
    liability_id: str | None
    description: str | None
    memo: str | None
    tags: tuple[str, ...]
    metadata: dict[str, Any]
    is_generated: bool
    recurring_rule_id: UUID | None
    overridden_fields: frozenset[str]
    generated_at: datetime | None = None


@dataclass(frozen=True)
class OverrideInfo:
    """One pinned field on one entry.

    ``original_value`` is the template value at the first override;
    ``overridden_value`` is the latest user value.  Both are JSON-safe.
    """

    entry_id: UUID
    field_name: str
    original_value: Any
    overridden_value: Any


@dataclass(frozen=True)
class ScopeResult:
    """Outcome of a scoped edit."""

    scope: UpdateScope
    rule_id: UUID
    entries_updated: int
    overrides_cleared: int = 0
    pinned_fields: frozenset[str] = frozenset()
    rule_version: int | None = None
