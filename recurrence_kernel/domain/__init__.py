"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- System time (the clock is injected)
- I/O

All domain objects are immutable and deterministic.
"""

from recurrence_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from recurrence_kernel.domain.money import to_money
from recurrence_kernel.domain.occurrences import (
    DEFAULT_HORIZON_MONTHS,
    DEFAULT_PREVIEW_LIMIT,
    MAX_PREVIEW_LIMIT,
    generate_occurrences,
    iter_occurrences,
    occurrences_between,
    preview_occurrences,
    validate_schedule,
)
from recurrence_kernel.domain.overrides import (
    OVERRIDABLE_FIELDS,
    OverridableField,
    detect_overrides,
    values_equal,
)
from recurrence_kernel.domain.references import (
    PermissiveReferenceChecker,
    ReferenceChecker,
)
from recurrence_kernel.domain.template import (
    ExpenseTemplate,
    IncomeTemplate,
    TransactionTemplate,
    TransferTemplate,
    apply_template_changes,
    changed_entry_fields,
    entry_projection,
    template_from_dict,
    template_to_dict,
)
from recurrence_kernel.domain.types import (
    Frequency,
    LedgerEntryInfo,
    OverrideInfo,
    ProjectedEntry,
    RecurringRule,
    Schedule,
    ScopeResult,
    TransactionType,
    UpdateScope,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Money
    "to_money",
    # Types
    "Frequency",
    "LedgerEntryInfo",
    "OverrideInfo",
    "ProjectedEntry",
    "RecurringRule",
    "Schedule",
    "ScopeResult",
    "TransactionType",
    "UpdateScope",
    # Occurrences
    "DEFAULT_HORIZON_MONTHS",
    "DEFAULT_PREVIEW_LIMIT",
    "MAX_PREVIEW_LIMIT",
    "generate_occurrences",
    "iter_occurrences",
    "occurrences_between",
    "preview_occurrences",
    "validate_schedule",
    # Templates
    "ExpenseTemplate",
    "IncomeTemplate",
    "TransactionTemplate",
    "TransferTemplate",
    "apply_template_changes",
    "changed_entry_fields",
    "entry_projection",
    "template_from_dict",
    "template_to_dict",
    # Overrides
    "OVERRIDABLE_FIELDS",
    "OverridableField",
    "detect_overrides",
    "values_equal",
    # References
    "PermissiveReferenceChecker",
    "ReferenceChecker",
]
