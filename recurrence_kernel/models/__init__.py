"""Persistence models for the recurrence kernel."""

from recurrence_kernel.models.audit_event import AuditAction, AuditEvent
from recurrence_kernel.models.ledger_entry import LedgerEntry, LedgerEntryOverride
from recurrence_kernel.models.recurring_rule import RecurringRuleModel
from recurrence_kernel.models.sequence import SequenceCounter

__all__ = [
    "AuditAction",
    "AuditEvent",
    "LedgerEntry",
    "LedgerEntryOverride",
    "RecurringRuleModel",
    "SequenceCounter",
]
