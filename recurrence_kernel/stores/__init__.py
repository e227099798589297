"""Stores for the recurrence kernel (persistence and DTO conversion)."""

from recurrence_kernel.stores.ledger_store import EDITABLE_FIELDS, LedgerStore
from recurrence_kernel.stores.rule_store import RuleStore

__all__ = [
    "EDITABLE_FIELDS",
    "LedgerStore",
    "RuleStore",
]
