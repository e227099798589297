"""
OverrideTracker -- detect and record per-field pins on generated entries.

Responsibility:
    Decides which fields of a proposed edit diverge from the rule's current
    template, applies a single-entry edit, and records each diverging field
    as an override so later template syncs leave it alone.

Architecture position:
    Kernel > Services.  Used by SyncEngine for ``this_only`` edits.

Invariants enforced:
    - Only allow-listed fields (OverridableField) can be pinned.
    - Detection compares against the rule's *current* template, not the
      entry's previous value.
    - Recording is additive and field-scoped; re-overriding a field keeps the
      original value from the first recording.

Failure modes:
    - EntryNotFoundError for an unknown entry.
    - FieldNotOverridableError when a single-entry edit names a field outside
      the allow-list.
    - InvalidFieldValueError for values of the wrong type.
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.overrides import (
    OVERRIDABLE_FIELDS,
    detect_overrides,
    normalize,
    require_overridable,
    to_json_value,
)
from recurrence_kernel.domain.types import LedgerEntryInfo, OverrideInfo, RecurringRule
from recurrence_kernel.exceptions import EntryNotFoundError, FieldNotOverridableError
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.stores.ledger_store import LedgerStore
from recurrence_kernel.stores.rule_store import RuleStore

logger = get_logger("services.override_tracker")


class OverrideTracker(BaseService):
    """
    Tracks user-pinned fields on generated entries.

    Non-goals:
        - Never changes the rule template.
        - Never touches entries other than the one being edited.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        rule_store: RuleStore | None = None,
        ledger_store: LedgerStore | None = None,
    ):
        super().__init__(session, clock)
        self._rules = rule_store or RuleStore(session)
        self._ledger = ledger_store or LedgerStore(session)

    def _entry(self, entry_id: UUID) -> LedgerEntryInfo:
        entry = self._ledger.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def detect_overrides(
        self,
        entry_id: UUID,
        proposed_changes: Mapping[str, Any],
    ) -> frozenset[str]:
        """
        Fields of ``proposed_changes`` that differ from the rule's current
        template.  Entries without a rule yield an empty set.
        """
        entry = self._entry(entry_id)
        if not entry.is_generated or entry.recurring_rule_id is None:
            return frozenset()
        rule = self._rules.get(entry.recurring_rule_id)
        return frozenset(
            detect_overrides(rule.template, entry.occurrence_date, proposed_changes)
        )

    def record_override(
        self,
        entry_id: UUID,
        field_name: str,
        original_value: Any,
        new_value: Any,
    ) -> OverrideInfo:
        """Upsert the override record for one field of one entry."""
        require_overridable(field_name)
        record = self._ledger.upsert_override(
            entry_id,
            field_name,
            to_json_value(field_name, original_value),
            to_json_value(field_name, new_value),
        )
        logger.info(
            "override_recorded",
            extra={"entry_id": str(entry_id), "field": field_name},
        )
        return record

    def list_overrides(self, entry_id: UUID) -> dict[str, OverrideInfo]:
        return self._ledger.get_overrides(entry_id)

    def pin_changes(
        self,
        entry: LedgerEntryInfo,
        rule: RecurringRule,
        changes: Mapping[str, Any],
    ) -> frozenset[str]:
        """
        Apply ``changes`` to one generated entry and pin every field that now
        differs from ``rule``'s template.

        Returns:
            The fields pinned by this edit.
        """
        for field_name in changes:
            if field_name not in OVERRIDABLE_FIELDS:
                raise FieldNotOverridableError(field_name)

        normalized = {name: normalize(name, value) for name, value in changes.items()}
        diverging = detect_overrides(rule.template, entry.occurrence_date, normalized)

        if normalized:
            self._ledger.update(entry.id, normalized)
        for field_name, (template_value, new_value) in diverging.items():
            self.record_override(entry.id, field_name, template_value, new_value)

        return frozenset(diverging)
