"""
EntryEditService -- transactional entry point for editing ledger entries.

Responsibility:
    Routes an edit of one ledger entry.  Manual and detached entries are
    updated in place.  Generated entries are edited by scope: ``this_only``
    (the default) pins the changed fields on that entry; ``all`` and
    ``all_forward`` change the rule's template and re-sync its entries.

Architecture position:
    Services -- orchestration over the kernel.  Owns the commit.

Invariants enforced:
    - Only EDITABLE_FIELDS can be named in an edit.
    - A scope is only meaningful for generated entries; naming one for a
      manual entry is an error rather than being ignored.
    - The all_forward boundary comes from the entry itself.

Failure modes:
    - EntryNotFoundError for unknown entries or entries of another user.
    - EntryNotGeneratedError when a scope is given for a manual entry.
    - InvalidFieldValueError for unknown fields or badly typed values.
    - FieldNotOverridableError for a this_only edit of a non-pinnable field.
    - InvalidScopeError for an unknown scope.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any
from uuid import UUID

from recurrence_kernel.domain.money import to_money
from recurrence_kernel.domain.overrides import OVERRIDABLE_FIELDS, normalize
from recurrence_kernel.domain.types import (
    LedgerEntryInfo,
    ScopeResult,
    TransactionType,
    UpdateScope,
)
from recurrence_kernel.exceptions import (
    EntryNotGeneratedError,
    InvalidFieldValueError,
    MissingTargetAccountError,
)
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.services.sync_engine import coerce_scope
from recurrence_kernel.stores.ledger_store import EDITABLE_FIELDS
from recurrence_services.orchestrator import RecurrenceOrchestrator, unit_of_work

logger = get_logger("services.entry_edit")


@dataclass(frozen=True)
class EntryEditResult:
    """Outcome of edit_entry: the entry as stored, plus scope details for generated entries."""

    entry: LedgerEntryInfo
    scope_result: ScopeResult | None = None

    @property
    def scope(self) -> UpdateScope | None:
        return self.scope_result.scope if self.scope_result else None


def normalize_entry_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Validate field names and coerce values for a direct entry update."""
    normalized: dict[str, Any] = {}
    for name, value in changes.items():
        if name not in EDITABLE_FIELDS:
            raise InvalidFieldValueError(name, "not an editable entry field")
        if name in OVERRIDABLE_FIELDS:
            normalized[name] = normalize(name, value)
        elif name == "type":
            try:
                normalized[name] = TransactionType(value)
            except ValueError as exc:
                raise InvalidFieldValueError(
                    name, f"must be one of {[t.value for t in TransactionType]}"
                ) from exc
        elif name == "account_id":
            if value is None or not str(value).strip():
                raise MissingTargetAccountError()
            normalized[name] = str(value)
        elif name == "name":
            if not value or not isinstance(value, str):
                raise InvalidFieldValueError(name, "must be a non-empty string")
            normalized[name] = value
        elif name == "metadata":
            if value is not None and not isinstance(value, Mapping):
                raise InvalidFieldValueError(name, "must be a mapping")
            normalized[name] = dict(value or {})
        else:
            normalized[name] = value
    return normalized


class EntryEditService:
    """
    Entry-level entry points.

    Contract:
        ``edit_entry`` is a complete unit of work and returns the edited
        entry re-read from the store.
    """

    def __init__(self, orchestrator: RecurrenceOrchestrator, auto_commit: bool = True):
        self._session = orchestrator.session
        self._ledger = orchestrator.ledger_store
        self._auditor = orchestrator.auditor
        self._tracker = orchestrator.override_tracker
        self._sync = orchestrator.sync_engine
        self._auto_commit = auto_commit

    def create_entry(
        self,
        user_id: UUID,
        account_id: str,
        type: TransactionType | str,
        amount,
        name: str,
        date: date,
        **optional: Any,
    ) -> LedgerEntryInfo:
        """Create a manual entry (not generated by any rule)."""
        with unit_of_work(
            self._session, "entry_create", self._auto_commit, user_id=str(user_id)
        ):
            if not account_id:
                raise MissingTargetAccountError()
            return self._ledger.create(
                user_id,
                account_id=account_id,
                type=type,
                amount=to_money(amount),
                name=name,
                date=date,
                **optional,
            )

    def list_entries(
        self,
        user_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        rule_id: UUID | None = None,
    ) -> list[LedgerEntryInfo]:
        return self._ledger.find(user_id, start_date, end_date, rule_id)

    def get_entry(self, entry_id: UUID, user_id: UUID) -> LedgerEntryInfo:
        return self._ledger.get_for_user(entry_id, user_id)

    def edit_entry(
        self,
        entry_id: UUID,
        user_id: UUID,
        changes: Mapping[str, Any],
        scope: UpdateScope | str | None = None,
    ) -> EntryEditResult:
        """
        Edit one ledger entry.

        Args:
            entry_id: Entry to edit.
            user_id: Owner; other users get EntryNotFoundError.
            changes: Entry fields for manual entries and ``this_only``;
                template fields for ``all`` and ``all_forward``.
            scope: Only for generated entries.  Defaults to ``this_only``.
        """
        with unit_of_work(
            self._session,
            "entry_edit",
            self._auto_commit,
            user_id=str(user_id),
            entry_id=str(entry_id),
        ):
            entry = self._ledger.get_for_user(entry_id, user_id)

            if not entry.is_generated or entry.recurring_rule_id is None:
                if scope is not None:
                    raise EntryNotGeneratedError(str(entry_id))
                normalized = normalize_entry_changes(changes)
                updated = self._ledger.update(entry_id, normalized) if normalized else entry
                logger.info(
                    "manual_entry_updated",
                    extra={"fields": sorted(normalized)},
                )
                return EntryEditResult(entry=updated)

            resolved = coerce_scope(scope or UpdateScope.THIS_ONLY)
            if resolved is UpdateScope.THIS_ONLY:
                for name in changes:
                    if name not in EDITABLE_FIELDS:
                        raise InvalidFieldValueError(name, "not an editable entry field")

            rule_id = entry.recurring_rule_id
            result = self._sync.apply_scope(rule_id, changes, resolved, anchor_entry_id=entry_id)

            if resolved is UpdateScope.THIS_ONLY:
                if result.pinned_fields:
                    self._auditor.record_entry_overridden(
                        entry_id,
                        actor_id=user_id,
                        rule_id=rule_id,
                        fields=list(result.pinned_fields),
                    )
            else:
                self._auditor.record_scope_applied(
                    entry_id,
                    actor_id=user_id,
                    rule_id=rule_id,
                    scope=resolved.value,
                    entries_updated=result.entries_updated,
                    overrides_cleared=result.overrides_cleared,
                )

            return EntryEditResult(
                entry=self._ledger.get_for_user(entry_id, user_id),
                scope_result=result,
            )
