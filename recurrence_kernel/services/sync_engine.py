"""
SyncEngine -- propagate template changes into materialized entries by scope.

Responsibility:
    Dispatches an edit of a generated entry by scope:

    =============  ==================  ==============================  ==========================
    Scope          Rule template       Anchor entry                    Other historical entries
    =============  ==================  ==============================  ==========================
    this_only      unchanged           changes applied, fields pinned  untouched
    all            updated, version+1  pins cleared, re-synced         pins cleared, re-synced
    all_forward    updated, version+1  pins cleared, re-synced         same from the anchor's
                                                                       occurrence date on;
                                                                       earlier ones untouched
    =============  ==================  ==============================  ==========================

    Under all and all_forward the pins in range are cleared, so every entry
    in range is fully re-synced to the new template (date included).  A
    change that leaves the template as it was is a no-op: no version bump,
    no pins cleared, no entries written.

    Rule-level edits (sync_rule with ``fields``) push only the entry fields
    the template change actually touched and respect existing pins, so
    entries left behind an earlier all_forward boundary keep their values.

Architecture position:
    Kernel > Services.  Called by RecurringRuleService.update_rule and
    EntryEditService.edit_entry.

Invariants enforced:
    - Pinned fields are never overwritten by a sync.
    - The all_forward boundary is the anchor entry's own occurrence date;
      no caller-supplied date is accepted.
    - Future projections are never touched; updating the template is
      sufficient for them.
    - Sync only writes entries whose values actually differ.
    - A field-limited sync never resets an entry date.

Failure modes:
    - RuleNotFoundError if the rule does not exist.
    - InvalidScopeError for an unknown scope, or when this_only/all_forward
      lack an anchor entry belonging to the rule.
    - EntryNotFoundError for an unknown anchor entry.
    - TemplateValidationError / MissingTargetAccountError for bad template
      changes.
"""

import time
from collections.abc import Collection, Mapping
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.overrides import OVERRIDABLE_FIELDS, values_equal
from recurrence_kernel.domain.template import (
    TransactionTemplate,
    apply_template_changes,
    entry_projection,
)
from recurrence_kernel.domain.types import (
    LedgerEntryInfo,
    RecurringRule,
    ScopeResult,
    UpdateScope,
)
from recurrence_kernel.exceptions import EntryNotFoundError, InvalidScopeError
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.services.override_tracker import OverrideTracker
from recurrence_kernel.stores.ledger_store import LedgerStore
from recurrence_kernel.stores.rule_store import RuleStore

logger = get_logger("services.sync_engine")


def coerce_scope(scope: UpdateScope | str) -> UpdateScope:
    try:
        return UpdateScope(scope)
    except ValueError as exc:
        raise InvalidScopeError(
            str(scope), f"must be one of {[s.value for s in UpdateScope]}"
        ) from exc


def entry_sync_changes(
    entry: LedgerEntryInfo,
    projection: Mapping[str, Any],
    rule_version: int,
    reset_date: bool = True,
) -> dict[str, Any]:
    """
    The column changes that bring ``entry`` in line with ``projection``,
    skipping pinned fields.  Empty when the entry is already in sync.

    With ``reset_date`` an unpinned date is moved back to the occurrence
    it was generated for.
    """
    pinned = entry.overridden_fields
    changes: dict[str, Any] = {}
    for name, value in projection.items():
        if name in pinned:
            continue
        current = getattr(entry, name)
        if name in OVERRIDABLE_FIELDS:
            same = values_equal(name, current, value)
        else:
            same = current == value
        if not same:
            changes[name] = value

    if reset_date and "date" not in pinned and entry.date != entry.occurrence_date:
        changes["date"] = entry.occurrence_date

    if changes:
        changes["rule_version"] = rule_version
    return changes


class SyncEngine(BaseService):
    """
    Applies template changes to a rule and its materialized entries.

    Contract:
        ``apply_scope(rule_id, template_changes, scope, anchor_entry_id)``
        returns a ScopeResult whose ``entries_updated`` counts the entries
        whose stored values changed.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        rule_store: RuleStore | None = None,
        ledger_store: LedgerStore | None = None,
        override_tracker: OverrideTracker | None = None,
    ):
        super().__init__(session, clock)
        self._rules = rule_store or RuleStore(session)
        self._ledger = ledger_store or LedgerStore(session)
        self._tracker = override_tracker or OverrideTracker(
            session, clock, rule_store=self._rules, ledger_store=self._ledger
        )

    # -------------------------------------------------------------------------
    # Building blocks
    # -------------------------------------------------------------------------

    def sync_rule(
        self,
        rule_id: UUID,
        template: TransactionTemplate | None = None,
        from_date: date | None = None,
        fields: Collection[str] | None = None,
    ) -> int:
        """
        Push a template into the rule's generated entries, skipping pinned
        fields.

        Args:
            rule_id: Rule whose entries to sync.
            template: Template to push; defaults to the rule's stored one.
            from_date: Only entries with occurrence_date >= from_date.
            fields: Only these entry fields are pushed, and dates are left
                alone.  None re-syncs every template field and resets
                unpinned dates to their occurrence.

        Returns:
            Number of entries whose stored values changed.
        """
        rule = self._rules.get(rule_id)
        projection = entry_projection(template or rule.template)
        if fields is not None:
            projection = {name: projection[name] for name in fields if name in projection}

        updated = 0
        for entry in self._ledger.list_generated_by_rule(rule_id, from_occurrence=from_date):
            changes = entry_sync_changes(
                entry, projection, rule.version, reset_date=fields is None
            )
            if changes:
                self._ledger.update(entry.id, changes)
                updated += 1

        logger.info(
            "rule_synced",
            extra={
                "rule_id": str(rule_id),
                "from_date": from_date.isoformat() if from_date else None,
                "fields": sorted(fields) if fields is not None else None,
                "entries_updated": updated,
                "version": rule.version,
            },
        )
        return updated

    def clear_overrides(self, rule_id: UUID, from_date: date | None = None) -> int:
        """
        Delete the rule's override records, optionally only for entries with
        occurrence_date >= ``from_date``.

        Returns:
            Number of override records deleted.
        """
        self._rules.get(rule_id)
        cleared = self._ledger.clear_overrides(rule_id, from_occurrence=from_date)
        logger.info(
            "overrides_cleared",
            extra={
                "rule_id": str(rule_id),
                "from_date": from_date.isoformat() if from_date else None,
                "cleared": cleared,
            },
        )
        return cleared

    def update_template(
        self,
        rule: RecurringRule,
        template_changes: Mapping[str, Any],
    ) -> RecurringRule:
        """Apply ``template_changes``; bumps the version only if the template changed."""
        new_template = apply_template_changes(rule.template, template_changes)
        if new_template == rule.template:
            return rule
        return self._rules.update_template(rule.id, new_template)

    # -------------------------------------------------------------------------
    # Scope dispatch
    # -------------------------------------------------------------------------

    def _anchor(self, rule_id: UUID, scope: UpdateScope, anchor_entry_id: UUID | None) -> LedgerEntryInfo:
        if anchor_entry_id is None:
            raise InvalidScopeError(scope.value, "requires the entry being edited")
        anchor = self._ledger.get(anchor_entry_id)
        if anchor is None:
            raise EntryNotFoundError(str(anchor_entry_id))
        if not anchor.is_generated or anchor.recurring_rule_id != rule_id:
            raise InvalidScopeError(scope.value, "entry was not generated by this rule")
        return anchor

    def apply_scope(
        self,
        rule_id: UUID,
        template_changes: Mapping[str, Any],
        scope: UpdateScope | str,
        anchor_entry_id: UUID | None = None,
    ) -> ScopeResult:
        """
        Apply an edit with the given scope.

        For ``this_only`` the changes are entry fields (allow-listed) and
        ``entries_updated`` is 1 only if a stored value actually changed.
        For ``all`` and ``all_forward`` they are template fields; when they
        leave the template unchanged nothing is cleared or re-synced and the
        version stays put.
        """
        t0 = time.monotonic()
        scope = coerce_scope(scope)
        rule = self._rules.get(rule_id, for_update=True)

        anchor = None
        if anchor_entry_id is not None or scope is not UpdateScope.ALL:
            anchor = self._anchor(rule_id, scope, anchor_entry_id)

        if scope is UpdateScope.THIS_ONLY:
            pinned = self._tracker.pin_changes(anchor, rule, template_changes)
            touched = any(
                not values_equal(name, getattr(anchor, name), value)
                for name, value in template_changes.items()
            )
            result = ScopeResult(
                scope=scope,
                rule_id=rule_id,
                entries_updated=1 if touched else 0,
                pinned_fields=pinned,
                rule_version=rule.version,
            )
        else:
            from_date = anchor.occurrence_date if scope is UpdateScope.ALL_FORWARD else None
            updated_rule = self.update_template(rule, template_changes)
            cleared = updated = 0
            if updated_rule.version != rule.version:
                cleared = self.clear_overrides(rule_id, from_date=from_date)
                updated = self.sync_rule(rule_id, from_date=from_date)
            rule = updated_rule
            result = ScopeResult(
                scope=scope,
                rule_id=rule_id,
                entries_updated=updated,
                overrides_cleared=cleared,
                rule_version=rule.version,
            )

        logger.info(
            "scope_applied",
            extra={
                "rule_id": str(rule_id),
                "scope": scope.value,
                "anchor_entry_id": str(anchor.id) if anchor else None,
                "entries_updated": result.entries_updated,
                "overrides_cleared": result.overrides_cleared,
                "pinned_fields": sorted(result.pinned_fields),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return result
