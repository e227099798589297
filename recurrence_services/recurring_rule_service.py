"""
RecurringRuleService -- transactional entry points for recurring rules.

Responsibility:
    Create, read, update and delete recurring rules; preview schedules;
    materialize all of a user's rules; forecast future entries.  Every
    mutating call is one transaction: commit on success, rollback on any
    failure (when ``auto_commit`` is set).

Architecture position:
    Services -- orchestration over the kernel.  Kernel services only
    flush; this module owns the commit.

Invariants enforced:
    - Rule creation and its first materialization commit or fail together.
      A template without a target account aborts before anything is
      written.
    - Template changes bump the version and are synced into historical
      entries without touching pinned fields.
    - Schedule changes re-run materialization for newly covered dates;
      entries already persisted are kept.
    - Deleting a rule detaches its entries; they survive as standalone
      entries.

Failure modes:
    - RuleNotFoundError for unknown rules or rules of another user.
    - InvalidScheduleError / TemplateValidationError /
      MissingTargetAccountError for invalid input.
    - Account/Category/LiabilityNotFoundError from the reference checker.

Audit relevance:
    Each mutation appends to the audit hash chain in the same transaction.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import date
from typing import Any
from uuid import UUID

from recurrence_kernel.domain.occurrences import (
    coerce_frequency,
    preview_occurrences,
    validate_schedule,
)
from recurrence_kernel.domain.references import verify_template_references
from recurrence_kernel.domain.template import (
    ExpenseTemplate,
    IncomeTemplate,
    TransactionTemplate,
    TransferTemplate,
    changed_entry_fields,
    template_from_dict,
)
from recurrence_kernel.domain.types import (
    Frequency,
    ProjectedEntry,
    RecurringRule,
    Schedule,
)
from recurrence_kernel.exceptions import InvalidScheduleError
from recurrence_kernel.logging_config import LogContext, get_logger
from recurrence_services.orchestrator import RecurrenceOrchestrator, unit_of_work

logger = get_logger("services.recurring_rule")

SCHEDULE_FIELDS = frozenset(
    {"frequency", "interval", "start_date", "end_date", "occurrence_count"}
)
_REQUIRED_SCHEDULE_FIELDS = ("frequency", "interval", "start_date")


def coerce_template(template: TransactionTemplate | Mapping[str, Any]) -> TransactionTemplate:
    """Accept either a typed template or a plain mapping."""
    if isinstance(template, (IncomeTemplate, ExpenseTemplate, TransferTemplate)):
        return template
    return template_from_dict(template)


def merge_schedule(schedule: Schedule, changes: Mapping[str, Any]) -> Schedule:
    """
    Return ``schedule`` with ``changes`` applied and validated.

    A key present with value None clears ``end_date`` or
    ``occurrence_count``; the other fields cannot be cleared.
    """
    unknown = sorted(set(changes) - SCHEDULE_FIELDS)
    if unknown:
        raise InvalidScheduleError(unknown[0], "unknown schedule field")
    for name in _REQUIRED_SCHEDULE_FIELDS:
        if name in changes and changes[name] is None:
            raise InvalidScheduleError(name, "is required")

    values = dict(changes)
    if "frequency" in values:
        values["frequency"] = coerce_frequency(values["frequency"])
    merged = dataclasses.replace(schedule, **values)
    validate_schedule(merged)
    return merged


class RecurringRuleService:
    """
    Rule-level entry points.

    Contract:
        Each public method is a complete unit of work.  Read methods
        never write.

    Non-goals:
        - Does NOT edit individual entries (see EntryEditService).
    """

    def __init__(self, orchestrator: RecurrenceOrchestrator, auto_commit: bool = True):
        self._session = orchestrator.session
        self._clock = orchestrator.clock
        self._settings = orchestrator.settings
        self._references = orchestrator.reference_checker
        self._rules = orchestrator.rule_store
        self._ledger = orchestrator.ledger_store
        self._auditor = orchestrator.auditor
        self._materializer = orchestrator.materializer
        self._sync = orchestrator.sync_engine
        self._forecaster = orchestrator.forecaster
        self._auto_commit = auto_commit

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_rule(
        self,
        user_id: UUID,
        frequency: Frequency | str,
        start_date: date,
        template: TransactionTemplate | Mapping[str, Any],
        interval: int = 1,
        end_date: date | None = None,
        occurrence_count: int | None = None,
        is_active: bool = True,
    ) -> RecurringRule:
        """
        Create a rule and materialize its historical entries.

        When both ``end_date`` and ``occurrence_count`` are given, the count
        bounds generation and the end date is ignored.

        Returns:
            The rule as stored after materialization (watermark set).
        """
        with unit_of_work(
            self._session, "rule_create", self._auto_commit, user_id=str(user_id)
        ):
            schedule = Schedule(
                frequency=coerce_frequency(frequency),
                interval=interval,
                start_date=start_date,
                end_date=end_date,
                occurrence_count=occurrence_count,
            )
            validate_schedule(schedule)
            typed_template = coerce_template(template)
            verify_template_references(self._references, user_id, typed_template)

            rule = self._rules.create(
                user_id,
                schedule,
                typed_template,
                is_active=is_active,
                created_at=self._clock.now(),
            )
            with LogContext.bind(rule_id=str(rule.id)):
                created = self._materializer.materialize_historical(rule.id)
                self._auditor.record_rule_created(
                    rule.id,
                    actor_id=user_id,
                    frequency=schedule.frequency.value,
                    start_date=start_date,
                    entries_created=created,
                )
                logger.info(
                    "rule_created",
                    extra={
                        "frequency": schedule.frequency.value,
                        "start_date": start_date.isoformat(),
                        "entries_created": created,
                    },
                )
            return self._rules.get(rule.id)

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def list_rules(self, user_id: UUID) -> list[RecurringRule]:
        """All rules of a user, newest first."""
        return self._rules.list_for_user(user_id)

    def get_rule(self, rule_id: UUID, user_id: UUID) -> RecurringRule:
        return self._rules.get_for_user(rule_id, user_id)

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update_rule(
        self,
        rule_id: UUID,
        user_id: UUID,
        template_changes: Mapping[str, Any] | None = None,
        schedule_changes: Mapping[str, Any] | None = None,
        is_active: bool | None = None,
    ) -> RecurringRule:
        """
        Update a rule's template, schedule and/or active flag.

        Args:
            rule_id: Rule to update.
            user_id: Owner; other users get RuleNotFoundError.
            template_changes: Template fields to change.  Only the entry
                fields the change touches are pushed into historical
                entries, respecting pins; other stored values stay as they
                are.
            schedule_changes: Any of frequency, interval, start_date,
                end_date, occurrence_count.
            is_active: New active flag.  Reactivation materializes any
                dates missed while inactive.
        """
        with unit_of_work(
            self._session,
            "rule_update",
            self._auto_commit,
            user_id=str(user_id),
            rule_id=str(rule_id),
        ):
            self._rules.get_for_user(rule_id, user_id)
            rule = self._rules.get(rule_id, for_update=True)
            changed: list[str] = []
            synced = 0

            if template_changes:
                updated = self._sync.update_template(rule, template_changes)
                if updated.version != rule.version:
                    verify_template_references(self._references, user_id, updated.template)
                    changed.extend(template_changes)
                    synced = self._sync.sync_rule(
                        rule_id,
                        fields=changed_entry_fields(rule.template, updated.template),
                    )
                rule = updated

            schedule = None
            if schedule_changes:
                merged = merge_schedule(rule.schedule, schedule_changes)
                if merged != rule.schedule:
                    schedule = merged
                    changed.extend(
                        f.name
                        for f in dataclasses.fields(Schedule)
                        if getattr(merged, f.name) != getattr(rule.schedule, f.name)
                    )
            reactivated = is_active is True and not rule.is_active
            if is_active is not None and is_active != rule.is_active:
                changed.append("is_active")
            else:
                is_active = None

            if schedule is not None or is_active is not None:
                rule = self._rules.update_schedule(rule_id, schedule=schedule, is_active=is_active)

            created = 0
            if schedule is not None or reactivated:
                created = self._materializer.materialize_historical(rule_id)

            if changed:
                self._auditor.record_rule_updated(
                    rule_id,
                    actor_id=user_id,
                    changed_fields=changed,
                    version=rule.version,
                    entries_synced=synced,
                )
            logger.info(
                "rule_updated",
                extra={
                    "changed_fields": sorted(changed),
                    "version": rule.version,
                    "entries_synced": synced,
                    "entries_created": created,
                },
            )
            return self._rules.get(rule_id)

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    def delete_rule(self, rule_id: UUID, user_id: UUID) -> int:
        """
        Delete a rule, keeping its entries as standalone entries.

        Returns:
            Number of entries detached.
        """
        with unit_of_work(
            self._session,
            "rule_delete",
            self._auto_commit,
            user_id=str(user_id),
            rule_id=str(rule_id),
        ):
            self._rules.get_for_user(rule_id, user_id)
            detached = self._ledger.detach_rule(rule_id)
            self._rules.delete(rule_id)
            self._auditor.record_rule_deleted(rule_id, actor_id=user_id, entries_detached=detached)
            logger.info("rule_deleted", extra={"entries_detached": detached})
            return detached

    # -------------------------------------------------------------------------
    # Preview, materialize, forecast
    # -------------------------------------------------------------------------

    def preview_occurrences(
        self,
        frequency: Frequency | str,
        start_date: date,
        interval: int = 1,
        end_date: date | None = None,
        occurrence_count: int | None = None,
        limit: int | None = None,
    ) -> list[date]:
        """
        The first dates a schedule would produce.  Nothing is persisted.

        ``limit`` defaults to the configured preview default and is capped
        at the configured maximum.
        """
        schedule = Schedule(
            frequency=coerce_frequency(frequency),
            interval=interval,
            start_date=start_date,
            end_date=end_date,
            occurrence_count=occurrence_count,
        )
        return preview_occurrences(
            schedule,
            today=self._clock.today(),
            limit=limit if limit is not None else self._settings.preview_default_limit,
            max_limit=self._settings.preview_max_limit,
            horizon_months=self._settings.default_horizon_months,
        )

    def materialize_all(self, user_id: UUID) -> int:
        """
        Materialize every active rule of a user up to today.

        Returns:
            Total number of entries created.
        """
        with unit_of_work(
            self._session, "materialize_all", self._auto_commit, user_id=str(user_id)
        ):
            rules = self._rules.list_active_for_user(user_id)
            counts = self._materializer.materialize_many(rules)
            total = sum(counts.values())
            self._auditor.record_rules_materialized(
                user_id,
                as_of=self._clock.today(),
                rules_processed=len(rules),
                entries_created=total,
            )
            return total

    def forecast(
        self,
        user_id: UUID,
        range_start: date | None = None,
        range_end: date | None = None,
    ) -> list[ProjectedEntry]:
        """Never-persisted entries of the user's active rules after today."""
        with LogContext.bind(user_id=str(user_id)):
            return self._forecaster.forecast(user_id, range_start, range_end)
