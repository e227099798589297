"""
MaterializerService -- persist every historical occurrence of a rule.

Responsibility:
    For a rule, generates occurrences in [start_date, today] and inserts one
    generated ledger entry per occurrence that does not already have one.
    Advances the rule's watermark to today.

Architecture position:
    Kernel > Services.  Called by RecurringRuleService on rule creation and
    by the materialize-all run.

Invariants enforced:
    - Idempotent: a (rule, occurrence_date) pair is materialized at most
      once.  Re-running for the same "today" inserts nothing.  Concurrent
      runs are resolved by skip-on-conflict at the store.
    - Only dates <= today are persisted; future dates are forecast-only.
    - The watermark never moves backwards.
    - Existing entries are never modified, even if the template changed.

Failure modes:
    - RuleNotFoundError if the rule does not exist.
    - Store errors propagate; nothing is committed here.
"""

import time
from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.occurrences import (
    DEFAULT_HORIZON_MONTHS,
    occurrences_between,
)
from recurrence_kernel.domain.template import entry_projection
from recurrence_kernel.domain.types import ProjectedEntry, RecurringRule
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.stores.ledger_store import LedgerStore
from recurrence_kernel.stores.rule_store import RuleStore

logger = get_logger("services.materializer")


def project_entry(rule: RecurringRule, occurrence: date) -> ProjectedEntry:
    """The entry ``rule``'s current template yields on ``occurrence``."""
    return ProjectedEntry(
        user_id=rule.user_id,
        recurring_rule_id=rule.id,
        rule_version=rule.version,
        occurrence_date=occurrence,
        **entry_projection(rule.template),
    )


def generate_entries(rule: RecurringRule, occurrences: Iterable[date]) -> list[ProjectedEntry]:
    """Project ``rule``'s current template onto each occurrence date."""
    return [project_entry(rule, occurrence) for occurrence in occurrences]


class MaterializerService(BaseService):
    """
    Creates the persisted history of a rule.

    Contract:
        ``materialize_historical(rule_id)`` returns the number of entries it
        inserted.

    Guarantees:
        - Inactive rules are skipped (0 inserted, watermark untouched).
        - Dates already present are filtered before the insert; conflicts
          that race in between are skipped by the store.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        rule_store: RuleStore | None = None,
        ledger_store: LedgerStore | None = None,
        horizon_months: int = DEFAULT_HORIZON_MONTHS,
    ):
        super().__init__(session, clock)
        self._rules = rule_store or RuleStore(session)
        self._ledger = ledger_store or LedgerStore(session)
        self._horizon_months = horizon_months

    def historical_occurrences(self, rule: RecurringRule, today: date) -> list[date]:
        """Occurrences of ``rule`` on or before ``today``."""
        return occurrences_between(
            rule.schedule,
            rule.start_date,
            today,
            today=today,
            horizon_months=self._horizon_months,
        )

    def materialize_historical(self, rule_id: UUID) -> int:
        """
        Insert missing historical entries for one rule.

        Returns:
            Number of entries inserted.
        """
        t0 = time.monotonic()
        today = self.clock.today()
        rule = self._rules.get(rule_id, for_update=True)

        if not rule.is_active:
            logger.info(
                "materialization_skipped_inactive",
                extra={"rule_id": str(rule_id)},
            )
            return 0

        occurrences = self.historical_occurrences(rule, today)
        inserted = 0
        if occurrences:
            existing = self._ledger.existing_occurrence_dates(
                rule_id, occurrences[0], occurrences[-1]
            )
            drafts = [
                draft
                for draft in generate_entries(rule, occurrences)
                if draft.occurrence_date not in existing
            ]
            inserted = self._ledger.insert_generated_skip_conflicts(
                drafts, generated_at=self.clock.now()
            )

        watermark = self._rules.advance_watermark(rule_id, today)

        logger.info(
            "rule_materialized",
            extra={
                "rule_id": str(rule_id),
                "occurrences": len(occurrences),
                "inserted": inserted,
                "watermark": watermark.isoformat(),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return inserted

    def materialize_many(self, rules: list[RecurringRule]) -> dict[UUID, int]:
        """
        Materialize several rules in the caller's transaction.

        Returns:
            Mapping of rule id to entries inserted.
        """
        return {rule.id: self.materialize_historical(rule.id) for rule in rules}
