"""
Module: recurrence_kernel.stores.rule_store
Responsibility: Persistence of recurring rules.  Converts between
    RecurringRuleModel rows and RecurringRule DTOs.
Architecture position: Kernel > Stores.

Invariants enforced:
    - Rules are only visible to the user who owns them (get_for_user).
    - ``version`` is bumped by exactly one on every template change.
    - The watermark never moves backwards.

Failure modes:
    - RuleNotFoundError when a rule id does not resolve (or is owned by
      another user).
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select

from recurrence_kernel.domain.template import (
    TransactionTemplate,
    template_from_dict,
    template_to_dict,
)
from recurrence_kernel.domain.types import Frequency, RecurringRule, Schedule
from recurrence_kernel.exceptions import RuleNotFoundError
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.models.recurring_rule import RecurringRuleModel
from recurrence_kernel.stores.base import BaseStore

logger = get_logger("stores.rule")


class RuleStore(BaseStore[RecurringRuleModel]):
    """
    Store for recurring rules.

    Guarantees:
        - list methods return rules newest first (created_at DESC, id DESC).
        - get(..., for_update=True) takes a row lock on PostgreSQL
          (``SELECT ... FOR UPDATE``), serializing concurrent materialization
          of the same rule.
    """

    def _to_dto(self, model: RecurringRuleModel) -> RecurringRule:
        return RecurringRule(
            id=model.id,
            user_id=model.user_id,
            schedule=Schedule(
                frequency=Frequency(model.frequency),
                interval=model.interval,
                start_date=model.start_date,
                end_date=model.end_date,
                occurrence_count=model.occurrence_count,
            ),
            template=template_from_dict(model.template),
            is_active=model.is_active,
            version=model.version,
            last_materialized_date=model.last_materialized_date,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _load(self, rule_id: UUID, for_update: bool = False) -> RecurringRuleModel:
        stmt = select(RecurringRuleModel).where(RecurringRuleModel.id == rule_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise RuleNotFoundError(str(rule_id))
        return model

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, rule_id: UUID, for_update: bool = False) -> RecurringRule:
        """Get a rule by id regardless of owner."""
        return self._to_dto(self._load(rule_id, for_update=for_update))

    def get_for_user(self, rule_id: UUID, user_id: UUID) -> RecurringRule:
        """Get a rule by id, hiding rules owned by other users."""
        model = self._load(rule_id)
        if model.user_id != user_id:
            raise RuleNotFoundError(str(rule_id))
        return self._to_dto(model)

    def list_for_user(self, user_id: UUID) -> list[RecurringRule]:
        stmt = (
            select(RecurringRuleModel)
            .where(RecurringRuleModel.user_id == user_id)
            .order_by(RecurringRuleModel.created_at.desc(), RecurringRuleModel.id.desc())
        )
        return [self._to_dto(m) for m in self.session.execute(stmt).scalars()]

    def list_active_for_user(self, user_id: UUID) -> list[RecurringRule]:
        stmt = (
            select(RecurringRuleModel)
            .where(
                RecurringRuleModel.user_id == user_id,
                RecurringRuleModel.is_active.is_(True),
            )
            .order_by(RecurringRuleModel.created_at.desc(), RecurringRuleModel.id.desc())
        )
        return [self._to_dto(m) for m in self.session.execute(stmt).scalars()]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create(
        self,
        user_id: UUID,
        schedule: Schedule,
        template: TransactionTemplate,
        is_active: bool = True,
        created_at: datetime | None = None,
    ) -> RecurringRule:
        model = RecurringRuleModel(
            user_id=user_id,
            frequency=Frequency(schedule.frequency).value,
            interval=schedule.interval,
            start_date=schedule.start_date,
            end_date=schedule.end_date,
            occurrence_count=schedule.occurrence_count,
            is_active=is_active,
            template=template_to_dict(template),
            version=1,
        )
        if created_at is not None:
            model.created_at = created_at
        self.session.add(model)
        self.session.flush()
        self.session.refresh(model)
        logger.debug("rule_row_created", extra={"rule_id": str(model.id)})
        return self._to_dto(model)

    def update_template(self, rule_id: UUID, template: TransactionTemplate) -> RecurringRule:
        """Replace the template and bump the version."""
        model = self._load(rule_id)
        model.template = template_to_dict(template)
        model.version = model.version + 1
        self.session.flush()
        return self._to_dto(model)

    def update_schedule(
        self,
        rule_id: UUID,
        schedule: Schedule | None = None,
        is_active: bool | None = None,
    ) -> RecurringRule:
        """Replace the schedule and/or the active flag.  Version is unchanged."""
        model = self._load(rule_id)
        if schedule is not None:
            model.frequency = Frequency(schedule.frequency).value
            model.interval = schedule.interval
            model.start_date = schedule.start_date
            model.end_date = schedule.end_date
            model.occurrence_count = schedule.occurrence_count
        if is_active is not None:
            model.is_active = is_active
        self.session.flush()
        return self._to_dto(model)

    def advance_watermark(self, rule_id: UUID, day: date) -> date:
        """
        Set the watermark to max(current, day).

        Returns:
            The watermark after the call.
        """
        model = self._load(rule_id)
        current = model.last_materialized_date
        if current is None or day > current:
            model.last_materialized_date = day
            self.session.flush()
        return model.last_materialized_date

    def delete(self, rule_id: UUID) -> None:
        """
        Delete a rule row.

        Entries must be detached first (LedgerStore.detach_rule); the
        foreign key is ON DELETE SET NULL as a backstop.
        """
        self.session.delete(self._load(rule_id))
        self.session.flush()
