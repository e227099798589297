"""
Module: recurrence_kernel.models.recurring_rule
Responsibility: ORM persistence for recurring rules (schedule + template).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``version`` starts at 1 and only ever increases; it is bumped on every
      template change.
    - ``last_materialized_date`` (the watermark) never moves backwards.
      Enforced by RuleStore.advance_watermark.
    - ``template`` is a JSON object whose ``type`` key selects the variant.
      It is always reassigned, never mutated in place.

Failure modes:
    - IntegrityError on a missing required column.

Audit relevance:
    Rule creation, update and deletion each produce an AuditEvent.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recurrence_kernel.db.base import TimestampedBase, UUIDString


class RecurringRuleModel(TimestampedBase):
    """
    A user's recurring financial obligation.

    Contract:
        Owns the schedule and the transaction template.  Generated ledger
        entries reference it by ``recurring_rule_id``; deleting the rule
        detaches them rather than deleting them.

    Guarantees:
        - ``interval`` >= 1, ``occurrence_count`` >= 1 when set, and
          ``end_date`` >= ``start_date`` when set (validated before INSERT).

    Non-goals:
        - Does not validate the template; see recurrence_kernel.domain.template.
    """

    __tablename__ = "recurring_rules"

    __table_args__ = (
        Index("idx_recurring_rule_user", "user_id"),
        Index("idx_recurring_rule_user_active", "user_id", "is_active"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Schedule
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    occurrence_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Typed transaction template, serialized by template_to_dict()
    template: Mapped[dict] = mapped_column(JSON, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Most recent "today" for which materialization completed
    last_materialized_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    entries: Mapped[list["LedgerEntry"]] = relationship(  # noqa: F821
        back_populates="recurring_rule",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<RecurringRule {self.id} {self.frequency}x{self.interval} v{self.version}>"
