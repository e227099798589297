"""
Module: recurrence_kernel.models.ledger_entry
Responsibility: ORM persistence for ledger entries and their per-field
    override records.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one entry per (recurring_rule_id, occurrence_date), enforced by
      a UNIQUE constraint.  Manual entries have both NULL and are unaffected.
    - ``occurrence_date`` is the immutable generation key.  ``date`` is the
      user-visible date and may be overridden.
    - At most one override record per (ledger_entry_id, field_name).
    - Deleting a rule sets ``recurring_rule_id`` to NULL (ON DELETE SET NULL);
      entries are never deleted with their rule.

Failure modes:
    - IntegrityError on a duplicate (rule, occurrence_date) insert.  The
      materializer resolves it as skip-on-conflict.

Audit relevance:
    Override records are the durable record of user intent on generated
    entries; they decide what template re-syncs may touch.
"""

import datetime as dt
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recurrence_kernel.db.base import TimestampedBase, UUIDString


class LedgerEntry(TimestampedBase):
    """
    A dated monetary entry on one of a user's accounts.

    Contract:
        Either manual (``is_generated`` False, no rule) or generated by a
        recurring rule for one occurrence date.

    Guarantees:
        - ``amount`` is Numeric, never float.
        - ``overrides`` lists the fields pinned by the user.

    Non-goals:
        - Balances and account bookkeeping live outside this kernel.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint(
            "recurring_rule_id",
            "occurrence_date",
            name="uq_ledger_entry_rule_occurrence",
        ),
        Index("idx_ledger_entry_user_date", "user_id", "date"),
        Index("idx_ledger_entry_rule", "recurring_rule_id"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    occurrence_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)

    category_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    subcategory_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    liability_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    memo: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )

    # Generation provenance
    is_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_rule_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("recurring_rules.id", ondelete="SET NULL"),
        nullable=True,
    )
    rule_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    generated_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    recurring_rule: Mapped["RecurringRuleModel | None"] = relationship(  # noqa: F821
        back_populates="entries",
    )
    overrides: Mapped[list["LedgerEntryOverride"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.id} {self.date} {self.amount}>"

    @property
    def overridden_fields(self) -> frozenset[str]:
        return frozenset(o.field_name for o in self.overrides)


class LedgerEntryOverride(TimestampedBase):
    """
    One field of one generated entry pinned against template re-syncs.

    Guarantees:
        - ``original_value`` is the template value when the field was first
          overridden and never changes afterwards.
        - ``overridden_value`` is the most recent user value.
        - Both are JSON-safe scalars or lists.
    """

    __tablename__ = "ledger_entry_overrides"

    __table_args__ = (
        UniqueConstraint(
            "ledger_entry_id",
            "field_name",
            name="uq_ledger_entry_override_field",
        ),
    )

    ledger_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entries.id", ondelete="CASCADE"),
        nullable=False,
    )
    field_name: Mapped[str] = mapped_column(String(50), nullable=False)
    original_value: Mapped[object | None] = mapped_column(JSON, nullable=True)
    overridden_value: Mapped[object | None] = mapped_column(JSON, nullable=True)

    entry: Mapped[LedgerEntry] = relationship(back_populates="overrides")

    def __repr__(self) -> str:
        return f"<LedgerEntryOverride {self.ledger_entry_id}.{self.field_name}>"
