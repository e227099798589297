"""
Module: recurrence_kernel.stores.ledger_store
Responsibility: Persistence of ledger entries and their override records,
    including the skip-on-conflict bulk insert used by materialization.
Architecture position: Kernel > Stores.

Invariants enforced:
    - A (recurring_rule_id, occurrence_date) pair is inserted at most once.
      Conflicting rows are skipped, never raised and never overwritten.
    - Override records are upserted: the first original_value is kept, the
      overridden_value is replaced.
    - Entry reads refresh the override collection (populate_existing) so a
      DTO's ``overridden_fields`` always reflects the database.

Failure modes:
    - EntryNotFoundError when an entry id does not resolve (or is owned by
      another user).
    - SQLAlchemyError subclasses propagate unchanged.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from recurrence_kernel.domain.money import to_money
from recurrence_kernel.domain.types import (
    LedgerEntryInfo,
    OverrideInfo,
    ProjectedEntry,
    TransactionType,
)
from recurrence_kernel.exceptions import EntryNotFoundError
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.models.ledger_entry import LedgerEntry, LedgerEntryOverride
from recurrence_kernel.stores.base import BaseStore

logger = get_logger("stores.ledger")

INSERT_BATCH_SIZE = 500

# Entry fields a caller may edit; "metadata" maps to entry_metadata.
EDITABLE_FIELDS = frozenset(
    {
        "account_id",
        "type",
        "amount",
        "name",
        "date",
        "category_id",
        "subcategory_id",
        "liability_id",
        "description",
        "memo",
        "tags",
        "metadata",
    }
)

# Sync additionally stamps the rule version it applied.
WRITABLE_FIELDS = EDITABLE_FIELDS | {"rule_version"}


def _column_value(field_name: str, value: Any) -> Any:
    """Convert a DTO-level value into what the ORM column stores."""
    if field_name == "type":
        return TransactionType(value).value
    if field_name == "amount":
        return to_money(value)
    if field_name == "date" and not isinstance(value, date):
        return date.fromisoformat(str(value))
    if field_name == "tags":
        return list(value or ())
    if field_name == "metadata":
        return dict(value or {})
    return value


class LedgerStore(BaseStore[LedgerEntry]):
    """
    Store for ledger entries.

    Guarantees:
        - find() and list_generated_by_rule() are ordered deterministically
          (by date / occurrence_date, then id).
        - insert_generated_skip_conflicts() returns the number of rows
          actually inserted.
    """

    def _to_dto(self, entry: LedgerEntry) -> LedgerEntryInfo:
        return LedgerEntryInfo(
            id=entry.id,
            user_id=entry.user_id,
            account_id=entry.account_id,
            type=TransactionType(entry.type),
            amount=entry.amount,
            name=entry.name,
            date=entry.date,
            occurrence_date=entry.occurrence_date,
            category_id=entry.category_id,
            subcategory_id=entry.subcategory_id,
            liability_id=entry.liability_id,
            description=entry.description,
            memo=entry.memo,
            tags=tuple(entry.tags or ()),
            metadata=dict(entry.entry_metadata or {}),
            is_generated=entry.is_generated,
            recurring_rule_id=entry.recurring_rule_id,
            overridden_fields=entry.overridden_fields,
            generated_at=entry.generated_at,
        )

    def _select(self):
        return (
            select(LedgerEntry)
            .options(selectinload(LedgerEntry.overrides))
            .execution_options(populate_existing=True)
        )

    def _load(self, entry_id: UUID) -> LedgerEntry:
        entry = self.session.execute(
            self._select().where(LedgerEntry.id == entry_id)
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, entry_id: UUID) -> LedgerEntryInfo | None:
        entry = self.session.execute(
            self._select().where(LedgerEntry.id == entry_id)
        ).scalar_one_or_none()
        return self._to_dto(entry) if entry is not None else None

    def get_for_user(self, entry_id: UUID, user_id: UUID) -> LedgerEntryInfo:
        entry = self._load(entry_id)
        if entry.user_id != user_id:
            raise EntryNotFoundError(str(entry_id))
        return self._to_dto(entry)

    def find(
        self,
        user_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
        rule_id: UUID | None = None,
    ) -> list[LedgerEntryInfo]:
        """A user's entries, optionally within [start_date, end_date] and for one rule."""
        stmt = self._select().where(LedgerEntry.user_id == user_id)
        if start_date is not None:
            stmt = stmt.where(LedgerEntry.date >= start_date)
        if end_date is not None:
            stmt = stmt.where(LedgerEntry.date <= end_date)
        if rule_id is not None:
            stmt = stmt.where(LedgerEntry.recurring_rule_id == rule_id)
        stmt = stmt.order_by(LedgerEntry.date, LedgerEntry.id)
        return [self._to_dto(e) for e in self.session.execute(stmt).scalars()]

    def list_by_rule_and_range(
        self,
        rule_id: UUID,
        start_date: date,
        end_date: date,
    ) -> list[LedgerEntryInfo]:
        """Every entry of a rule whose user-visible date is in [start_date, end_date]."""
        stmt = (
            self._select()
            .where(
                LedgerEntry.recurring_rule_id == rule_id,
                LedgerEntry.date >= start_date,
                LedgerEntry.date <= end_date,
            )
            .order_by(LedgerEntry.date, LedgerEntry.id)
        )
        return [self._to_dto(e) for e in self.session.execute(stmt).scalars()]

    def list_generated_by_rule(
        self,
        rule_id: UUID,
        from_occurrence: date | None = None,
        to_occurrence: date | None = None,
    ) -> list[LedgerEntryInfo]:
        """Generated entries of a rule, by occurrence date, within an inclusive range."""
        stmt = self._select().where(
            LedgerEntry.recurring_rule_id == rule_id,
            LedgerEntry.is_generated.is_(True),
        )
        if from_occurrence is not None:
            stmt = stmt.where(LedgerEntry.occurrence_date >= from_occurrence)
        if to_occurrence is not None:
            stmt = stmt.where(LedgerEntry.occurrence_date <= to_occurrence)
        stmt = stmt.order_by(LedgerEntry.occurrence_date, LedgerEntry.id)
        return [self._to_dto(e) for e in self.session.execute(stmt).scalars()]

    def existing_occurrence_dates(
        self,
        rule_id: UUID,
        start: date | None = None,
        end: date | None = None,
    ) -> set[date]:
        stmt = select(LedgerEntry.occurrence_date).where(
            LedgerEntry.recurring_rule_id == rule_id,
            LedgerEntry.occurrence_date.is_not(None),
        )
        if start is not None:
            stmt = stmt.where(LedgerEntry.occurrence_date >= start)
        if end is not None:
            stmt = stmt.where(LedgerEntry.occurrence_date <= end)
        return set(self.session.execute(stmt).scalars())

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create(
        self,
        user_id: UUID,
        account_id: str,
        type: TransactionType | str,
        amount,
        name: str,
        date: date,
        **optional: Any,
    ) -> LedgerEntryInfo:
        """
        Create a manual (not generated) entry.

        ``optional`` may carry category_id, subcategory_id, liability_id,
        description, memo, tags and metadata.
        """
        unknown = set(optional) - EDITABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown entry fields: {sorted(unknown)}")
        entry = LedgerEntry(
            user_id=user_id,
            account_id=account_id,
            type=_column_value("type", type),
            amount=to_money(amount),
            name=name,
            date=date,
            is_generated=False,
            tags=_column_value("tags", optional.pop("tags", None)),
            entry_metadata=_column_value("metadata", optional.pop("metadata", None)),
            **optional,
        )
        self.session.add(entry)
        self.session.flush()
        return self._to_dto(self._load(entry.id))

    def update(self, entry_id: UUID, changes: Mapping[str, Any]) -> LedgerEntryInfo:
        """Apply ``changes`` (DTO field names) to an entry."""
        unknown = set(changes) - WRITABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown entry fields: {sorted(unknown)}")
        entry = self._load(entry_id)
        for field_name, value in changes.items():
            attr = "entry_metadata" if field_name == "metadata" else field_name
            setattr(entry, attr, _column_value(field_name, value))
        self.session.flush()
        return self._to_dto(entry)

    def delete(self, entry_id: UUID) -> None:
        self.session.delete(self._load(entry_id))
        self.session.flush()

    def detach_rule(self, rule_id: UUID) -> int:
        """
        Clear ``recurring_rule_id`` on every entry of a rule.  The entries
        survive as standalone entries.

        Returns:
            Number of entries detached.
        """
        entries = self.session.execute(
            select(LedgerEntry).where(LedgerEntry.recurring_rule_id == rule_id)
        ).scalars().all()
        for entry in entries:
            entry.recurring_rule_id = None
        self.session.flush()
        return len(entries)

    def insert_generated_skip_conflicts(
        self,
        drafts: Iterable[ProjectedEntry],
        generated_at: datetime,
    ) -> int:
        """
        Insert generated entries, silently skipping any whose
        (rule, occurrence_date) already exists.

        Uses ``INSERT ... ON CONFLICT DO NOTHING`` on PostgreSQL and SQLite;
        other dialects fall back to one savepoint per row.

        Returns:
            Number of rows inserted.
        """
        rows = [self._draft_row(d, generated_at) for d in drafts]
        if not rows:
            return 0

        if self.dialect_name in ("postgresql", "sqlite"):
            if self.dialect_name == "postgresql":
                from sqlalchemy.dialects.postgresql import insert as dialect_insert
            else:
                from sqlalchemy.dialects.sqlite import insert as dialect_insert
            inserted = 0
            # Bounded batches keep each statement under the bind-parameter limit
            for i in range(0, len(rows), INSERT_BATCH_SIZE):
                stmt = (
                    dialect_insert(LedgerEntry.__table__)
                    .values(rows[i : i + INSERT_BATCH_SIZE])
                    .on_conflict_do_nothing(
                        index_elements=["recurring_rule_id", "occurrence_date"]
                    )
                )
                inserted += self.session.execute(stmt).rowcount
        else:
            inserted = self._insert_with_savepoints(rows)

        logger.debug(
            "generated_entries_inserted",
            extra={"attempted": len(rows), "inserted": inserted},
        )
        return inserted

    def _insert_with_savepoints(self, rows: list[dict[str, Any]]) -> int:
        inserted = 0
        table = LedgerEntry.__table__
        for row in rows:
            savepoint = self.session.begin_nested()
            try:
                self.session.execute(table.insert().values(**row))
                savepoint.commit()
                inserted += 1
            except IntegrityError:
                savepoint.rollback()
        return inserted

    @staticmethod
    def _draft_row(draft: ProjectedEntry, generated_at: datetime) -> dict[str, Any]:
        # Keys are column names ("metadata", not entry_metadata)
        return {
            "id": uuid4(),
            "user_id": draft.user_id,
            "account_id": draft.account_id,
            "type": TransactionType(draft.type).value,
            "amount": draft.amount,
            "name": draft.name,
            "date": draft.occurrence_date,
            "occurrence_date": draft.occurrence_date,
            "category_id": draft.category_id,
            "subcategory_id": draft.subcategory_id,
            "liability_id": draft.liability_id,
            "description": draft.description,
            "memo": draft.memo,
            "tags": list(draft.tags),
            "metadata": dict(draft.metadata),
            "is_generated": True,
            "recurring_rule_id": draft.recurring_rule_id,
            "rule_version": draft.rule_version,
            "generated_at": generated_at,
            "created_at": generated_at,
            "updated_at": generated_at,
        }

    # -------------------------------------------------------------------------
    # Override records
    # -------------------------------------------------------------------------

    @staticmethod
    def _override_dto(record: LedgerEntryOverride) -> OverrideInfo:
        return OverrideInfo(
            entry_id=record.ledger_entry_id,
            field_name=record.field_name,
            original_value=record.original_value,
            overridden_value=record.overridden_value,
        )

    def get_overrides(self, entry_id: UUID) -> dict[str, OverrideInfo]:
        entry = self._load(entry_id)
        return {o.field_name: self._override_dto(o) for o in entry.overrides}

    def upsert_override(
        self,
        entry_id: UUID,
        field_name: str,
        original_value: Any,
        overridden_value: Any,
    ) -> OverrideInfo:
        """
        Pin ``field_name`` on an entry.

        An existing record keeps its original_value; only overridden_value
        is replaced.
        """
        entry = self._load(entry_id)
        for record in entry.overrides:
            if record.field_name == field_name:
                record.overridden_value = overridden_value
                break
        else:
            record = LedgerEntryOverride(
                field_name=field_name,
                original_value=original_value,
                overridden_value=overridden_value,
            )
            entry.overrides.append(record)
        self.session.flush()
        return self._override_dto(record)

    def clear_overrides(
        self,
        rule_id: UUID,
        from_occurrence: date | None = None,
    ) -> int:
        """
        Delete override records on a rule's generated entries, optionally
        only those with occurrence_date >= ``from_occurrence``.

        Returns:
            Number of override records deleted.
        """
        stmt = self._select().where(
            LedgerEntry.recurring_rule_id == rule_id,
            LedgerEntry.is_generated.is_(True),
        )
        if from_occurrence is not None:
            stmt = stmt.where(LedgerEntry.occurrence_date >= from_occurrence)

        cleared = 0
        for entry in self.session.execute(stmt).scalars():
            cleared += len(entry.overrides)
            entry.overrides.clear()
        self.session.flush()
        return cleared
