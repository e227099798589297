"""
Tests for LedgerStore.

Covers:
- Skip-on-conflict insert of generated entries
- Manual entry create / update / find
- Override record upsert and clearing
- Detaching entries from a deleted rule
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from recurrence_kernel.domain.template import ExpenseTemplate
from recurrence_kernel.domain.types import Frequency, Schedule, TransactionType
from recurrence_kernel.exceptions import EntryNotFoundError
from recurrence_kernel.models.ledger_entry import LedgerEntryOverride
from recurrence_kernel.services.materializer import generate_entries

GENERATED_AT = datetime(2026, 4, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def rule(rule_store, test_user_id):
    return rule_store.create(
        test_user_id,
        Schedule(Frequency.MONTHLY, 1, date(2026, 1, 1)),
        ExpenseTemplate(account_id="acct-1", amount=Decimal("1000.00"), name="Rent"),
    )


@pytest.fixture
def generated(rule, ledger_store):
    """Three generated entries: Jan, Feb, Mar 2026."""
    drafts = generate_entries(rule, [date(2026, 1, 1), date(2026, 2, 1), date(2026, 3, 1)])
    ledger_store.insert_generated_skip_conflicts(drafts, generated_at=GENERATED_AT)
    return ledger_store.list_generated_by_rule(rule.id)


class TestInsertGenerated:

    def test_inserts_all_new_rows(self, rule, ledger_store):
        drafts = generate_entries(rule, [date(2026, 1, 1), date(2026, 2, 1)])
        assert ledger_store.insert_generated_skip_conflicts(drafts, GENERATED_AT) == 2

        entries = ledger_store.list_generated_by_rule(rule.id)
        assert [e.occurrence_date for e in entries] == [date(2026, 1, 1), date(2026, 2, 1)]
        assert all(e.is_generated for e in entries)
        assert all(e.date == e.occurrence_date for e in entries)
        assert entries[0].amount == Decimal("1000.00")
        assert entries[0].type is TransactionType.EXPENSE

    def test_conflicting_rows_are_skipped(self, rule, ledger_store, generated):
        drafts = generate_entries(rule, [date(2026, 3, 1), date(2026, 4, 1)])
        assert ledger_store.insert_generated_skip_conflicts(drafts, GENERATED_AT) == 1
        assert len(ledger_store.list_generated_by_rule(rule.id)) == 4

    def test_conflict_does_not_overwrite(self, rule, ledger_store, generated):
        ledger_store.update(generated[0].id, {"amount": Decimal("1")})
        drafts = generate_entries(rule, [date(2026, 1, 1)])
        assert ledger_store.insert_generated_skip_conflicts(drafts, GENERATED_AT) == 0
        assert ledger_store.get(generated[0].id).amount == Decimal("1")

    def test_empty_draft_list(self, ledger_store):
        assert ledger_store.insert_generated_skip_conflicts([], GENERATED_AT) == 0

    def test_existing_occurrence_dates_window(self, rule, ledger_store, generated):
        found = ledger_store.existing_occurrence_dates(rule.id, date(2026, 2, 1), date(2026, 12, 31))
        assert found == {date(2026, 2, 1), date(2026, 3, 1)}

    def test_list_generated_from_occurrence(self, rule, ledger_store, generated):
        entries = ledger_store.list_generated_by_rule(rule.id, from_occurrence=date(2026, 2, 1))
        assert [e.occurrence_date for e in entries] == [date(2026, 2, 1), date(2026, 3, 1)]

    def test_list_by_rule_and_range_uses_visible_date(self, rule, ledger_store, generated):
        ledger_store.update(generated[0].id, {"date": date(2026, 2, 10)})
        entries = ledger_store.list_by_rule_and_range(rule.id, date(2026, 2, 1), date(2026, 2, 28))
        assert [e.id for e in entries] == [generated[1].id, generated[0].id]


class TestManualEntries:

    def test_create_manual_entry(self, ledger_store, test_user_id):
        entry = ledger_store.create(
            test_user_id,
            account_id="acct-1",
            type="expense",
            amount="42.10",
            name="Groceries",
            date=date(2026, 4, 2),
            memo="weekly shop",
            tags=["food"],
        )
        assert entry.is_generated is False
        assert entry.recurring_rule_id is None
        assert entry.occurrence_date is None
        assert entry.amount == Decimal("42.10")
        assert entry.tags == ("food",)

    def test_create_rejects_unknown_field(self, ledger_store, test_user_id):
        with pytest.raises(TypeError):
            ledger_store.create(
                test_user_id, "a", "expense", "1", "x", date(2026, 1, 1), colour="red"
            )

    def test_update_rejects_unknown_field(self, ledger_store, test_user_id):
        entry = ledger_store.create(test_user_id, "a", "expense", "1", "x", date(2026, 1, 1))
        with pytest.raises(TypeError):
            ledger_store.update(entry.id, {"is_generated": True})

    def test_update_metadata(self, ledger_store, test_user_id):
        entry = ledger_store.create(test_user_id, "a", "expense", "1", "x", date(2026, 1, 1))
        updated = ledger_store.update(entry.id, {"metadata": {"source": "import"}})
        assert updated.metadata == {"source": "import"}

    def test_find_filters_by_user_and_range(self, ledger_store, test_user_id, other_user_id):
        ledger_store.create(test_user_id, "a", "expense", "1", "early", date(2026, 1, 5))
        ledger_store.create(test_user_id, "a", "expense", "1", "late", date(2026, 3, 5))
        ledger_store.create(other_user_id, "a", "expense", "1", "other", date(2026, 1, 6))

        entries = ledger_store.find(test_user_id, start_date=date(2026, 1, 1), end_date=date(2026, 1, 31))
        assert [e.name for e in entries] == ["early"]

    def test_get_for_user_hides_other_users(self, ledger_store, test_user_id, other_user_id):
        entry = ledger_store.create(test_user_id, "a", "expense", "1", "x", date(2026, 1, 1))
        with pytest.raises(EntryNotFoundError):
            ledger_store.get_for_user(entry.id, other_user_id)

    def test_get_unknown_returns_none(self, ledger_store):
        assert ledger_store.get(uuid4()) is None

    def test_delete(self, ledger_store, test_user_id):
        entry = ledger_store.create(test_user_id, "a", "expense", "1", "x", date(2026, 1, 1))
        ledger_store.delete(entry.id)
        assert ledger_store.get(entry.id) is None


class TestOverrideRecords:

    def test_upsert_keeps_first_original(self, ledger_store, generated):
        entry_id = generated[0].id
        ledger_store.upsert_override(entry_id, "amount", "1000.00", "1100.00")
        record = ledger_store.upsert_override(entry_id, "amount", "1100.00", "1200.00")

        assert record.original_value == "1000.00"
        assert record.overridden_value == "1200.00"
        assert ledger_store.get(entry_id).overridden_fields == {"amount"}
        assert len(ledger_store.get_overrides(entry_id)) == 1

    def test_clear_overrides_from_occurrence(self, rule, ledger_store, generated):
        for entry in generated:
            ledger_store.upsert_override(entry.id, "memo", None, "pinned")

        cleared = ledger_store.clear_overrides(rule.id, from_occurrence=date(2026, 2, 1))

        assert cleared == 2
        pinned = [e.overridden_fields for e in ledger_store.list_generated_by_rule(rule.id)]
        assert pinned == [frozenset({"memo"}), frozenset(), frozenset()]

    def test_overrides_deleted_with_entry(self, session, ledger_store, generated):
        ledger_store.upsert_override(generated[0].id, "memo", None, "x")
        ledger_store.delete(generated[0].id)
        count = session.execute(select(func.count()).select_from(LedgerEntryOverride)).scalar()
        assert count == 0


class TestDetachRule:

    def test_detach_keeps_entries(self, rule, rule_store, ledger_store, generated, test_user_id):
        assert ledger_store.detach_rule(rule.id) == 3
        rule_store.delete(rule.id)

        entries = ledger_store.find(test_user_id)
        assert len(entries) == 3
        assert all(e.recurring_rule_id is None for e in entries)
