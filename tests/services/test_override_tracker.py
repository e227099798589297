"""
Tests for OverrideTracker.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from recurrence_kernel.domain.template import ExpenseTemplate
from recurrence_kernel.exceptions import EntryNotFoundError, FieldNotOverridableError


@pytest.fixture
def tracker(orchestrator):
    return orchestrator.override_tracker


@pytest.fixture
def rule(create_monthly_rule):
    return create_monthly_rule()


@pytest.fixture
def first_entry(rule, ledger_store):
    return ledger_store.list_generated_by_rule(rule.id)[0]


class TestDetectOverrides:

    def test_diverging_fields_only(self, tracker, first_entry):
        fields = tracker.detect_overrides(
            first_entry.id,
            {"amount": Decimal("1000.00"), "memo": "paid late", "category_id": "cat-housing"},
        )
        assert fields == {"memo"}

    def test_compares_against_current_template(self, tracker, rule_store, rule, first_entry):
        rule_store.update_template(
            rule.id, ExpenseTemplate(account_id="acct-checking", amount=Decimal("1100"))
        )
        assert tracker.detect_overrides(first_entry.id, {"amount": "1000.00"}) == {"amount"}
        assert tracker.detect_overrides(first_entry.id, {"amount": "1100"}) == frozenset()

    def test_manual_entry_has_no_overrides(self, tracker, ledger_store, test_user_id):
        entry = ledger_store.create(test_user_id, "a", "expense", "1", "x", date(2026, 1, 1))
        assert tracker.detect_overrides(entry.id, {"amount": "5"}) == frozenset()

    def test_unknown_entry(self, tracker):
        with pytest.raises(EntryNotFoundError):
            tracker.detect_overrides(uuid4(), {"memo": "x"})


class TestRecordOverride:

    def test_upsert_keeps_single_record(self, tracker, first_entry):
        tracker.record_override(first_entry.id, "amount", Decimal("1000.00"), Decimal("1050"))
        record = tracker.record_override(first_entry.id, "amount", Decimal("1050"), Decimal("1075"))

        assert record.original_value == "1000.00"
        assert record.overridden_value == "1075"
        assert set(tracker.list_overrides(first_entry.id)) == {"amount"}

    def test_rejects_non_overridable_field(self, tracker, first_entry):
        with pytest.raises(FieldNotOverridableError):
            tracker.record_override(first_entry.id, "name", "Rent", "Other")


class TestPinChanges:

    def test_pins_diverging_fields_and_updates_entry(self, tracker, ledger_store, rule_store, rule, first_entry):
        pinned = tracker.pin_changes(
            first_entry,
            rule_store.get(rule.id),
            {"amount": "1200", "memo": None},
        )

        assert pinned == {"amount"}
        entry = ledger_store.get(first_entry.id)
        assert entry.amount == Decimal("1200")
        assert entry.overridden_fields == {"amount"}

    def test_non_overridable_field_rejected(self, tracker, rule_store, rule, first_entry):
        with pytest.raises(FieldNotOverridableError) as exc_info:
            tracker.pin_changes(first_entry, rule_store.get(rule.id), {"name": "Other"})
        assert exc_info.value.field_name == "name"

    def test_moved_date_is_pinned(self, tracker, ledger_store, rule_store, rule, first_entry):
        pinned = tracker.pin_changes(
            first_entry, rule_store.get(rule.id), {"date": date(2026, 1, 3)}
        )
        assert pinned == {"date"}
        assert ledger_store.get(first_entry.id).date == date(2026, 1, 3)
