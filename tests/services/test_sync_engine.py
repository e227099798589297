"""
Tests for SyncEngine scope dispatch.

The monthly rent rule starts 2026-01-01 and the clock sits at 2026-04-15,
so every test starts with four generated entries (Jan, Feb, Mar, Apr).

Covers:
- this_only pins fields on one entry
- all clears every pin and re-syncs every entry
- all_forward re-syncs from the anchor's occurrence date on
- sync_rule respects pins (including a pinned date)
- A field-limited sync pushes only the changed fields
- No-op template edits under all clear nothing
- Scope validation
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from recurrence_kernel.domain.template import ExpenseTemplate
from recurrence_kernel.domain.types import UpdateScope
from recurrence_kernel.exceptions import InvalidScopeError
from recurrence_kernel.models.ledger_entry import LedgerEntry


@pytest.fixture
def sync_engine(orchestrator):
    return orchestrator.sync_engine


@pytest.fixture
def rule(create_monthly_rule):
    return create_monthly_rule()


@pytest.fixture
def entries(rule, ledger_store):
    """Generated entries keyed by month number."""
    return {e.occurrence_date.month: e for e in ledger_store.list_generated_by_rule(rule.id)}


def amounts(ledger_store, rule_id):
    return {
        e.occurrence_date.month: e.amount for e in ledger_store.list_generated_by_rule(rule_id)
    }


class TestThisOnly:

    def test_pins_anchor_only(self, sync_engine, ledger_store, rule_store, rule, entries):
        result = sync_engine.apply_scope(
            rule.id, {"amount": "1200"}, "this_only", anchor_entry_id=entries[2].id
        )

        assert result.scope is UpdateScope.THIS_ONLY
        assert result.pinned_fields == {"amount"}
        assert result.entries_updated == 1
        assert amounts(ledger_store, rule.id) == {
            1: Decimal("1000.00"),
            2: Decimal("1200"),
            3: Decimal("1000.00"),
            4: Decimal("1000.00"),
        }
        assert rule_store.get(rule.id).version == 1

    def test_value_equal_to_template_is_not_pinned(self, sync_engine, rule, entries):
        result = sync_engine.apply_scope(
            rule.id, {"amount": "1000"}, UpdateScope.THIS_ONLY, anchor_entry_id=entries[1].id
        )
        assert result.pinned_fields == frozenset()

    def test_unchanged_value_updates_nothing(self, sync_engine, rule, entries):
        result = sync_engine.apply_scope(
            rule.id, {"amount": "1000", "memo": ""}, "this_only", anchor_entry_id=entries[1].id
        )
        assert result.entries_updated == 0

    def test_requires_anchor(self, sync_engine, rule):
        with pytest.raises(InvalidScopeError):
            sync_engine.apply_scope(rule.id, {"amount": "1"}, "this_only")


class TestAll:

    def test_clears_pins_and_resyncs_everything(self, sync_engine, ledger_store, rule, entries):
        sync_engine.apply_scope(rule.id, {"amount": "1200"}, "this_only", anchor_entry_id=entries[1].id)

        result = sync_engine.apply_scope(
            rule.id, {"amount": "1500"}, "all", anchor_entry_id=entries[3].id
        )

        assert result.overrides_cleared == 1
        assert result.entries_updated == 4
        assert result.rule_version == 2
        assert set(amounts(ledger_store, rule.id).values()) == {Decimal("1500")}
        assert all(not e.overridden_fields for e in ledger_store.list_generated_by_rule(rule.id))

    def test_anchor_optional(self, sync_engine, ledger_store, rule, entries):
        result = sync_engine.apply_scope(rule.id, {"memo": "auto-pay"}, UpdateScope.ALL)
        assert result.entries_updated == 4
        assert all(e.memo == "auto-pay" for e in ledger_store.list_generated_by_rule(rule.id))

    def test_noop_change_keeps_pins(self, sync_engine, ledger_store, rule_store, rule, entries):
        sync_engine.apply_scope(rule.id, {"amount": "1200"}, "this_only", anchor_entry_id=entries[1].id)

        result = sync_engine.apply_scope(rule.id, {"amount": "1000.00"}, "all")

        assert result.overrides_cleared == 0
        assert result.entries_updated == 0
        assert result.rule_version == 1
        assert rule_store.get(rule.id).version == 1
        jan = ledger_store.get(entries[1].id)
        assert jan.amount == Decimal("1200")
        assert jan.overridden_fields == {"amount"}

    def test_entries_carry_new_version(self, sync_engine, session, rule, entries):
        sync_engine.apply_scope(rule.id, {"amount": "1500"}, "all")
        versions = session.execute(
            select(LedgerEntry.rule_version).where(LedgerEntry.recurring_rule_id == rule.id)
        ).scalars().all()
        assert set(versions) == {2}


class TestAllForward:

    def test_boundary_is_anchor_occurrence(self, sync_engine, ledger_store, rule, entries):
        result = sync_engine.apply_scope(
            rule.id, {"amount": "1300"}, "all_forward", anchor_entry_id=entries[3].id
        )

        assert result.entries_updated == 2
        assert amounts(ledger_store, rule.id) == {
            1: Decimal("1000.00"),
            2: Decimal("1000.00"),
            3: Decimal("1300"),
            4: Decimal("1300"),
        }

    def test_pins_before_boundary_survive(self, sync_engine, ledger_store, rule, entries):
        sync_engine.apply_scope(rule.id, {"memo": "early"}, "this_only", anchor_entry_id=entries[2].id)
        sync_engine.apply_scope(rule.id, {"memo": "late"}, "this_only", anchor_entry_id=entries[4].id)

        result = sync_engine.apply_scope(
            rule.id, {"amount": "1300"}, "all_forward", anchor_entry_id=entries[3].id
        )

        assert result.overrides_cleared == 1
        by_month = {e.occurrence_date.month: e for e in ledger_store.list_generated_by_rule(rule.id)}
        assert by_month[2].overridden_fields == {"memo"}
        assert by_month[2].memo == "early"
        assert by_month[4].overridden_fields == frozenset()
        assert by_month[4].memo is None

    def test_requires_anchor(self, sync_engine, rule):
        with pytest.raises(InvalidScopeError):
            sync_engine.apply_scope(rule.id, {"amount": "1"}, UpdateScope.ALL_FORWARD)


class TestScopeValidation:

    def test_unknown_scope(self, sync_engine, rule, entries):
        with pytest.raises(InvalidScopeError) as exc_info:
            sync_engine.apply_scope(rule.id, {"amount": "1"}, "sometimes", anchor_entry_id=entries[1].id)
        assert exc_info.value.code == "INVALID_SCOPE"

    def test_anchor_from_another_rule(self, sync_engine, create_monthly_rule, ledger_store, rule):
        other = create_monthly_rule()
        foreign = ledger_store.list_generated_by_rule(other.id)[0]
        with pytest.raises(InvalidScopeError):
            sync_engine.apply_scope(rule.id, {"amount": "1"}, "this_only", anchor_entry_id=foreign.id)


class TestSyncRule:

    def test_respects_pins(self, sync_engine, ledger_store, rule_store, rule, entries):
        sync_engine.apply_scope(rule.id, {"amount": "1200"}, "this_only", anchor_entry_id=entries[2].id)
        rule_store.update_template(
            rule.id, ExpenseTemplate(account_id="acct-checking", amount=Decimal("1300"), name="Rent")
        )

        assert sync_engine.sync_rule(rule.id) == 4
        assert amounts(ledger_store, rule.id) == {
            1: Decimal("1300"),
            2: Decimal("1200"),
            3: Decimal("1300"),
            4: Decimal("1300"),
        }

    def test_in_sync_entries_not_rewritten(self, sync_engine, rule, entries):
        assert sync_engine.sync_rule(rule.id) == 0

    def test_unpinned_date_follows_occurrence(self, sync_engine, ledger_store, rule, entries):
        ledger_store.update(entries[1].id, {"date": date(2026, 1, 5)})
        assert sync_engine.sync_rule(rule.id) == 1
        assert ledger_store.get(entries[1].id).date == date(2026, 1, 1)

    def test_pinned_date_kept(self, sync_engine, ledger_store, rule, entries):
        sync_engine.apply_scope(
            rule.id, {"date": date(2026, 1, 5)}, "this_only", anchor_entry_id=entries[1].id
        )
        assert sync_engine.sync_rule(rule.id) == 0
        assert ledger_store.get(entries[1].id).date == date(2026, 1, 5)

    def test_from_date(self, sync_engine, ledger_store, rule, entries):
        sync_engine.apply_scope(rule.id, {"memo": "x"}, "all_forward", anchor_entry_id=entries[4].id)
        memos = [e.memo for e in ledger_store.list_generated_by_rule(rule.id)]
        assert memos == [None, None, None, "x"]

    def test_field_limited_sync_leaves_other_columns(self, sync_engine, ledger_store, rule_store, rule, entries):
        ledger_store.update(
            entries[1].id, {"amount": Decimal("990"), "name": "Rent (Jan)", "date": date(2026, 1, 3)}
        )
        rule_store.update_template(
            rule.id,
            ExpenseTemplate(
                account_id="acct-checking", amount=Decimal("1000.00"), name="Rent", memo="standing order"
            ),
        )

        assert sync_engine.sync_rule(rule.id, fields={"memo"}) == 4

        jan = ledger_store.get(entries[1].id)
        assert jan.memo == "standing order"
        assert jan.amount == Decimal("990")
        assert jan.name == "Rent (Jan)"
        assert jan.date == date(2026, 1, 3)


class TestBoundaryAcrossEdits:

    def test_later_rule_edit_keeps_earlier_entries(self, sync_engine, ledger_store, rule_store, rule, entries):
        sync_engine.apply_scope(rule.id, {"amount": "1500"}, "all_forward", anchor_entry_id=entries[3].id)
        assert amounts(ledger_store, rule.id) == {
            1: Decimal("1000.00"),
            2: Decimal("1000.00"),
            3: Decimal("1500"),
            4: Decimal("1500"),
        }

        current = rule_store.get(rule.id)
        updated = sync_engine.update_template(current, {"memo": "new memo"})
        sync_engine.sync_rule(rule.id, fields={"memo"})

        assert updated.version == current.version + 1
        assert amounts(ledger_store, rule.id) == {
            1: Decimal("1000.00"),
            2: Decimal("1000.00"),
            3: Decimal("1500"),
            4: Decimal("1500"),
        }
        assert {e.memo for e in ledger_store.list_generated_by_rule(rule.id)} == {"new memo"}
