"""
Tests for MaterializerService.

Covers:
- Historical entries created once per occurrence, up to and including today
- Idempotency across repeated runs
- Inactive rules skipped
- Watermark maintenance
- Existing entries never rewritten by materialization
"""

from datetime import date
from decimal import Decimal

import pytest

from recurrence_kernel.domain.template import ExpenseTemplate
from recurrence_kernel.domain.types import Frequency, Schedule


@pytest.fixture
def materializer(orchestrator):
    return orchestrator.materializer


@pytest.fixture
def stored_rule(rule_store, test_user_id):
    """A bounded monthly rule that has not been materialized yet."""
    return rule_store.create(
        test_user_id,
        Schedule(Frequency.MONTHLY, 1, date(2026, 1, 1), end_date=date(2026, 3, 31)),
        ExpenseTemplate(account_id="acct-1", amount=Decimal("1000"), name="Rent"),
    )


class TestMaterializeHistorical:

    def test_bounded_monthly_rule(self, materializer, ledger_store, stored_rule):
        assert materializer.materialize_historical(stored_rule.id) == 3

        entries = ledger_store.list_generated_by_rule(stored_rule.id)
        assert [e.occurrence_date for e in entries] == [
            date(2026, 1, 1),
            date(2026, 2, 1),
            date(2026, 3, 1),
        ]
        assert all(e.amount == Decimal("1000") for e in entries)
        assert all(e.is_generated for e in entries)

    def test_second_run_creates_nothing(self, materializer, ledger_store, stored_rule):
        materializer.materialize_historical(stored_rule.id)
        assert materializer.materialize_historical(stored_rule.id) == 0
        assert len(ledger_store.list_generated_by_rule(stored_rule.id)) == 3

    def test_no_future_entries(self, materializer, ledger_store, rule_store, test_user_id):
        rule = rule_store.create(
            test_user_id,
            Schedule(Frequency.WEEKLY, 1, date(2026, 4, 1)),
            ExpenseTemplate(account_id="acct-1", amount=Decimal("20")),
        )
        materializer.materialize_historical(rule.id)

        dates = [e.occurrence_date for e in ledger_store.list_generated_by_rule(rule.id)]
        assert dates == [date(2026, 4, 1), date(2026, 4, 8), date(2026, 4, 15)]

    def test_start_in_future_creates_nothing(self, materializer, rule_store, test_user_id):
        rule = rule_store.create(
            test_user_id,
            Schedule(Frequency.MONTHLY, 1, date(2026, 6, 1)),
            ExpenseTemplate(account_id="acct-1", amount=Decimal("20")),
        )
        assert materializer.materialize_historical(rule.id) == 0
        assert rule_store.get(rule.id).last_materialized_date == date(2026, 4, 15)

    def test_watermark_set_to_today(self, materializer, rule_store, stored_rule):
        materializer.materialize_historical(stored_rule.id)
        assert rule_store.get(stored_rule.id).last_materialized_date == date(2026, 4, 15)

    def test_inactive_rule_skipped(self, materializer, rule_store, test_user_id):
        rule = rule_store.create(
            test_user_id,
            Schedule(Frequency.MONTHLY, 1, date(2026, 1, 1)),
            ExpenseTemplate(account_id="acct-1", amount=Decimal("20")),
            is_active=False,
        )
        assert materializer.materialize_historical(rule.id) == 0
        assert rule_store.get(rule.id).last_materialized_date is None

    def test_clock_moving_forward_adds_new_dates(self, materializer, ledger_store, rule_store, clock, test_user_id):
        rule = rule_store.create(
            test_user_id,
            Schedule(Frequency.MONTHLY, 1, date(2026, 1, 1)),
            ExpenseTemplate(account_id="acct-1", amount=Decimal("20")),
        )
        assert materializer.materialize_historical(rule.id) == 4

        clock.set_date(date(2026, 6, 2))
        assert materializer.materialize_historical(rule.id) == 2
        assert rule_store.get(rule.id).last_materialized_date == date(2026, 6, 2)

    def test_existing_entries_keep_old_template(self, materializer, ledger_store, rule_store, stored_rule):
        materializer.materialize_historical(stored_rule.id)
        rule_store.update_template(
            stored_rule.id, ExpenseTemplate(account_id="acct-1", amount=Decimal("1200"))
        )

        assert materializer.materialize_historical(stored_rule.id) == 0
        entries = ledger_store.list_generated_by_rule(stored_rule.id)
        assert all(e.amount == Decimal("1000") for e in entries)

    def test_logs_materialization(self, materializer, stored_rule, captured_logs):
        materializer.materialize_historical(stored_rule.id)

        records = [r for r in captured_logs() if r["message"] == "rule_materialized"]
        assert len(records) == 1
        assert records[0]["inserted"] == 3
        assert records[0]["watermark"] == "2026-04-15"


class TestMaterializeMany:

    def test_counts_per_rule(self, materializer, rule_store, stored_rule, test_user_id):
        other = rule_store.create(
            test_user_id,
            Schedule(Frequency.ANNUALLY, 1, date(2025, 1, 1)),
            ExpenseTemplate(account_id="acct-1", amount=Decimal("99")),
        )
        counts = materializer.materialize_many([stored_rule, other])
        assert counts == {stored_rule.id: 3, other.id: 2}
