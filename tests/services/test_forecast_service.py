"""
Tests for ForecastService.

Forecasts are virtual: they cover dates strictly after today and never
touch the ledger.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from recurrence_kernel.domain.types import ProjectedEntry
from recurrence_kernel.exceptions import InvalidDateRangeError
from recurrence_kernel.models.ledger_entry import LedgerEntry


@pytest.fixture
def forecaster(orchestrator):
    return orchestrator.forecaster


def ledger_count(session):
    return session.execute(select(func.count()).select_from(LedgerEntry)).scalar()


class TestWindow:

    def test_defaults(self, forecaster):
        assert forecaster.window() == (date(2026, 4, 16), date(2027, 4, 15))

    def test_start_raised_to_tomorrow(self, forecaster):
        start, end = forecaster.window(date(2026, 1, 1), date(2026, 6, 30))
        assert (start, end) == (date(2026, 4, 16), date(2026, 6, 30))

    def test_end_before_start_rejected(self, forecaster):
        with pytest.raises(InvalidDateRangeError) as exc_info:
            forecaster.window(date(2026, 7, 1), date(2026, 6, 1))
        assert exc_info.value.code == "INVALID_DATE_RANGE"


class TestForecast:

    def test_only_dates_after_today(self, forecaster, create_monthly_rule, test_user_id):
        create_monthly_rule()

        projected = forecaster.forecast(test_user_id)

        assert len(projected) == 12
        assert projected[0].occurrence_date == date(2026, 5, 1)
        assert projected[-1].occurrence_date == date(2027, 4, 1)
        assert all(isinstance(p, ProjectedEntry) for p in projected)
        assert all(p.amount == Decimal("1000.00") for p in projected)

    def test_explicit_range(self, forecaster, create_monthly_rule, test_user_id):
        create_monthly_rule()
        projected = forecaster.forecast(test_user_id, date(2026, 6, 1), date(2026, 8, 31))
        assert [p.occurrence_date for p in projected] == [
            date(2026, 6, 1),
            date(2026, 7, 1),
            date(2026, 8, 1),
        ]

    def test_sorted_across_rules(self, forecaster, create_monthly_rule, test_user_id):
        create_monthly_rule(start_date=date(2026, 1, 20))
        create_monthly_rule(start_date=date(2026, 1, 5))

        projected = forecaster.forecast(test_user_id, range_end=date(2026, 6, 30))
        dates = [p.occurrence_date for p in projected]
        assert dates == sorted(dates)
        assert dates[:2] == [date(2026, 4, 20), date(2026, 5, 5)]

    def test_never_persisted(self, forecaster, session, create_monthly_rule, test_user_id):
        create_monthly_rule()
        before = ledger_count(session)
        forecaster.forecast(test_user_id)
        assert ledger_count(session) == before

    def test_reflects_current_template(self, forecaster, rule_service, create_monthly_rule, test_user_id):
        rule = create_monthly_rule()
        rule_service.update_rule(rule.id, test_user_id, template_changes={"amount": "1100"})

        projected = forecaster.forecast(test_user_id, range_end=date(2026, 5, 31))
        assert [p.amount for p in projected] == [Decimal("1100")]
        assert projected[0].rule_version == 2

    def test_inactive_rules_excluded(self, forecaster, create_monthly_rule, test_user_id):
        create_monthly_rule(is_active=False)
        assert forecaster.forecast(test_user_id) == []

    def test_other_users_excluded(self, forecaster, create_monthly_rule, other_user_id):
        create_monthly_rule()
        assert forecaster.forecast(other_user_id) == []

    def test_bounded_rule_ends(self, forecaster, create_monthly_rule, test_user_id):
        create_monthly_rule(end_date=date(2026, 6, 15))
        projected = forecaster.forecast(test_user_id)
        assert [p.occurrence_date for p in projected] == [date(2026, 5, 1), date(2026, 6, 1)]

    def test_logs_forecast(self, forecaster, create_monthly_rule, test_user_id, captured_logs):
        create_monthly_rule()
        forecaster.forecast(test_user_id, range_end=date(2026, 5, 31))

        records = [r for r in captured_logs() if r["message"] == "forecast_generated"]
        assert records[-1]["entries"] == 1
        assert records[-1]["range_start"] == "2026-04-16"
