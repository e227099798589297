"""
Pytest fixtures for the recurrence engine test suite.

Provides:
- A fresh in-memory SQLite database per test (schema created from the models)
- A DeterministicClock fixed at 2026-04-15 so "today" never drifts
- Wired kernel services and entry-point services
- Structured log capture
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from recurrence_kernel.db.engine import build_engine, create_tables, make_session_factory
from recurrence_kernel.domain.clock import DeterministicClock
from recurrence_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from recurrence_services import (
    EntryEditService,
    RecurringRuleService,
    build_recurrence_orchestrator,
)

# "Today" for every test unless a test moves the clock.
TODAY = date(2026, 4, 15)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture recurrence_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, rule_service):
            rule_service.create_rule(...)
            logs = captured_logs()
            assert any(r["message"] == "rule_materialized" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("recurrence_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine with the full schema."""
    engine = build_engine("sqlite:///:memory:")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = make_session_factory(engine)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock():
    return DeterministicClock.on(TODAY)


@pytest.fixture
def test_user_id():
    return uuid4()


@pytest.fixture
def other_user_id():
    return uuid4()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def orchestrator(session, clock):
    return build_recurrence_orchestrator(session, clock=clock)


@pytest.fixture
def rule_store(orchestrator):
    return orchestrator.rule_store


@pytest.fixture
def ledger_store(orchestrator):
    return orchestrator.ledger_store


@pytest.fixture
def rule_service(orchestrator):
    return RecurringRuleService(orchestrator)


@pytest.fixture
def edit_service(orchestrator):
    return EntryEditService(orchestrator)


# =============================================================================
# Data helpers
# =============================================================================


@pytest.fixture
def rent_template():
    """Expense template used across the suite."""
    return {
        "type": "expense",
        "account_id": "acct-checking",
        "amount": Decimal("1000.00"),
        "name": "Rent",
        "category_id": "cat-housing",
        "tags": ["home"],
    }


@pytest.fixture
def create_monthly_rule(rule_service, test_user_id, rent_template, clock):
    """
    Factory creating a monthly rule for ``test_user_id``.

    Advances the clock by one second after each rule so creation times
    (and therefore list ordering) are distinct.
    """

    def _create(start_date=date(2026, 1, 1), template=None, **kwargs):
        rule = rule_service.create_rule(
            user_id=test_user_id,
            frequency="monthly",
            start_date=start_date,
            template=template or rent_template,
            **kwargs,
        )
        clock.advance()
        return rule

    return _create
