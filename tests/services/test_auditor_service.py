"""
Tests for the audit hash chain.
"""

from datetime import date

import pytest
from sqlalchemy import select

from recurrence_kernel.exceptions import AuditChainBrokenError
from recurrence_kernel.models.audit_event import AuditAction, AuditEvent
from recurrence_kernel.services.auditor_service import RULE_ENTITY, USER_ENTITY


@pytest.fixture
def auditor(orchestrator):
    return orchestrator.auditor


class TestChain:

    def test_empty_chain_is_valid(self, auditor):
        assert auditor.validate_chain() is True

    def test_chain_links_events(self, auditor, session, create_monthly_rule, rule_service, test_user_id):
        rule = create_monthly_rule()
        rule_service.update_rule(rule.id, test_user_id, template_changes={"amount": "1100"})
        rule_service.materialize_all(test_user_id)

        events = session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars().all()
        assert len(events) == 3
        assert events[0].prev_hash is None
        assert events[1].prev_hash == events[0].hash
        assert events[2].prev_hash == events[1].hash
        assert auditor.validate_chain() is True

    def test_tampered_payload_detected(self, auditor, session, create_monthly_rule):
        create_monthly_rule()
        event = session.execute(select(AuditEvent)).scalars().first()
        event.payload = {**event.payload, "entries_created": 99}
        session.flush()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            auditor.validate_chain()
        assert exc_info.value.code == "AUDIT_CHAIN_BROKEN"

    def test_sequence_numbers_increase(self, session, create_monthly_rule):
        create_monthly_rule()
        create_monthly_rule()
        seqs = session.execute(select(AuditEvent.seq).order_by(AuditEvent.seq)).scalars().all()
        assert seqs == sorted(set(seqs))
        assert len(seqs) == 2


class TestTrace:

    def test_rule_trace(self, auditor, create_monthly_rule, rule_service, test_user_id):
        rule = create_monthly_rule()
        rule_service.update_rule(rule.id, test_user_id, is_active=False)
        rule_service.delete_rule(rule.id, test_user_id)

        trace = auditor.get_trace(RULE_ENTITY, rule.id)

        assert trace.actions == (
            AuditAction.RULE_CREATED,
            AuditAction.RULE_UPDATED,
            AuditAction.RULE_DELETED,
        )
        assert trace.entries[0].payload["entries_created"] == 4
        assert trace.entries[0].payload["start_date"] == date(2026, 1, 1).isoformat()
        assert trace.entries[2].payload["entries_detached"] == 4
        assert all(e.actor_id == test_user_id for e in trace.entries)

    def test_materialize_all_keyed_on_user(self, auditor, create_monthly_rule, rule_service, test_user_id):
        create_monthly_rule()
        rule_service.materialize_all(test_user_id)

        trace = auditor.get_trace(USER_ENTITY, test_user_id)
        assert trace.actions == (AuditAction.RULES_MATERIALIZED,)
        assert trace.entries[0].payload["rules_processed"] == 1
        assert trace.entries[0].payload["entries_created"] == 0

    def test_unknown_entity_trace_is_empty(self, auditor, test_user_id):
        assert auditor.get_trace(RULE_ENTITY, test_user_id).is_empty
