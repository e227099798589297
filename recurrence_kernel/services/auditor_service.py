"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates hash-chained audit events for every state change the engine
    makes on a user's behalf (rule lifecycle, materialization runs,
    overrides, scoped edits).  Provides chain validation for tamper
    detection and per-entity trace queries.

Architecture position:
    Kernel > Services -- called by RecurringRuleService and EntryEditService.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.
    - Append-only: audit events are never modified or deleted.

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match the stored
      hash, or prev_hash does not match the predecessor's hash.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock, SystemClock
from recurrence_kernel.exceptions import AuditChainBrokenError
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.models.audit_event import AuditAction, AuditEvent
from recurrence_kernel.services.sequence_service import SequenceService
from recurrence_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")

RULE_ENTITY = "RecurringRule"
ENTRY_ENTITY = "LedgerEntry"
USER_ENTITY = "User"


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events of one entity, in sequence order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Guarantees:
        - Every event's ``hash`` is a deterministic function of
          ``(entity_type, entity_id, action, payload_hash, prev_hash)``.
        - Sequence numbers come from SequenceService.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)
        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return audit_event

    # -------------------------------------------------------------------------
    # Rule lifecycle
    # -------------------------------------------------------------------------

    def record_rule_created(
        self,
        rule_id: UUID,
        actor_id: UUID,
        frequency: str,
        start_date: date,
        entries_created: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type=RULE_ENTITY,
            entity_id=rule_id,
            action=AuditAction.RULE_CREATED,
            actor_id=actor_id,
            payload={
                "frequency": frequency,
                "start_date": start_date,
                "entries_created": entries_created,
            },
        )

    def record_rule_updated(
        self,
        rule_id: UUID,
        actor_id: UUID,
        changed_fields: list[str],
        version: int,
        entries_synced: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type=RULE_ENTITY,
            entity_id=rule_id,
            action=AuditAction.RULE_UPDATED,
            actor_id=actor_id,
            payload={
                "changed_fields": sorted(changed_fields),
                "version": version,
                "entries_synced": entries_synced,
            },
        )

    def record_rule_deleted(
        self,
        rule_id: UUID,
        actor_id: UUID,
        entries_detached: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type=RULE_ENTITY,
            entity_id=rule_id,
            action=AuditAction.RULE_DELETED,
            actor_id=actor_id,
            payload={"entries_detached": entries_detached},
        )

    def record_rules_materialized(
        self,
        user_id: UUID,
        as_of: date,
        rules_processed: int,
        entries_created: int,
    ) -> AuditEvent:
        """One event per materialize-all run, keyed on the user."""
        return self._create_audit_event(
            entity_type=USER_ENTITY,
            entity_id=user_id,
            action=AuditAction.RULES_MATERIALIZED,
            actor_id=user_id,
            payload={
                "as_of": as_of,
                "rules_processed": rules_processed,
                "entries_created": entries_created,
            },
        )

    # -------------------------------------------------------------------------
    # Entry edits
    # -------------------------------------------------------------------------

    def record_entry_overridden(
        self,
        entry_id: UUID,
        actor_id: UUID,
        rule_id: UUID,
        fields: list[str],
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type=ENTRY_ENTITY,
            entity_id=entry_id,
            action=AuditAction.ENTRY_OVERRIDDEN,
            actor_id=actor_id,
            payload={"rule_id": rule_id, "fields": sorted(fields)},
        )

    def record_scope_applied(
        self,
        entry_id: UUID,
        actor_id: UUID,
        rule_id: UUID,
        scope: str,
        entries_updated: int,
        overrides_cleared: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type=ENTRY_ENTITY,
            entity_id=entry_id,
            action=AuditAction.SCOPE_APPLIED,
            actor_id=actor_id,
            payload={
                "rule_id": rule_id,
                "scope": scope,
                "entries_updated": entries_updated,
                "overrides_cleared": overrides_cleared,
            },
        )

    # -------------------------------------------------------------------------
    # Validation and queries
    # -------------------------------------------------------------------------

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(str(events[0].id), "None", events[0].prev_hash)

        for i, event in enumerate(events):
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=hash_payload(event.payload or {}),
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            if i > 0 and event.prev_hash != events[i - 1].hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    str(event.id),
                    events[i - 1].hash,
                    event.prev_hash or "None",
                )

        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """All audit events of one entity, in sequence order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=AuditAction(e.action),
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )
