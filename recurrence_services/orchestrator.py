"""
recurrence_services.orchestrator -- Central DI container for kernel services.

Responsibility:
    Creates every kernel service and store exactly once for a session and
    wires them together.  No service constructs another service when it is
    built through the orchestrator.

Architecture position:
    Services -- orchestration over the kernel.  This is the only place
    where settings from ``recurrence_config`` are translated into kernel
    constructor arguments.

Invariants enforced:
    - Single-instance lifecycle: one RuleStore, LedgerStore and
      AuditorService per orchestrator, shared by every service.
    - All services share the same Session and Clock instances.

Failure modes:
    - ValueError from EngineSettings if the supplied settings are invalid.

Usage:
    orchestrator = build_recurrence_orchestrator(session, clock=clock)
    rules = RecurringRuleService(orchestrator)
    edits = EntryEditService(orchestrator)
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

from sqlalchemy.orm import Session

from recurrence_config.schema import EngineSettings
from recurrence_kernel.domain.clock import Clock, SystemClock
from recurrence_kernel.domain.references import (
    PermissiveReferenceChecker,
    ReferenceChecker,
)
from recurrence_kernel.logging_config import LogContext, get_logger
from recurrence_kernel.services.auditor_service import AuditorService
from recurrence_kernel.services.forecast_service import ForecastService
from recurrence_kernel.services.materializer import MaterializerService
from recurrence_kernel.services.override_tracker import OverrideTracker
from recurrence_kernel.services.sync_engine import SyncEngine
from recurrence_kernel.stores.ledger_store import LedgerStore
from recurrence_kernel.stores.rule_store import RuleStore

logger = get_logger("services.orchestrator")


class RecurrenceOrchestrator:
    """Central factory for kernel services.

    Contract:
        Receives a SQLAlchemy Session plus optional Clock, EngineSettings
        and ReferenceChecker.  Constructs every kernel service once, in
        dependency order, and exposes them as public attributes.

    Non-goals:
        - Does NOT manage transaction boundaries (the entry-point services
          do, see ``unit_of_work``).
        - Does NOT own the Session lifecycle.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        reference_checker: ReferenceChecker | None = None,
    ) -> None:
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or EngineSettings()
        self.reference_checker = reference_checker or PermissiveReferenceChecker()

        horizon = self.settings.default_horizon_months

        # Stores
        self.rule_store = RuleStore(session)
        self.ledger_store = LedgerStore(session)

        # Services, in dependency order
        self.auditor = AuditorService(session, self.clock)
        self.materializer = MaterializerService(
            session,
            self.clock,
            rule_store=self.rule_store,
            ledger_store=self.ledger_store,
            horizon_months=horizon,
        )
        self.override_tracker = OverrideTracker(
            session,
            self.clock,
            rule_store=self.rule_store,
            ledger_store=self.ledger_store,
        )
        self.sync_engine = SyncEngine(
            session,
            self.clock,
            rule_store=self.rule_store,
            ledger_store=self.ledger_store,
            override_tracker=self.override_tracker,
        )
        self.forecaster = ForecastService(
            session,
            self.clock,
            rule_store=self.rule_store,
            horizon_months=horizon,
            default_months=self.settings.forecast_default_months,
        )


def build_recurrence_orchestrator(
    session: Session,
    clock: Clock | None = None,
    settings: EngineSettings | None = None,
    reference_checker: ReferenceChecker | None = None,
) -> RecurrenceOrchestrator:
    return RecurrenceOrchestrator(
        session,
        clock=clock,
        settings=settings,
        reference_checker=reference_checker,
    )


@contextmanager
def unit_of_work(
    session: Session,
    operation: str,
    auto_commit: bool = True,
    **context: str | None,
) -> Iterator[None]:
    """
    Transaction boundary for one entry-point call.

    Commits when the block succeeds and rolls back when it raises (only
    when ``auto_commit`` is set).  Binds a fresh correlation id plus
    ``context`` into LogContext for the duration of the call.
    """
    with LogContext.bind(correlation_id=str(uuid4()), **context):
        logger.info(f"{operation}_started")
        t0 = time.monotonic()
        try:
            yield
            if auto_commit:
                session.commit()
        except Exception:
            if auto_commit:
                session.rollback()
            logger.error(
                f"{operation}_failed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                exc_info=True,
            )
            raise
        logger.info(
            f"{operation}_completed",
            extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
        )
