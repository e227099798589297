"""
recurrence_services -- Package init and public API.

Responsibility:
    Transactional entry points over the recurrence kernel.  This is the
    only layer that commits or rolls back a session.

Architecture position:
    Services -- orchestration over kernel + config.

    Dependency direction (enforced by tests/architecture/test_import_boundaries.py):
        recurrence_services/ -> recurrence_kernel/  (allowed)
        recurrence_services/ -> recurrence_config/  (allowed)
        recurrence_kernel/   -> recurrence_services/ (FORBIDDEN)
        recurrence_kernel/   -> recurrence_config/   (FORBIDDEN)
"""

from recurrence_services.entry_edit_service import EntryEditResult, EntryEditService
from recurrence_services.orchestrator import (
    RecurrenceOrchestrator,
    build_recurrence_orchestrator,
    unit_of_work,
)
from recurrence_services.recurring_rule_service import RecurringRuleService

__all__ = [
    "EntryEditResult",
    "EntryEditService",
    "RecurrenceOrchestrator",
    "RecurringRuleService",
    "build_recurrence_orchestrator",
    "unit_of_work",
]
