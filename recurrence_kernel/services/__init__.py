"""Services for the recurrence kernel (write side and projections)."""

from recurrence_kernel.services.auditor_service import AuditorService, AuditTrace
from recurrence_kernel.services.forecast_service import ForecastService
from recurrence_kernel.services.materializer import (
    MaterializerService,
    generate_entries,
    project_entry,
)
from recurrence_kernel.services.override_tracker import OverrideTracker
from recurrence_kernel.services.sequence_service import SequenceService
from recurrence_kernel.services.sync_engine import SyncEngine

__all__ = [
    "AuditTrace",
    "AuditorService",
    "ForecastService",
    "MaterializerService",
    "OverrideTracker",
    "SequenceService",
    "SyncEngine",
    "generate_entries",
    "project_entry",
]
