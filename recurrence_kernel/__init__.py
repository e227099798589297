"""
Recurrence Kernel

The recurring-obligation engine of a personal finance ledger:
- Deterministic occurrence generation
- Idempotent materialization of historical entries
- Field-level override tracking on generated entries
- Scoped propagation of template edits
- Never-persisted forecasts beyond today
"""

__version__ = "0.1.0"
