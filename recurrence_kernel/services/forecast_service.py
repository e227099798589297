"""
ForecastService -- project a user's future recurring entries.

Responsibility:
    Computes, for every active rule of a user, the entries its current
    template would produce on dates after today, without writing anything.

Architecture position:
    Kernel > Services.  Read-only; called by RecurringRuleService.forecast.

Invariants enforced:
    - Only dates strictly after today are returned; historical dates are the
      materializer's responsibility.
    - Nothing is persisted and no watermark moves.
    - Open-ended rules are clipped to today + horizon_months, like every
      other occurrence query.
    - Output order is stable: (occurrence_date, rule id).

Failure modes:
    - InvalidDateRangeError when the window ends before it starts.
"""

import time
from datetime import date, timedelta
from uuid import UUID

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from recurrence_kernel.domain.clock import Clock
from recurrence_kernel.domain.occurrences import (
    DEFAULT_HORIZON_MONTHS,
    occurrences_between,
)
from recurrence_kernel.domain.types import ProjectedEntry
from recurrence_kernel.exceptions import InvalidDateRangeError
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.services.base import BaseService
from recurrence_kernel.services.materializer import generate_entries
from recurrence_kernel.stores.rule_store import RuleStore

logger = get_logger("services.forecast")

DEFAULT_FORECAST_MONTHS = 12


class ForecastService(BaseService):
    """
    Virtual projection of future entries.

    Contract:
        ``forecast(user_id, range_start, range_end)`` returns ProjectedEntry
        objects; none of them has a ledger id.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        rule_store: RuleStore | None = None,
        horizon_months: int = DEFAULT_HORIZON_MONTHS,
        default_months: int = DEFAULT_FORECAST_MONTHS,
    ):
        super().__init__(session, clock)
        self._rules = rule_store or RuleStore(session)
        self._horizon_months = horizon_months
        self._default_months = default_months

    def window(
        self,
        range_start: date | None = None,
        range_end: date | None = None,
    ) -> tuple[date, date]:
        """Resolve the effective [start, end] window for a forecast."""
        today = self.clock.today()
        tomorrow = today + timedelta(days=1)
        end = range_end or today + relativedelta(months=self._default_months)
        if range_start is not None and end < range_start:
            raise InvalidDateRangeError(range_start.isoformat(), end.isoformat())
        start = max(range_start, tomorrow) if range_start else tomorrow
        return start, end

    def forecast(
        self,
        user_id: UUID,
        range_start: date | None = None,
        range_end: date | None = None,
    ) -> list[ProjectedEntry]:
        """
        Entries the user's active rules would produce after today.

        Args:
            user_id: Owner of the rules.
            range_start: Lower bound (inclusive); values on or before today
                are raised to tomorrow.
            range_end: Upper bound (inclusive); defaults to today plus the
                configured forecast length.
        """
        t0 = time.monotonic()
        today = self.clock.today()
        start, end = self.window(range_start, range_end)

        projected: list[ProjectedEntry] = []
        rules = self._rules.list_active_for_user(user_id)
        if start <= end:
            for rule in rules:
                dates = occurrences_between(
                    rule.schedule,
                    start,
                    end,
                    today=today,
                    horizon_months=self._horizon_months,
                )
                projected.extend(generate_entries(rule, dates))

        projected.sort(key=lambda e: (e.occurrence_date, str(e.recurring_rule_id)))

        logger.info(
            "forecast_generated",
            extra={
                "user_id": str(user_id),
                "range_start": start.isoformat(),
                "range_end": end.isoformat(),
                "rules": len(rules),
                "entries": len(projected),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return projected
