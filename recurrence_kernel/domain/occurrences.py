"""
Module: recurrence_kernel.domain.occurrences
Responsibility: Turn a schedule (frequency, interval, start, end/count) into
    the ordered list of dates on which its rule occurs.
Architecture position: Kernel > Domain -- pure, zero I/O.  "Today" is a
    parameter, never read from the system.

Invariants enforced:
    - Deterministic: the same inputs always yield the same dates.
    - Dates are strictly increasing and never precede ``start_date``.
    - Each occurrence is computed from ``start_date`` (n-th step from the
      anchor), never from the previous occurrence, so month-end anchors clamp
      per month (Jan 31 -> Feb 28 -> Mar 31 -> Apr 30) without drifting.
    - ``occurrence_count`` wins over ``end_date`` when both are set.
    - With neither bound, generation stops at ``today + horizon_months``.

Failure modes:
    - InvalidScheduleError for an unknown frequency, interval < 1,
      occurrence_count < 1, or end_date before start_date.
"""

from __future__ import annotations

from datetime import date
from itertools import count as _count
from typing import Iterator

from dateutil.relativedelta import relativedelta

from recurrence_kernel.domain.types import Frequency, Schedule
from recurrence_kernel.exceptions import InvalidScheduleError

DEFAULT_HORIZON_MONTHS = 12
DEFAULT_PREVIEW_LIMIT = 10
MAX_PREVIEW_LIMIT = 366

# frequency -> (relativedelta unit, fixed multiplier or None for caller interval)
_STEPS: dict[Frequency, tuple[str, int | None]] = {
    Frequency.DAILY: ("days", None),
    Frequency.WEEKLY: ("weeks", None),
    Frequency.BIWEEKLY: ("weeks", 2),
    Frequency.MONTHLY: ("months", None),
    Frequency.QUARTERLY: ("months", 3),
    Frequency.ANNUALLY: ("years", None),
    Frequency.CUSTOM: ("days", None),
}


def coerce_frequency(value: Frequency | str) -> Frequency:
    try:
        return Frequency(value)
    except ValueError as exc:
        raise InvalidScheduleError(
            "frequency", f"must be one of {[f.value for f in Frequency]}"
        ) from exc


def validate_schedule(schedule: Schedule) -> None:
    """Raise InvalidScheduleError if ``schedule`` cannot generate dates."""
    coerce_frequency(schedule.frequency)
    if isinstance(schedule.interval, bool) or not isinstance(schedule.interval, int):
        raise InvalidScheduleError("interval", "must be an integer")
    if schedule.interval < 1:
        raise InvalidScheduleError("interval", "must be >= 1")
    if schedule.occurrence_count is not None and schedule.occurrence_count < 1:
        raise InvalidScheduleError("occurrence_count", "must be >= 1")
    if schedule.end_date is not None and schedule.end_date < schedule.start_date:
        raise InvalidScheduleError("end_date", "must not be before start_date")


def step_for(frequency: Frequency | str, interval: int) -> tuple[str, int]:
    """Normalized (unit, step) pair for a frequency and caller interval."""
    unit, fixed = _STEPS[coerce_frequency(frequency)]
    return unit, fixed if fixed is not None else interval


def effective_end(schedule: Schedule, today: date, horizon_months: int) -> date | None:
    """
    Last date generation may reach, or None when bounded only by count.
    """
    if schedule.occurrence_count is not None:
        return None
    if schedule.end_date is not None:
        return schedule.end_date
    return today + relativedelta(months=horizon_months)


def iter_schedule(
    schedule: Schedule,
    *,
    today: date,
    horizon_months: int = DEFAULT_HORIZON_MONTHS,
) -> Iterator[date]:
    """Lazily yield every occurrence of ``schedule`` in order."""
    validate_schedule(schedule)
    unit, step = step_for(schedule.frequency, schedule.interval)
    last = effective_end(schedule, today, horizon_months)
    limit = schedule.occurrence_count

    for n in _count():
        if limit is not None and n >= limit:
            return
        occurrence = schedule.start_date + relativedelta(**{unit: n * step})
        if last is not None and occurrence > last:
            return
        yield occurrence


def iter_occurrences(
    frequency: Frequency | str,
    interval: int,
    start_date: date,
    end_date: date | None = None,
    occurrence_count: int | None = None,
    *,
    today: date,
    horizon_months: int = DEFAULT_HORIZON_MONTHS,
) -> Iterator[date]:
    """Lazy form of generate_occurrences."""
    schedule = Schedule(
        frequency=coerce_frequency(frequency),
        interval=interval,
        start_date=start_date,
        end_date=end_date,
        occurrence_count=occurrence_count,
    )
    return iter_schedule(schedule, today=today, horizon_months=horizon_months)


def generate_occurrences(
    frequency: Frequency | str,
    interval: int,
    start_date: date,
    end_date: date | None = None,
    occurrence_count: int | None = None,
    *,
    today: date,
    horizon_months: int = DEFAULT_HORIZON_MONTHS,
) -> list[date]:
    """
    Every date on which a rule with this schedule occurs.

    Args:
        frequency: Cadence; biweekly/quarterly ignore ``interval``.
        interval: Step multiplier (>= 1).
        start_date: First occurrence.
        end_date: Inclusive upper bound; ignored when ``occurrence_count``
            is given.
        occurrence_count: Exact number of occurrences to produce.
        today: Reference date for the open-ended horizon.
        horizon_months: Length of the open-ended horizon.
    """
    return list(
        iter_occurrences(
            frequency,
            interval,
            start_date,
            end_date,
            occurrence_count,
            today=today,
            horizon_months=horizon_months,
        )
    )


def occurrences_between(
    schedule: Schedule,
    window_start: date | None,
    window_end: date,
    *,
    today: date,
    horizon_months: int = DEFAULT_HORIZON_MONTHS,
) -> list[date]:
    """Occurrences of ``schedule`` within [window_start, window_end] inclusive."""
    selected: list[date] = []
    for occurrence in iter_schedule(schedule, today=today, horizon_months=horizon_months):
        if occurrence > window_end:
            break
        if window_start is None or occurrence >= window_start:
            selected.append(occurrence)
    return selected


def preview_occurrences(
    schedule: Schedule,
    *,
    today: date,
    limit: int = DEFAULT_PREVIEW_LIMIT,
    max_limit: int = MAX_PREVIEW_LIMIT,
    horizon_months: int = DEFAULT_HORIZON_MONTHS,
) -> list[date]:
    """The first ``limit`` occurrences, with ``limit`` clamped to [1, max_limit]."""
    limit = max(1, min(limit, max_limit))
    selected: list[date] = []
    for occurrence in iter_schedule(schedule, today=today, horizon_months=horizon_months):
        selected.append(occurrence)
        if len(selected) >= limit:
            break
    return selected
