"""
Module: recurrence_kernel.domain.overrides
Responsibility: The override allow-list and the per-field comparators used to
    decide whether an entry diverges from its rule's template.
Architecture position: Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Only fields in OverridableField can be pinned.
    - Comparison is typed: Decimal equality for amount, date equality for
      date, structural equality for tags, value equality otherwise.  None
      and "" are the same value for optional text fields.
    - Stored override values are JSON-safe (Decimal as str, date as ISO
      string, tags as list).

Failure modes:
    - FieldNotOverridableError for a field outside the allow-list.
    - InvalidFieldValueError for a value that cannot be coerced (float or
      non-numeric amount, non-ISO date, tags that are not strings).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping

from recurrence_kernel.domain.money import to_money
from recurrence_kernel.domain.template import TransactionTemplate
from recurrence_kernel.exceptions import FieldNotOverridableError, InvalidFieldValueError


class OverridableField(str, Enum):
    """Entry fields a user may pin against future template changes."""

    AMOUNT = "amount"
    DATE = "date"
    CATEGORY_ID = "category_id"
    SUBCATEGORY_ID = "subcategory_id"
    DESCRIPTION = "description"
    MEMO = "memo"
    TAGS = "tags"
    LIABILITY_ID = "liability_id"


OVERRIDABLE_FIELDS: frozenset[str] = frozenset(f.value for f in OverridableField)


def require_overridable(field_name: str) -> OverridableField:
    try:
        return OverridableField(field_name)
    except ValueError as exc:
        raise FieldNotOverridableError(field_name) from exc


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _norm_amount(value: Any) -> Decimal:
    if value is None:
        raise InvalidFieldValueError("amount", "is required")
    try:
        return to_money(value)
    except (TypeError, ValueError) as exc:
        raise InvalidFieldValueError("amount", str(exc)) from exc


def _norm_date(value: Any) -> date:
    if value is None:
        raise InvalidFieldValueError("date", "is required")
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise InvalidFieldValueError("date", "must be an ISO date") from exc


def _norm_tags(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if not isinstance(value, (list, tuple)) or not all(isinstance(t, str) for t in value):
        raise InvalidFieldValueError("tags", "must be a list of strings")
    return tuple(value)


def _norm_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


_NORMALIZERS: dict[OverridableField, Callable[[Any], Any]] = {
    OverridableField.AMOUNT: _norm_amount,
    OverridableField.DATE: _norm_date,
    OverridableField.TAGS: _norm_tags,
}


def normalize(field_name: str, value: Any) -> Any:
    """Coerce ``value`` into the comparable Python form for ``field_name``."""
    f = require_overridable(field_name)
    return _NORMALIZERS.get(f, _norm_text)(value)


def values_equal(field_name: str, left: Any, right: Any) -> bool:
    """Typed equality for an overridable field."""
    return normalize(field_name, left) == normalize(field_name, right)


def to_json_value(field_name: str, value: Any) -> Any:
    """JSON-safe representation of a normalized field value."""
    value = normalize(field_name, value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)
    return value


# ---------------------------------------------------------------------------
# Template comparison
# ---------------------------------------------------------------------------


def template_value(
    template: TransactionTemplate,
    field_name: str,
    occurrence_date: date,
) -> Any:
    """
    What the template says ``field_name`` should be for one occurrence.

    The template value of ``date`` is the occurrence date itself; fields the
    template variant lacks are None.
    """
    f = require_overridable(field_name)
    if f is OverridableField.DATE:
        return occurrence_date
    return getattr(template, f.value, None)


def detect_overrides(
    template: TransactionTemplate,
    occurrence_date: date,
    proposed: Mapping[str, Any],
) -> dict[str, tuple[Any, Any]]:
    """
    Return ``{field: (template_value, proposed_value)}`` for every
    overridable field in ``proposed`` that differs from the template.

    Keys outside the allow-list are ignored here; the caller decides
    whether they are an error.
    """
    diverging: dict[str, tuple[Any, Any]] = {}
    for name, value in proposed.items():
        if name not in OVERRIDABLE_FIELDS:
            continue
        expected = template_value(template, name, occurrence_date)
        if not values_equal(name, expected, value):
            diverging[name] = (expected, value)
    return diverging
