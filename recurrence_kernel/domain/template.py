"""
Module: recurrence_kernel.domain.template
Responsibility: Typed transaction templates.  A template is the shape every
    ledger entry generated by a rule takes; it is one of three variants
    (income, expense, transfer), each carrying only the fields valid for it.
Architecture position: Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Every template names a target account (``account_id``).
    - Amounts are Decimal, never float.
    - A field not carried by a variant cannot be set on it.  When projected
      onto an entry, such fields read as None.
    - Changing ``type`` rebuilds the template as the new variant; fields the
      new variant lacks are dropped.

Failure modes:
    - MissingTargetAccountError if ``account_id`` is absent or empty.
    - TemplateValidationError for an unknown type, an unknown key, a field the
      variant lacks, a non-numeric or float amount, or malformed tags/metadata.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any, ClassVar, Mapping, Union

from recurrence_kernel.domain.money import to_money
from recurrence_kernel.domain.types import TransactionType
from recurrence_kernel.exceptions import MissingTargetAccountError, TemplateValidationError

# Fields a template contributes to every entry it generates, in column order.
ENTRY_FIELDS: tuple[str, ...] = (
    "account_id",
    "type",
    "amount",
    "name",
    "category_id",
    "subcategory_id",
    "liability_id",
    "description",
    "memo",
    "tags",
    "metadata",
)

DEFAULT_ENTRY_NAME = "Recurring transaction"


@dataclass(frozen=True)
class _TemplateBase:
    """Fields common to every variant."""

    account_id: str
    amount: Decimal
    name: str = DEFAULT_ENTRY_NAME
    description: str | None = None
    memo: str | None = None
    tags: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    type: ClassVar[TransactionType]

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))


@dataclass(frozen=True)
class IncomeTemplate(_TemplateBase):
    category_id: str | None = None
    subcategory_id: str | None = None

    type: ClassVar[TransactionType] = TransactionType.INCOME


@dataclass(frozen=True)
class ExpenseTemplate(_TemplateBase):
    category_id: str | None = None
    subcategory_id: str | None = None
    liability_id: str | None = None

    type: ClassVar[TransactionType] = TransactionType.EXPENSE


@dataclass(frozen=True)
class TransferTemplate(_TemplateBase):
    liability_id: str | None = None

    type: ClassVar[TransactionType] = TransactionType.TRANSFER


TransactionTemplate = Union[IncomeTemplate, ExpenseTemplate, TransferTemplate]

_VARIANTS: dict[TransactionType, type[_TemplateBase]] = {
    TransactionType.INCOME: IncomeTemplate,
    TransactionType.EXPENSE: ExpenseTemplate,
    TransactionType.TRANSFER: TransferTemplate,
}

_TEXT_FIELDS = frozenset(
    {"name", "description", "memo", "category_id", "subcategory_id", "liability_id"}
)


def variant_for(type_value: TransactionType | str) -> type[_TemplateBase]:
    """Return the template class for ``type_value``."""
    try:
        return _VARIANTS[TransactionType(type_value)]
    except ValueError as exc:
        raise TemplateValidationError(
            "type", f"must be one of {sorted(t.value for t in TransactionType)}"
        ) from exc


def _coerce_amount(value: Any) -> Decimal:
    if value is None:
        raise TemplateValidationError("amount", "is required")
    try:
        return to_money(value)
    except (TypeError, ValueError) as exc:
        raise TemplateValidationError("amount", str(exc)) from exc


def _coerce_tags(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise TemplateValidationError("tags", "must be a list of strings")
    if not all(isinstance(tag, str) for tag in value):
        raise TemplateValidationError("tags", "must be a list of strings")
    return tuple(value)


def _coerce_metadata(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TemplateValidationError("metadata", "must be a mapping")
    return dict(value)


def _coerce_text(field_name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TemplateValidationError(field_name, "must be a string")
    return value


def template_from_dict(data: Mapping[str, Any]) -> TransactionTemplate:
    """
    Build a typed template from a plain mapping (API payload or JSON column).

    ``type`` selects the variant.  Keys the variant does not carry are
    rejected unless their value is None.
    """
    if "type" not in data or data["type"] is None:
        raise TemplateValidationError("type", "is required")
    cls = variant_for(data["type"])
    allowed = cls.field_names()

    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key == "type":
            continue
        if key not in allowed:
            if key in ENTRY_FIELDS and value is None:
                continue
            if key in ENTRY_FIELDS:
                raise TemplateValidationError(
                    key, f"not valid for {cls.type.value} templates"
                )
            raise TemplateValidationError(key, "unknown template field")
        kwargs[key] = value

    account_id = kwargs.get("account_id")
    if account_id is None or (isinstance(account_id, str) and not account_id.strip()):
        raise MissingTargetAccountError()
    kwargs["account_id"] = str(account_id)

    kwargs["amount"] = _coerce_amount(kwargs.get("amount"))
    kwargs["tags"] = _coerce_tags(kwargs.get("tags"))
    kwargs["metadata"] = _coerce_metadata(kwargs.get("metadata"))
    for name in _TEXT_FIELDS & kwargs.keys():
        kwargs[name] = _coerce_text(name, kwargs[name])
    if not kwargs.get("name"):
        kwargs["name"] = DEFAULT_ENTRY_NAME

    return cls(**kwargs)


def template_to_dict(template: TransactionTemplate) -> dict[str, Any]:
    """JSON-safe mapping of ``template``, suitable for a JSON column."""
    data: dict[str, Any] = {"type": template.type.value}
    for f in fields(template):
        value = getattr(template, f.name)
        if f.name == "amount":
            value = str(value)
        elif f.name == "tags":
            value = list(value)
        elif f.name == "metadata":
            value = dict(value)
        data[f.name] = value
    return data


def apply_template_changes(
    template: TransactionTemplate,
    changes: Mapping[str, Any],
) -> TransactionTemplate:
    """
    Return a new template with ``changes`` applied.

    If ``changes`` carries a different ``type``, the result is the new
    variant; fields of the old template the new variant lacks are dropped,
    while such fields in ``changes`` itself are still rejected.
    """
    if not changes:
        return template

    new_type = changes.get("type", template.type)
    if new_type is None:
        raise TemplateValidationError("type", "cannot be cleared")
    target = variant_for(new_type)

    if target is type(template):
        merged = template_to_dict(template)
    else:
        allowed = target.field_names()
        merged = {
            k: v for k, v in template_to_dict(template).items()
            if k in allowed
        }
    merged.update(changes)
    merged["type"] = target.type.value
    return template_from_dict(merged)


def entry_projection(template: TransactionTemplate) -> dict[str, Any]:
    """
    Project ``template`` onto the entry columns it governs.

    Every key in ENTRY_FIELDS is present; fields the variant lacks are None.
    """
    projected: dict[str, Any] = {}
    for name in ENTRY_FIELDS:
        if name == "type":
            projected[name] = template.type
        elif name == "tags":
            projected[name] = tuple(template.tags)
        elif name == "metadata":
            projected[name] = dict(template.metadata)
        else:
            projected[name] = getattr(template, name, None)
    return projected


def changed_entry_fields(
    before: TransactionTemplate,
    after: TransactionTemplate,
) -> frozenset[str]:
    """Entry columns whose projected value differs between two templates."""
    old, new = entry_projection(before), entry_projection(after)
    return frozenset(name for name in ENTRY_FIELDS if old[name] != new[name])
