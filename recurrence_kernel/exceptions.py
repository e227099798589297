"""
Typed Exception Hierarchy for the Recurrence Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine (an HTTP layer, a CLI, a scheduler) need to map
failures onto user-visible outcomes without parsing message strings:
  - Every error has a TYPED exception class (catch by type, not message)
  - Every exception has a CODE attribute (machine-readable, API-safe)
  - Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.update_rule(rule_id, user_id, amount=Decimal("1200"))
    except RuleNotFoundError as e:
        return api_response(status=404, code=e.code, rule_id=e.rule_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RecurrenceKernelError:

    RecurrenceKernelError (base)
    |
    +-- NotFoundError
    |   +-- RuleNotFoundError
    |   +-- EntryNotFoundError
    |   +-- AccountNotFoundError
    |   +-- CategoryNotFoundError
    |   +-- LiabilityNotFoundError
    |
    +-- ValidationError
    |   +-- MissingTargetAccountError
    |   +-- TemplateValidationError
    |   +-- InvalidScheduleError
    |   +-- InvalidScopeError
    |   +-- FieldNotOverridableError
    |   +-- InvalidFieldValueError
    |   +-- EntryNotGeneratedError
    |   +-- InvalidDateRangeError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | RULE_NOT_FOUND              | Rule id missing or owned by another user
                | ENTRY_NOT_FOUND             | Ledger entry id missing / not the user's
                | ACCOUNT_NOT_FOUND           | Reference checker rejected an account
                | CATEGORY_NOT_FOUND          | Reference checker rejected a category
                | LIABILITY_NOT_FOUND         | Reference checker rejected a liability
----------------|-----------------------------|-----------------------------------------
Validation      | MISSING_TARGET_ACCOUNT      | Template has no account_id
                | TEMPLATE_VALIDATION_ERROR   | Field not valid for the template variant
                | INVALID_SCHEDULE            | interval/count/end_date out of range
                | INVALID_SCOPE               | Unknown scope or missing anchor entry
                | FIELD_NOT_OVERRIDABLE       | Field outside the override allow-list
                | INVALID_FIELD_VALUE         | Entry edit value of the wrong type
                | ENTRY_NOT_GENERATED         | Scoped edit on a manual entry
                | INVALID_DATE_RANGE          | Window end before window start
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Stored hash or prev_hash does not match

Duplicate materialization of the same (rule, date) pair is NOT an error:
it is resolved by skip-on-conflict at the storage layer.

Store failures (``sqlalchemy.exc.SQLAlchemyError``) are never wrapped;
they propagate unchanged to the caller.
"""


class RecurrenceKernelError(Exception):
    """
    Base exception for all recurrence kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RECURRENCE_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(RecurrenceKernelError):
    """Base exception for identifiers that do not resolve for the caller."""

    code: str = "NOT_FOUND"


class RuleNotFoundError(NotFoundError):
    """Recurring rule does not exist or belongs to another user."""

    code: str = "RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Recurring rule not found: {rule_id}")


class EntryNotFoundError(NotFoundError):
    """Ledger entry does not exist or belongs to another user."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry not found: {entry_id}")


class AccountNotFoundError(NotFoundError):
    """Target account is unknown to the reference checker."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class CategoryNotFoundError(NotFoundError):
    """Category or subcategory is unknown to the reference checker."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Category not found: {category_id}")


class LiabilityNotFoundError(NotFoundError):
    """Linked liability is unknown to the reference checker."""

    code: str = "LIABILITY_NOT_FOUND"

    def __init__(self, liability_id: str):
        self.liability_id = liability_id
        super().__init__(f"Liability not found: {liability_id}")


# Validation exceptions


class ValidationError(RecurrenceKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class MissingTargetAccountError(ValidationError):
    """Template does not name the account its entries post to."""

    code: str = "MISSING_TARGET_ACCOUNT"

    def __init__(self):
        super().__init__("Template transaction must have an account_id")


class TemplateValidationError(ValidationError):
    """Template payload is malformed or carries a field its variant lacks."""

    code: str = "TEMPLATE_VALIDATION_ERROR"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid template field '{field_name}': {reason}")


class InvalidScheduleError(ValidationError):
    """Frequency, interval or bounds cannot produce a valid schedule."""

    code: str = "INVALID_SCHEDULE"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid schedule '{field_name}': {reason}")


class InvalidScopeError(ValidationError):
    """Edit scope is unknown or lacks the anchor entry it requires."""

    code: str = "INVALID_SCOPE"

    def __init__(self, scope: str, reason: str):
        self.scope = scope
        self.reason = reason
        super().__init__(f"Invalid scope '{scope}': {reason}")


class FieldNotOverridableError(ValidationError):
    """Field is outside the override allow-list."""

    code: str = "FIELD_NOT_OVERRIDABLE"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' cannot be overridden")


class InvalidFieldValueError(ValidationError):
    """An entry field value cannot be coerced to the field's type."""

    code: str = "INVALID_FIELD_VALUE"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid value for '{field_name}': {reason}")


class EntryNotGeneratedError(ValidationError):
    """A scoped edit was requested for an entry no rule generated."""

    code: str = "ENTRY_NOT_GENERATED"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry {entry_id} was not generated by a rule")


class InvalidDateRangeError(ValidationError):
    """A date window ends before it starts."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start: str, end: str):
        self.start = start
        self.end = end
        super().__init__(f"Date range ends ({end}) before it starts ({start})")


# Audit exceptions


class AuditError(RecurrenceKernelError):
    """Base exception for audit trail failures."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
