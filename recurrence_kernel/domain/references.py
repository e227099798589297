"""
Reference checking for template foreign keys.

Accounts, categories and liabilities live outside the recurrence kernel.  The
kernel only needs to know whether an identifier exists for a user, so it
depends on this narrow protocol instead of on their stores.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from recurrence_kernel.domain.template import TransactionTemplate
from recurrence_kernel.exceptions import (
    AccountNotFoundError,
    CategoryNotFoundError,
    LiabilityNotFoundError,
)


@runtime_checkable
class ReferenceChecker(Protocol):
    """Existence checks for identifiers owned by other subsystems."""

    def account_exists(self, user_id: UUID, account_id: str) -> bool: ...

    def category_exists(self, user_id: UUID, category_id: str) -> bool: ...

    def liability_exists(self, user_id: UUID, liability_id: str) -> bool: ...


class PermissiveReferenceChecker:
    """Accepts every identifier.  Used when no checker is wired in."""

    def account_exists(self, user_id: UUID, account_id: str) -> bool:
        return True

    def category_exists(self, user_id: UUID, category_id: str) -> bool:
        return True

    def liability_exists(self, user_id: UUID, liability_id: str) -> bool:
        return True


def verify_template_references(
    checker: ReferenceChecker,
    user_id: UUID,
    template: TransactionTemplate,
) -> None:
    """
    Raise the matching NotFoundError for the first unknown reference.

    Fields the template variant does not carry are skipped.
    """
    if not checker.account_exists(user_id, template.account_id):
        raise AccountNotFoundError(template.account_id)
    for name in ("category_id", "subcategory_id"):
        value = getattr(template, name, None)
        if value is not None and not checker.category_exists(user_id, value):
            raise CategoryNotFoundError(value)
    liability_id = getattr(template, "liability_id", None)
    if liability_id is not None and not checker.liability_exists(user_id, liability_id):
        raise LiabilityNotFoundError(liability_id)
