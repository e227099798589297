"""
Module: recurrence_kernel.stores.base
Responsibility: Abstract base class for the persistence stores.  Stores are
    the only code that touches ORM models; everything above them works with
    frozen DTOs from recurrence_kernel.domain.types.
Architecture position: Kernel > Stores.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Flush-only: stores call session.flush() to make writes visible within
      the caller's transaction.  They never commit or roll back.
    - DTO return convention: public methods return frozen dataclasses, never
      ORM instances.
    - Session ownership: stores do NOT create or manage their own sessions.

Failure modes:
    - SQLAlchemyError subclasses propagate unchanged.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from recurrence_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseStore(ABC, Generic[ModelType]):
    """
    Abstract base class for all stores.

    Contract:
        Stores accept a Session from the caller, read and write ORM rows,
        and return DTOs.

    Non-goals:
        - BaseStore does NOT define any query methods; subclasses implement
          entity-specific access.
    """

    def __init__(self, session: Session):
        self.session = session

    @property
    def dialect_name(self) -> str:
        """Name of the dialect the session is bound to ("postgresql", "sqlite")."""
        return self.session.get_bind().dialect.name
