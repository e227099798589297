"""Database layer - engine, session scope and declarative base."""

from recurrence_kernel.db.base import UUID, Base, TimestampedBase, UUIDString
from recurrence_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    make_session_factory,
    session_scope,
)

__all__ = [
    "build_engine",
    "create_tables",
    "drop_tables",
    "make_session_factory",
    "session_scope",
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UUID",
]
