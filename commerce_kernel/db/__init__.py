"""Database layer - engine, base classes and column types."""

from commerce_kernel.db.base import Base, TrackedBase, UUIDString
from commerce_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from commerce_kernel.db.types import Currency, DocumentId, Money, Sequence, ShortCode

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "Money",
    "Currency",
    "Sequence",
    "DocumentId",
    "ShortCode",
]
