"""Database layer - engine, base classes, and column types."""

from tax_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from tax_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from tax_kernel.db.types import Money, ShortCode

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "ShortCode",
]
