"""Database layer - engine, base classes, types, and immutability."""

from stock_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from stock_kernel.db.engine import (
    atomic,
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from stock_kernel.db.types import PortableDecimal, enum_type, round_money

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "atomic",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "PortableDecimal",
    "enum_type",
    "round_money",
]
