"""Database layer - engine, base classes and column types."""

from ledger_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from ledger_kernel.db.types import BALANCE_TOLERANCE, round_money, to_decimal

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "BALANCE_TOLERANCE",
    "round_money",
    "to_decimal",
]
