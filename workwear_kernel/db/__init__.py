"""Database layer: declarative base, engine setup and session scope."""

from workwear_kernel.db.base import Base, TrackedBase, UUIDString
from workwear_kernel.db.engine import (
    build_engine,
    create_tables,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "build_engine",
    "create_tables",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
