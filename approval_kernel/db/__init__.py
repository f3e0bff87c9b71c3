"""Database infrastructure: declarative base, engine, and sessions."""

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
    translate_storage_errors,
)

__all__ = [
    "Base",
    "UTCDateTime",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
    "translate_storage_errors",
]
