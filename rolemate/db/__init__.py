"""Database engine, session and schema helpers for rolemate."""

from __future__ import annotations

from .base import Base, metadata
from .bootstrap import ensure_database_ready, reset_bootstrap_state
from .engine import (
    engine_cache_key,
    ensure_sqlite_database_directory,
    get_engine,
    is_sqlite_memory_url,
    render_sync_url,
    reset_database_state,
)
from .mixins import TimestampMixin, generate_ulid, utc_now
from .session import (
    atomic,
    begin_write,
    get_read_session,
    get_session,
    get_sessionmaker,
    reset_session_state,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "atomic",
    "begin_write",
    "engine_cache_key",
    "ensure_database_ready",
    "ensure_sqlite_database_directory",
    "generate_ulid",
    "get_engine",
    "get_read_session",
    "get_session",
    "get_sessionmaker",
    "is_sqlite_memory_url",
    "metadata",
    "render_sync_url",
    "reset_bootstrap_state",
    "reset_database_state",
    "reset_session_state",
    "utc_now",
]
