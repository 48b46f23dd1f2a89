"""Async engine management for rolemate."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import URL, Connection, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from rolemate.settings import Settings, get_settings

SQLITE_BEGIN_OPTION = "rolemate_sqlite_begin"
"""Connection execution option naming the SQLite ``BEGIN`` mode for its next transaction."""

_ENGINE: AsyncEngine | None = None
_ENGINE_KEY: tuple[Any, ...] | None = None


def engine_cache_key(settings: Settings) -> tuple[Any, ...]:
    """Settings that force a new engine (and session factory) when they change."""

    return (
        settings.database_dsn,
        settings.database_echo,
        settings.database_pool_size,
        settings.database_max_overflow,
        settings.database_pool_timeout,
    )


def is_sqlite_memory_url(url: URL) -> bool:
    database = (url.database or "").strip()
    if database in ("", ":memory:"):
        return True
    return database.startswith("file:") and url.query.get("mode") == "memory"


def ensure_sqlite_database_directory(url: URL) -> None:
    """Create the parent directory of a file-backed SQLite database."""

    if is_sqlite_memory_url(url) or (url.database or "").startswith("file:"):
        return
    Path(url.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def _on_sqlite_connect(dbapi_connection, _connection_record) -> None:
    # pysqlite must not open transactions itself; _on_sqlite_begin does.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _on_sqlite_begin(connection: Connection) -> None:
    mode = connection.get_execution_options().get(SQLITE_BEGIN_OPTION, "DEFERRED")
    connection.exec_driver_sql(f"BEGIN {mode}")


def _create_engine(settings: Settings) -> AsyncEngine:
    url = make_url(settings.database_dsn)
    options: dict[str, Any] = {"echo": settings.database_echo, "pool_pre_ping": True}
    sqlite = url.get_backend_name() == "sqlite"

    if sqlite:
        options["connect_args"] = {"check_same_thread": False}
        if is_sqlite_memory_url(url):
            options["poolclass"] = StaticPool
        else:
            options["poolclass"] = NullPool
            ensure_sqlite_database_directory(url)
    else:
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
        )

    engine = create_async_engine(url.render_as_string(hide_password=False), **options)
    if sqlite:
        event.listen(engine.sync_engine, "connect", _on_sqlite_connect)
        event.listen(engine.sync_engine, "begin", _on_sqlite_begin)
    return engine


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Return a cached async engine matching the active settings."""

    global _ENGINE, _ENGINE_KEY
    settings = settings or get_settings()
    key = engine_cache_key(settings)
    if _ENGINE is None or _ENGINE_KEY != key:
        if _ENGINE is not None:
            _ENGINE.sync_engine.dispose()
        _ENGINE = _create_engine(settings)
        _ENGINE_KEY = key
    return _ENGINE


def reset_database_state() -> None:
    """Dispose the cached engine and forget session factories and bootstraps."""

    global _ENGINE, _ENGINE_KEY
    if _ENGINE is not None:
        _ENGINE.sync_engine.dispose()
    _ENGINE = None
    _ENGINE_KEY = None

    from . import bootstrap, session

    session.reset_session_state()
    bootstrap.reset_bootstrap_state()


def render_sync_url(database_url: str) -> str:
    """Return the driver-less URL Alembic and sync tooling connect with."""

    url = make_url(database_url)
    return url.set(drivername=url.get_backend_name()).render_as_string(hide_password=False)


__all__ = [
    "SQLITE_BEGIN_OPTION",
    "engine_cache_key",
    "ensure_sqlite_database_directory",
    "get_engine",
    "is_sqlite_memory_url",
    "render_sync_url",
    "reset_database_state",
]
