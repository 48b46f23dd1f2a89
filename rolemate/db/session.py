"""Session factories, transaction helpers and FastAPI dependencies."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rolemate.settings import Settings, get_app_settings, get_settings

from .engine import SQLITE_BEGIN_OPTION, engine_cache_key, get_engine

_SESSION_FACTORY: async_sessionmaker[AsyncSession] | None = None
_SESSION_KEY: tuple[Any, ...] | None = None


def reset_session_state() -> None:
    """Clear the cached session factory."""

    global _SESSION_FACTORY, _SESSION_KEY
    _SESSION_FACTORY = None
    _SESSION_KEY = None


def get_sessionmaker(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Return a cached ``async_sessionmaker`` bound to the rolemate engine."""

    global _SESSION_FACTORY, _SESSION_KEY
    settings = settings or get_settings()
    cache_key = engine_cache_key(settings)
    if _SESSION_FACTORY is None or _SESSION_KEY != cache_key:
        engine = get_engine(settings)
        _SESSION_FACTORY = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )
        _SESSION_KEY = cache_key
    return _SESSION_FACTORY


_WRITE_OPTIONS = {SQLITE_BEGIN_OPTION: "IMMEDIATE"}


async def begin_write(session: AsyncSession) -> None:
    """Open a writer transaction on ``session`` unless one is already open.

    On SQLite the transaction starts with ``BEGIN IMMEDIATE`` and holds the
    database write lock until it ends; plain reads use a deferred ``BEGIN``.
    Other backends ignore the option and rely on row locks.
    """

    if not session.in_transaction():
        await session.connection(execution_options=_WRITE_OPTIONS)


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run the enclosed block in one transaction.

    Opens a writer transaction that commits on exit when ``session`` is idle,
    or a SAVEPOINT when a transaction is already in progress. Either way an
    exception rolls back every write made inside the block.
    """

    if session.in_transaction():
        async with session.begin_nested():
            yield session
    else:
        async with session.begin():
            await session.connection(execution_options=_WRITE_OPTIONS)
            yield session


def _get_sessionmaker_from_request(
    request: Request,
) -> async_sessionmaker[AsyncSession]:
    settings = get_app_settings(request.app)
    return get_sessionmaker(settings=settings)


SessionFactoryDependency = Annotated[
    async_sessionmaker[AsyncSession], Depends(_get_sessionmaker_from_request)
]


async def get_session(
    request: Request,
    session_factory: SessionFactoryDependency,
) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields an ``AsyncSession`` for the request."""

    session = session_factory()
    request.state.db_session = session
    try:
        yield session
        if session.in_transaction():
            await session.commit()
    except Exception:
        if session.in_transaction():
            await session.rollback()
        raise
    finally:
        if getattr(request.state, "db_session", None) is session:
            request.state.db_session = None
        await session.close()


async def get_read_session(
    session_factory: SessionFactoryDependency,
) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency for short read-only work such as authorization checks.

    The session is separate from :func:`get_session`; callers close it as soon
    as their reads are done so no transaction stays open for the request.
    """

    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


__all__ = [
    "atomic",
    "begin_write",
    "get_read_session",
    "get_session",
    "get_sessionmaker",
    "reset_session_state",
]
