"""Shared helpers for rolemate CLI command modules."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

import typer
from sqlalchemy.ext.asyncio import AsyncSession

from rolemate.core.exceptions import RolemateError, ValidationError
from rolemate.core.logging import configure_logging
from rolemate.db import ensure_database_ready, get_sessionmaker
from rolemate.features.roles.catalog import PermissionCatalog
from rolemate.settings import Settings, get_settings

T = TypeVar("T")


def load_settings() -> Settings:
    settings = get_settings()
    configure_logging(settings)
    return settings


def split_csv(value: str | None) -> list[str]:
    """Split a comma separated option into stripped, non-empty items."""

    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def require_option(value: T | None, flag: str) -> T:
    if value is None or value == "":
        raise ValidationError(f"Missing required parameter {flag}")
    return value


@asynccontextmanager
async def open_session(settings: Settings) -> AsyncIterator[AsyncSession]:
    """Yield a migrated session that commits on success and rolls back on error."""

    await ensure_database_ready(settings)
    factory = get_sessionmaker(settings)
    async with factory() as session:
        try:
            yield session
            if session.in_transaction():
                await session.commit()
        except Exception:
            if session.in_transaction():
                await session.rollback()
            raise


def catalog_for(settings: Settings) -> PermissionCatalog:
    return PermissionCatalog.from_settings(settings)


def run(action: Callable[[], Awaitable[None]]) -> None:
    """Run ``action`` and turn :class:`RolemateError` into exit code 1."""

    try:
        asyncio.run(action())
    except RolemateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def echo_items(header: str, items: list[str]) -> None:
    typer.echo(header)
    for item in items:
        typer.echo(f"\t{item}")


__all__ = [
    "catalog_for",
    "echo_items",
    "load_settings",
    "open_session",
    "require_option",
    "run",
    "split_csv",
]
