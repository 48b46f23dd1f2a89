"""Shared pytest fixtures for rolemate tests."""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from alembic import command
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session

from rolemate import Settings, get_settings, reload_settings
from rolemate.db import metadata, render_sync_url, reset_database_state
from rolemate.db.bootstrap import build_alembic_config
from rolemate.db.session import get_sessionmaker
from rolemate.features.roles import models as _role_models  # noqa: F401
from rolemate.features.roles.catalog import PermissionCatalog
from rolemate.features.users.models import User
from rolemate.main import create_app

TEST_PERMISSIONS = [
    "manage permissions",
    "edit articles",
    "publish articles",
    "view reports",
]
TEST_ROLE_REDIRECTS = {"editor": "editor-home", "default": "home"}
TEST_PERMISSION_REDIRECTS = {
    "view reports": "reports-home",
    "edit articles": "editor-home",
    "default": "home",
}

_ENV = {
    "ROLEMATE_PERMISSIONS": json.dumps(TEST_PERMISSIONS),
    "ROLEMATE_REDIRECTS_ROLES": json.dumps(TEST_ROLE_REDIRECTS),
    "ROLEMATE_REDIRECTS_PERMISSIONS": json.dumps(TEST_PERMISSION_REDIRECTS),
    "ROLEMATE_LOGGING_LEVEL": "DEBUG",
}


@pytest.fixture(scope="session")
def _database_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a file-backed SQLite database URL for the test session."""

    db_path = tmp_path_factory.mktemp("rolemate-db") / "rolemate.sqlite"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture(scope="session", autouse=True)
def _configure_database(_database_url: str) -> Iterator[None]:
    """Apply Alembic migrations against the ephemeral test database."""

    os.environ["ROLEMATE_DATABASE_DSN"] = _database_url
    os.environ.update(_ENV)
    settings = reload_settings()
    assert settings.database_dsn == _database_url
    reset_database_state()

    config = build_alembic_config(settings)
    command.upgrade(config, "head")

    yield

    reset_database_state()
    command.downgrade(config, "base")
    for env_var in ("ROLEMATE_DATABASE_DSN", *_ENV):
        os.environ.pop(env_var, None)
    reload_settings()


@pytest.fixture(scope="session")
def sync_engine(_database_url: str) -> Iterator[Engine]:
    """Synchronous engine used to seed and clean the test database."""

    engine = create_engine(render_sync_url(_database_url))
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def _clean_tables(sync_engine: Engine) -> Iterator[None]:
    yield
    with sync_engine.begin() as connection:
        for table in reversed(metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture()
def settings() -> Settings:
    return get_settings()


@pytest.fixture()
def catalog(settings: Settings) -> PermissionCatalog:
    return PermissionCatalog.from_settings(settings)


@pytest.fixture()
def session_factory(settings: Settings) -> async_sessionmaker[AsyncSession]:
    return get_sessionmaker(settings)


@pytest.fixture()
def seed_users(sync_engine: Engine) -> dict[str, int]:
    """Create three users and return their ids by short name."""

    with Session(sync_engine) as session:
        users = {
            name: User(email=f"{name}@example.test", display_name=name.title())
            for name in ("alice", "bob", "carol")
        }
        session.add_all(users.values())
        session.commit()
        return {name: user.id for name, user in users.items()}


@pytest.fixture()
def app(settings: Settings) -> FastAPI:
    """Return an application with the redirect targets and a header-based login."""

    application = create_app(settings)

    @application.middleware("http")
    async def _authenticate(request: Request, call_next):
        user_id = request.headers.get("X-User-Id")
        if user_id:
            request.state.user_id = user_id
        return await call_next(request)

    for path, name in (
        ("/home", "home"),
        ("/editor", "editor-home"),
        ("/reports", "reports-home"),
    ):
        application.add_api_route(path, _landing(name), methods=["GET"], name=name)
    return application


def _landing(name: str):
    async def landing() -> dict[str, str]:
        return {"page": name}

    return landing


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Provide an HTTPX async client bound to the FastAPI app."""

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
